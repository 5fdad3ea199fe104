"""execute_command."""

import os
from typing import TYPE_CHECKING, Optional, Tuple

from ..context_management import truncate_output
from ..errors import AccessDeniedError, ToolError
from ..logger import get_logger, truncate as log_truncate
from ..models import ToolName
from .base import ToolHandler

if TYPE_CHECKING:
    from ..task import Task

log = get_logger("handlers.command")


async def run_command(task: "Task", command: str, custom_cwd: Optional[str] = None) -> Tuple[bool, str]:
    """Run ``command`` through the host process runner.

    Output lines are streamed to the human as ``command_output``. Returns
    (cancelled, result text for the model).
    """
    cwd = task.cwd
    if custom_cwd:
        cwd = custom_cwd if os.path.isabs(custom_cwd) else os.path.abspath(os.path.join(task.cwd, custom_cwd))
        if not os.path.isdir(cwd):
            raise ToolError(f"Working directory '{cwd}' does not exist.", tool=ToolName.EXECUTE_COMMAND.value)

    async def on_line(line: str) -> None:
        await task.prompt.say("command_output", line, partial=True)

    result = await task.services.processes.run(
        command, cwd, on_line=on_line, timeout=task.config.command_timeout)
    output = truncate_output(result.output.strip())
    log.info("command exit=%s timed_out=%s cancelled=%s: %s", result.exit_code,
             result.timed_out, result.cancelled, log_truncate(command, 120))

    if result.cancelled:
        return True, (f"Command was cancelled by the user while running in '{cwd}'."
                      f"{' Output so far:' + chr(10) + output if output else ''}")
    if result.timed_out:
        return False, (f"Command timed out after {task.config.command_timeout:g}s in '{cwd}' "
                       f"and was terminated.\nOutput:\n{output or '(no output)'}")
    return False, (f"Command executed in terminal within working directory '{cwd}'. "
                   f"Exit code: {result.exit_code}\nOutput:\n{output or '(no output)'}")


class ExecuteCommandHandler(ToolHandler):
    tool = ToolName.EXECUTE_COMMAND
    action = "executing command"

    async def handle_partial(self) -> None:
        command = self.remove_closing_tag("command", self.params.get("command"))
        if not command:
            return
        await self.task.prompt.ask("command", command, partial=True)

    async def handle_complete(self) -> None:
        command = self.require("command")
        blocked = self.task.ignore.validate_command(command)
        if blocked:
            raise AccessDeniedError(blocked, tool=self.name)

        if not await self.ask_approval("command", command):
            return

        cancelled, result = await run_command(self.task, command, self.optional("cwd"))
        if cancelled:
            self.task.did_reject_tool = True
        await self.complete_success(result)
