"""Task-flow tools: ask_followup_question, attempt_completion, switch_mode,
new_task and fetch_instructions."""

import json
import re
from typing import List

from ..errors import InvalidParameterError, ToolError
from ..instructions import available_tasks, get_instructions
from ..logger import get_logger
from ..models import AskResponseKind, TextBlock, ToolName, ToolResult
from .. import responses
from .base import ToolHandler
from .command_handler import run_command

log = get_logger("handlers.interaction")

_SUGGEST_RE = re.compile(r"<suggest>(.*?)</suggest>", re.DOTALL)


def parse_suggestions(xml: str) -> List[str]:
    """``<suggest>a</suggest><suggest>b</suggest>`` -> ["a", "b"].

    Raises ValueError for anything other than a sequence of suggest tags.
    """
    suggestions = [s.strip() for s in _SUGGEST_RE.findall(xml)]
    leftover = _SUGGEST_RE.sub("", xml).strip()
    if leftover:
        raise ValueError(f"unexpected content outside <suggest> tags: {leftover[:80]!r}")
    if any("<suggest>" in s or "</suggest>" in s for s in suggestions):
        raise ValueError("nested <suggest> tags are not allowed")
    return suggestions


class AskFollowupQuestionHandler(ToolHandler):
    tool = ToolName.ASK_FOLLOWUP_QUESTION
    action = "asking question"

    async def handle_partial(self) -> None:
        question = self.remove_closing_tag("question", self.params.get("question"))
        if question:
            await self.task.prompt.ask("followup", question, partial=True)

    async def handle_complete(self) -> None:
        question = self.require("question")
        follow_up = self.optional("follow_up")
        suggest: List[str] = []
        if follow_up:
            try:
                suggest = parse_suggestions(follow_up)
            except ValueError as e:
                raise InvalidParameterError(
                    self.name, "follow_up", f"Invalid follow_up XML format: {e}",
                    user_text=f"Failed to parse follow_up XML: {e}")

        answer = await self.task.ask_human("followup", json.dumps({"question": question, "suggest": suggest}))
        await self.task.prompt.say("user_feedback", answer.text or "", answer.images)
        await self.complete_success(responses.tool_result(f"<answer>\n{answer.text or ''}\n</answer>",
                                                          answer.images))


class AttemptCompletionHandler(ToolHandler):
    tool = ToolName.ATTEMPT_COMPLETION
    action = "attempting completion"

    async def handle_partial(self) -> None:
        result = self.remove_closing_tag("result", self.params.get("result"))
        command = self.params.get("command")
        if command:
            await self.task.prompt.ask("command", self.remove_closing_tag("command", command), partial=True)
        elif result:
            await self.task.prompt.say("completion_result", result, partial=True)

    async def handle_complete(self) -> None:
        result = self.require("result")
        command = self.optional("command")

        await self.task.prompt.say("completion_result", result)
        self.task.emit("completed_attempt", self.task.task_id)

        command_result = None
        if command:
            if not await self.ask_approval("command", command):
                return
            cancelled, command_result = await run_command(self.task, command)
            if cancelled:
                self.task.did_reject_tool = True
                await self.push(command_result)
                return

        if self.task.parent is not None:
            await self.complete_success("")
            await self.task.subtasks.finish_subtask(self.task, f"Task complete: {result}")
            return

        answer = await self.task.ask_human("completion_result", "")
        if answer.response == AskResponseKind.YES:
            await self.complete_success("")
            self.task.complete()
            return

        await self.task.prompt.say("user_feedback", answer.text or "", answer.images)
        blocks: ToolResult = []
        if command_result:
            blocks.append(TextBlock(text=command_result))
        blocks.append(TextBlock(text=(
            "The user has provided feedback on the results. Consider their input to continue the "
            f"task, and then attempt completion again.\n<feedback>\n{answer.text or ''}\n</feedback>"
        )))
        blocks.extend(responses.image_blocks(answer.images))
        await self.complete_success(blocks)


class SwitchModeHandler(ToolHandler):
    tool = ToolName.SWITCH_MODE
    action = "switching mode"

    async def handle_partial(self) -> None:
        slug = self.params.get("mode_slug")
        if not slug:
            return
        await self.task.prompt.ask("tool", responses.tool_message(
            "switchMode", mode=self.remove_closing_tag("mode_slug", slug),
            reason=self.remove_closing_tag("reason", self.params.get("reason")) or None), partial=True)

    async def handle_complete(self) -> None:
        slug = self.require("mode_slug")
        reason = self.optional("reason")
        modes = self.task.modes

        target = modes.get(slug)
        if target is None:
            raise InvalidParameterError(self.name, "mode_slug", f"Invalid mode: {slug}")

        current_slug = modes.current_slug
        if current_slug == slug:
            await self.complete_success(f"Already in {target.name} mode.")
            return

        if not await self.ask_approval("tool", {"tool": "switchMode", "mode": slug, "reason": reason}):
            return

        await modes.switch(slug)
        because = f" because: {reason}" if reason else ""
        await self.complete_success(
            f"Successfully switched from {modes.display_name(current_slug)} mode to "
            f"{target.name} mode{because}.")


class NewTaskHandler(ToolHandler):
    tool = ToolName.NEW_TASK
    action = "creating new task"

    async def handle_partial(self) -> None:
        mode = self.params.get("mode")
        message = self.params.get("message")
        if not mode or not message:
            return
        await self.task.prompt.ask("tool", responses.tool_message(
            "newTask", mode=self.remove_closing_tag("mode", mode),
            message=self.remove_closing_tag("message", message)), partial=True)

    async def handle_complete(self) -> None:
        slug = self.require("mode")
        message = self.require("message")

        target = self.task.modes.get(slug)
        if target is None:
            raise InvalidParameterError(self.name, "mode", f"Invalid mode: {slug}")

        if not await self.ask_approval("tool", {"tool": "newTask", "mode": target.name, "content": message}):
            return

        await self.task.subtasks.spawn(self.task, slug, message)
        await self.complete_success(
            f"Successfully created new task in {target.name} mode with message: {message}")


class FetchInstructionsHandler(ToolHandler):
    tool = ToolName.FETCH_INSTRUCTIONS
    action = "fetching instructions"

    async def handle_complete(self) -> None:
        task_name = self.require("task")
        text = get_instructions(task_name, self.task.modes)
        if text is None:
            raise ToolError(
                f"Unknown instructions task '{task_name}'. Available: {', '.join(available_tasks())}",
                tool=self.name)

        if not await self.ask_approval("tool", {"tool": "fetchInstructions", "content": task_name}):
            return
        await self.complete_success(text)
