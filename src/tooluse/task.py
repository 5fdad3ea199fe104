"""Per-task context passed by reference to every handler.

A Task owns the transcript, the single edit session, the mistake
counter, the approval gate and the ignore policy. Invocations are fed
one at a time through ``handle_invocation``; each complete invocation
appends exactly one ``[<tool>] Result:`` pair to the pending user turn,
which ``finish_turn`` closes and trims for the next model call.
"""

import uuid
import weakref
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .approval import ApprovalGate
from .config import Config
from .context_management import ConversationWindowManager, TokenCounter, get_model_info
from .dispatcher import dispatch
from .edit_session import EditSession
from .errors import ApprovalUnavailableError
from .host import HostServices
from .ignore import IgnoreController
from .logger import get_logger, log_exception, task_context, truncate as log_truncate
from .mistakes import MistakeTracker
from .models import (AskResponse, ContentBlock, ConversationMessage, TextBlock, ToolInvocation,
                     ToolName, ToolResult)
from .modes import ModeManager
from .subtasks import SubtaskController
from .tool_registry import describe_invocation
from . import responses

log = get_logger("task")

EMPTY_RESULT = "(tool did not return anything)"


class TaskState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABORTED = "aborted"


class Task:
    def __init__(
        self,
        config: Config,
        services: HostServices,
        *,
        task_id: Optional[str] = None,
        parent: Optional["Task"] = None,
        modes: Optional[ModeManager] = None,
        subtasks: Optional[SubtaskController] = None,
        counter: Optional[TokenCounter] = None,
    ):
        self.task_id = task_id or uuid.uuid4().hex[:12]
        self.config = config
        self.services = services
        self.prompt = services.prompt
        self.fs = services.fs
        self.cwd = str(config.workspace_path.resolve())

        self.modes = modes or ModeManager(config.custom_modes, config.default_mode)
        self.subtasks = subtasks or SubtaskController()
        self.mistakes = MistakeTracker(limit=config.consecutive_mistake_limit)
        self.gate = ApprovalGate(self.prompt, config.auto_approve)
        self.ignore = IgnoreController(self.cwd, config.ignore_file_name)
        self.edit_session = EditSession(self.fs, services.editor, self.cwd)
        self.window = ConversationWindowManager(
            get_model_info(config.model, config.context_window),
            config.context_window,
            config.max_output_tokens,
            counter=counter,
        )

        self.messages: List[ConversationMessage] = []
        self.user_content: List[ContentBlock] = []
        self.did_edit_file = False
        self.did_reject_tool = False

        self.state = TaskState.RUNNING
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self.parent_id = parent.task_id if parent is not None else None
        self.child: Optional["Task"] = None
        self.paused_mode_slug: Optional[str] = None

        self._listeners: Dict[str, List[Callable[..., Any]]] = {}
        self.subtasks.register_root(self)
        log.info("task %s created (parent=%s, mode=%s)", self.task_id, self.parent_id,
                 self.modes.current_slug)

    # ── Lineage ──────────────────────────────────────────────────

    @property
    def parent(self) -> Optional["Task"]:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def is_live(self) -> bool:
        return self.state in (TaskState.RUNNING, TaskState.PAUSED)

    def spawn_child(self, message: str) -> "Task":
        child = Task(
            self.config,
            self.services,
            parent=self,
            modes=self.modes,
            subtasks=self.subtasks,
            counter=self.window.counter,
        )
        child.start(message)
        return child

    # ── Events ───────────────────────────────────────────────────

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def emit(self, event: str, *args: Any) -> None:
        log.debug("task %s event %s %s", self.task_id, event, args)
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as e:
                log_exception(log, f"listener for '{event}' failed", e)

    # ── State transitions ────────────────────────────────────────

    def start(self, text: str, images: Optional[List[str]] = None) -> None:
        """Seed the first user turn."""
        self.user_content = [TextBlock(text=f"<task>\n{text}\n</task>")]
        self.user_content.extend(responses.image_blocks(images))

    def pause(self) -> None:
        if self.state != TaskState.RUNNING:
            raise RuntimeError(f"Cannot pause task {self.task_id} in state {self.state.value}")
        self.state = TaskState.PAUSED
        self.emit("paused")

    async def resume(self, message: str) -> None:
        """Continue after a subtask finished with ``message``."""
        if self.state != TaskState.PAUSED:
            raise RuntimeError(f"Cannot resume task {self.task_id} in state {self.state.value}")
        self.state = TaskState.RUNNING
        await self.prompt.say("subtask_result", message)
        self.user_content.append(TextBlock(text=f"[new_task completed] Result: {message}"))
        self.emit("resumed")

    def complete(self) -> None:
        if self.state == TaskState.COMPLETED:
            return
        self.state = TaskState.COMPLETED
        log.info("task %s completed", self.task_id)
        self.emit("completed")

    async def abort(self) -> None:
        """Cancel the task: child first, then the open edit and external resources."""
        if not self.is_live:
            return
        with task_context(self.task_id):
            await self._abort()

    async def _abort(self) -> None:
        if self.child is not None and self.child.is_live:
            await self.child.abort()

        if self.edit_session.is_editing:
            await self.edit_session.revert_changes()
        await self.edit_session.reset()

        self.services.processes.cancel()
        browser = self.services.browser
        if browser is not None and browser.is_open:
            await browser.close()

        self.state = TaskState.ABORTED
        log.info("task %s aborted", self.task_id)
        self.emit("aborted")

    # ── Invocation flow ──────────────────────────────────────────

    async def handle_invocation(self, invocation: ToolInvocation) -> bool:
        """Feed one snapshot of a tool call. True once it has been handled completely."""
        with task_context(self.task_id):
            return await self._handle_invocation(invocation)

    async def _handle_invocation(self, invocation: ToolInvocation) -> bool:
        if self.state != TaskState.RUNNING:
            raise RuntimeError(
                f"Task {self.task_id} is {self.state.value}; cannot handle {invocation.name}")

        if not invocation.partial:
            if self.did_reject_tool:
                await self.push_tool_result(invocation, (
                    f"Skipping tool {describe_invocation(invocation)} due to user rejecting a "
                    "previous tool."))
                return True
            await self._check_mistake_limit()
            if invocation.tool != ToolName.BROWSER_ACTION:
                await self._close_browser()

        result = dispatch(self, invocation)
        if not result.ok:
            if invocation.partial:
                return False
            self.mistakes.record_mistake(invocation.name)
            await self.prompt.say("error", result.error)
            await self.push_tool_result(invocation, responses.tool_error(result.error))
            return True
        return await result.handler.handle()

    async def _check_mistake_limit(self) -> None:
        if not self.mistakes.limit_reached:
            return
        log.warning("task %s reached %d consecutive mistakes", self.task_id, self.mistakes.count)
        answer = await self.ask_human(
            "mistake_limit_reached",
            "This may indicate a failure in the model's thought process or inability to use a "
            "tool properly, which can be mitigated with some user guidance.",
        )
        if answer.text or answer.images:
            self.user_content.append(TextBlock(text=responses.too_many_mistakes(answer.text)))
            self.user_content.extend(responses.image_blocks(answer.images))
        self.mistakes.reset()

    async def _close_browser(self) -> None:
        browser = self.services.browser
        if browser is not None and browser.is_open:
            log.info("closing browser before non-browser tool")
            await browser.close()

    async def ask_human(self, kind: str, text: str = "") -> AskResponse:
        """Blocking ask that must be answered."""
        response = await self.prompt.ask(kind, text, partial=False)
        if response is None:
            raise ApprovalUnavailableError(f"No answer received for '{kind}'")
        return response

    async def push_tool_result(self, invocation: ToolInvocation, result: ToolResult) -> None:
        mode_name = None
        if invocation.tool == ToolName.NEW_TASK:
            mode_name = self.modes.display_name(invocation.params.get("mode", ""))
        header = describe_invocation(invocation, mode_name)
        self.user_content.append(TextBlock(text=f"{header} Result:"))
        if isinstance(result, str):
            self.user_content.append(TextBlock(text=result or EMPTY_RESULT))
        elif result:
            self.user_content.extend(result)
        else:
            self.user_content.append(TextBlock(text=EMPTY_RESULT))
        log.debug("pushed result for %s", header)
        self.emit("tool_result", invocation.name, result)

    # ── Transcript ───────────────────────────────────────────────

    def add_assistant_message(self, text: str) -> None:
        self.messages.append(ConversationMessage(role="assistant", content=text))

    def finish_turn(self) -> List[ConversationMessage]:
        """Close the pending user turn and return the trimmed history for the next model call."""
        if self.user_content:
            self.messages.append(ConversationMessage(role="user", content=list(self.user_content)))
        self.user_content = []
        self.did_reject_tool = False
        self.did_edit_file = False
        return self.prepare_history()

    def prepare_history(self) -> List[ConversationMessage]:
        result = self.window.truncate_if_needed(self.messages)
        if result.removed_count:
            self.messages = result.messages
            log.info("task %s history trimmed by %d messages, %d left", self.task_id,
                     result.removed_count, len(self.messages))
            self.emit("truncated", result.removed_count)
        return self.messages

    def pending_text(self) -> str:
        return "\n".join(b.text for b in self.user_content if isinstance(b, TextBlock))

    def __repr__(self) -> str:
        return f"Task({self.task_id}, {self.state.value}, parent={self.parent_id})"


def describe(task: Task) -> str:
    """One-line summary for logs and the CLI."""
    return (f"{task.task_id} [{task.state.value}] mode={task.modes.current_slug} "
            f"mistakes={task.mistakes.count} pending={log_truncate(task.pending_text(), 60)}")
