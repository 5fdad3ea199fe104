"""Shared two-phase protocol for tool handlers.

A handler is built for one invocation. ``handle()`` runs the partial
phase (preview only, errors swallowed) or the complete phase (validate,
approve, act, push exactly one result). Expected failures are raised as
``ToolError`` and converted at this boundary; anything else is logged and
reported with the handler's ``action`` description.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..approval import ApprovalGate
from ..errors import AccessDeniedError, InvalidParameterError, MissingParameterError, ToolError
from ..logger import get_logger, log_exception, truncate as log_truncate
from ..models import (ApprovalResult, InvocationPhase, TextBlock, ToolInvocation, ToolName,
                      ToolResult, result_text)
from ..tool_registry import get_tool_def
from .. import responses

if TYPE_CHECKING:
    from ..task import Task

log = get_logger("handlers")


class ToolHandler(ABC):
    tool: ToolName
    # Used in "Error <action>: ..." when an unexpected exception escapes
    action: str = "executing tool"

    def __init__(self, task: "Task", invocation: ToolInvocation):
        self.task = task
        self.invocation = invocation
        self.params = invocation.params
        self._pushed = False
        self._approval_feedback: Optional[str] = None

    @property
    def name(self) -> str:
        return self.invocation.name

    async def handle(self) -> bool:
        """Run one phase; True when the invocation was handled completely."""
        if self.invocation.phase == InvocationPhase.STREAMING:
            try:
                await self.handle_partial()
            except Exception as e:
                log.debug("partial %s ignored error: %s", self.name, e)
            return False

        log.info("tool %s: %s", self.name, log_truncate(json.dumps(self.params), 300))
        try:
            await self.handle_complete()
        except ToolError as e:
            await self.report_tool_error(e)
        except Exception as e:
            await self.report_unexpected(e)
        finally:
            await self.cleanup()

        if not self._pushed:
            log.warning("%s finished without a result", self.name)
            await self.push("")
        return True

    async def handle_partial(self) -> None:
        """Render the in-progress call. Must not touch disk, processes or approvals."""
        payload = {"tool": self.name}
        for key, value in self.params.items():
            payload[key] = self.remove_closing_tag(key, value)
        await self.task.prompt.ask("tool", json.dumps(payload), partial=True)

    @abstractmethod
    async def handle_complete(self) -> None:
        """Run the invocation and push its single result."""

    async def cleanup(self) -> None:
        """Runs after the complete phase whatever the outcome."""

    # ── Result pushing ───────────────────────────────────────────

    async def push(self, result: ToolResult) -> None:
        if self._pushed:
            log.warning("%s tried to push a second result: %s", self.name,
                        log_truncate(result_text(result), 100))
            return
        self._pushed = True
        if self._approval_feedback:
            result = _append_text(result, self._approval_feedback)
        await self.task.push_tool_result(self.invocation, result)

    @property
    def pushed(self) -> bool:
        return self._pushed

    async def complete_success(self, result: ToolResult) -> None:
        """Push a successful result, record usage and clear the mistake count."""
        self.task.mistakes.reset()
        self.task.services.metrics.record(self.name, self.task.task_id, True)
        await self.push(result)

    # ── Error conversion ─────────────────────────────────────────

    async def report_tool_error(self, e: ToolError) -> None:
        log.info("%s failed: %s", self.name, log_truncate(e.message, 300))
        if e.counts_as_mistake:
            self.task.mistakes.record_mistake(self.name)
        self.task.services.metrics.record(self.name, self.task.task_id, False, e.message)

        if isinstance(e, AccessDeniedError):
            await self.task.prompt.say("ignore_error", e.path)
            await self.push(responses.tool_error(
                responses.ignore_error(e.path, self.task.ignore.ignore_file_name)))
            return
        if isinstance(e, MissingParameterError):
            await self.task.prompt.say("error", e.user_message())
            await self.push(responses.tool_error(responses.missing_param_error(e.param)))
            return

        await self.task.prompt.say(e.say_kind, e.user_message())
        await self.push(responses.tool_error(e.message))

    async def report_unexpected(self, e: Exception) -> None:
        log_exception(log, f"error {self.action}", e)
        self.task.services.metrics.record(self.name, self.task.task_id, False, str(e))
        text = f"Error {self.action}: {e}"
        await self.task.prompt.say("error", f"Error {self.action}:\n{e}")
        await self.push(responses.tool_error(text))

    # ── Parameter helpers ────────────────────────────────────────

    def require(self, param: str) -> str:
        value = self.params.get(param)
        if value is None or value == "":
            raise MissingParameterError(self.name, param, self.params.get("path"))
        return value

    def optional(self, param: str) -> Optional[str]:
        value = self.params.get(param)
        return value if value not in (None, "") else None

    def require_all(self) -> Dict[str, str]:
        """Check every parameter the registry marks required."""
        tool_def = get_tool_def(self.name)
        values = {}
        for param in tool_def.required_params if tool_def else []:
            values[param] = self.require(param)
        return values

    def parse_int(self, param: str, value: Optional[str] = None, *,
                  minimum: Optional[int] = None) -> int:
        raw = self.params.get(param) if value is None else value
        try:
            number = int(str(raw).strip())
        except (TypeError, ValueError):
            raise InvalidParameterError(self.name, param, f"{param} must be an integer, got '{raw}'")
        if minimum is not None and number < minimum:
            raise InvalidParameterError(self.name, param, f"{param} must be at least {minimum}")
        return number

    def remove_closing_tag(self, tag: str, text: Optional[str]) -> str:
        """Strip a half-streamed closing tag (``</pa``) from a partial value."""
        if not text:
            return ""
        if self.invocation.phase != InvocationPhase.STREAMING:
            return text
        optional_chars = "".join(f"(?:{re.escape(c)})?" for c in tag)
        return re.sub(rf"\s*<\/?{optional_chars}$", "", text)

    # ── Paths and policy ─────────────────────────────────────────

    @property
    def cwd(self) -> str:
        return self.task.cwd

    def resolve(self, rel_path: str) -> str:
        return os.path.abspath(os.path.join(self.cwd, rel_path))

    def to_rel(self, abs_path: str) -> str:
        return os.path.relpath(abs_path, self.cwd).replace(os.sep, "/")

    def check_access(self, rel_path: str) -> None:
        if not self.task.ignore.validate_access(rel_path):
            raise AccessDeniedError(rel_path, tool=self.name)

    # ── Approval ─────────────────────────────────────────────────

    @property
    def category(self) -> str:
        tool_def = get_tool_def(self.name)
        return tool_def.category if tool_def else ""

    async def ask_approval(self, kind: str, payload: Any) -> bool:
        """Ask the gate. On denial the rejection result is pushed here."""
        text = payload if isinstance(payload, str) else json.dumps(payload)
        result: ApprovalResult = await self.task.gate.ask(kind, text, category=self.category)
        if not result.approved:
            self.task.did_reject_tool = True
            await self.push(ApprovalGate.rejection_result(result))
            return False
        self._approval_feedback = ApprovalGate.approval_feedback(result)
        return True


def _append_text(result: ToolResult, text: str) -> ToolResult:
    if isinstance(result, str):
        return f"{result}\n\n{text}" if result else text
    blocks: List = list(result)
    blocks.append(TextBlock(text=text))
    return blocks
