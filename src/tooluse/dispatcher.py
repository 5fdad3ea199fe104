"""Tool name -> handler class.

The table is closed over ``ToolName``; a tool without a handler (or a
handler without a tool) fails at import time rather than at dispatch.
Dispatching only constructs a handler; it has no side effects.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Type

from .handlers import (
    AccessMcpResourceHandler,
    ApplyDiffHandler,
    AskFollowupQuestionHandler,
    AttemptCompletionHandler,
    BrowserActionHandler,
    ExecuteCommandHandler,
    FetchInstructionsHandler,
    InsertContentHandler,
    ListCodeDefinitionNamesHandler,
    ListFilesHandler,
    NewTaskHandler,
    ReadFileHandler,
    SearchAndReplaceHandler,
    SearchFilesHandler,
    SwitchModeHandler,
    ToolHandler,
    UseMcpToolHandler,
    WriteToFileHandler,
)
from .logger import get_logger
from .models import ToolInvocation, ToolName
from . import responses

if TYPE_CHECKING:
    from .task import Task

log = get_logger("dispatcher")

HANDLERS: Dict[ToolName, Type[ToolHandler]] = {
    ToolName.READ_FILE: ReadFileHandler,
    ToolName.WRITE_TO_FILE: WriteToFileHandler,
    ToolName.APPLY_DIFF: ApplyDiffHandler,
    ToolName.SEARCH_AND_REPLACE: SearchAndReplaceHandler,
    ToolName.INSERT_CONTENT: InsertContentHandler,
    ToolName.LIST_FILES: ListFilesHandler,
    ToolName.SEARCH_FILES: SearchFilesHandler,
    ToolName.LIST_CODE_DEFINITION_NAMES: ListCodeDefinitionNamesHandler,
    ToolName.EXECUTE_COMMAND: ExecuteCommandHandler,
    ToolName.BROWSER_ACTION: BrowserActionHandler,
    ToolName.USE_MCP_TOOL: UseMcpToolHandler,
    ToolName.ACCESS_MCP_RESOURCE: AccessMcpResourceHandler,
    ToolName.ASK_FOLLOWUP_QUESTION: AskFollowupQuestionHandler,
    ToolName.ATTEMPT_COMPLETION: AttemptCompletionHandler,
    ToolName.SWITCH_MODE: SwitchModeHandler,
    ToolName.NEW_TASK: NewTaskHandler,
    ToolName.FETCH_INSTRUCTIONS: FetchInstructionsHandler,
}


def _check_exhaustive() -> None:
    missing = [t.value for t in ToolName if t not in HANDLERS]
    if missing:
        raise RuntimeError(f"No handler registered for: {', '.join(missing)}")
    for tool, cls in HANDLERS.items():
        if cls.tool != tool:
            raise RuntimeError(f"{cls.__name__} handles {cls.tool.value}, registered for {tool.value}")


_check_exhaustive()


@dataclass
class DispatchResult:
    """Either a handler ready to run, or the error to report for an unknown tool."""
    handler: Optional[ToolHandler] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.handler is not None


def dispatch(task: "Task", invocation: ToolInvocation) -> DispatchResult:
    tool = invocation.tool
    if tool is None:
        log.warning("unknown tool: %s", invocation.name)
        return DispatchResult(error=responses.unknown_tool_error(invocation.name))
    return DispatchResult(handler=HANDLERS[tool](task, invocation))
