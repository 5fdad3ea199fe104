"""Tool handlers: the shared base and one class per tool."""

from .base import ToolHandler
from .browser_handler import BrowserActionHandler
from .command_handler import ExecuteCommandHandler, run_command
from .edit_handlers import ApplyDiffHandler, InsertContentHandler, SearchAndReplaceHandler
from .exploration_handlers import (ListCodeDefinitionNamesHandler, ListFilesHandler,
                                   SearchFilesHandler)
from .file_handlers import ReadFileHandler, WriteToFileHandler
from .interaction_handlers import (AskFollowupQuestionHandler, AttemptCompletionHandler,
                                   FetchInstructionsHandler, NewTaskHandler, SwitchModeHandler)
from .mcp_handlers import AccessMcpResourceHandler, UseMcpToolHandler

__all__ = [
    "ToolHandler",
    "run_command",
    "ReadFileHandler",
    "WriteToFileHandler",
    "ApplyDiffHandler",
    "SearchAndReplaceHandler",
    "InsertContentHandler",
    "ListFilesHandler",
    "SearchFilesHandler",
    "ListCodeDefinitionNamesHandler",
    "ExecuteCommandHandler",
    "BrowserActionHandler",
    "UseMcpToolHandler",
    "AccessMcpResourceHandler",
    "AskFollowupQuestionHandler",
    "AttemptCompletionHandler",
    "SwitchModeHandler",
    "NewTaskHandler",
    "FetchInstructionsHandler",
]
