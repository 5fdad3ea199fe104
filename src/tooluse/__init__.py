"""Tool-execution core for an LLM coding agent."""

from .config import Config
from .context_management import ConversationWindowManager, truncate_conversation
from .dispatcher import HANDLERS, DispatchResult, dispatch
from .edit_session import EditSession
from .host import HostServices
from .models import ToolInvocation, ToolName
from .subtasks import SubtaskController
from .task import Task, TaskState
from .tool_registry import ToolMetrics

__version__ = "0.1.0"
__all__ = [
    "Config",
    "ConversationWindowManager",
    "truncate_conversation",
    "HANDLERS",
    "DispatchResult",
    "dispatch",
    "EditSession",
    "HostServices",
    "ToolInvocation",
    "ToolName",
    "SubtaskController",
    "Task",
    "TaskState",
    "ToolMetrics",
]
