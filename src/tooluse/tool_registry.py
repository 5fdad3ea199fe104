"""Single source of truth for all tool definitions.

Every tool known to the core is defined ONCE here.  Required-parameter
checks, approval categories, result headers and the dispatcher's
exhaustiveness check all derive from this module.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import time
import threading

from .logger import get_logger
from .models import ToolInvocation, ToolName

log = get_logger("registry")


# ── Tool Definition ──────────────────────────────────────────────

@dataclass
class ToolParam:
    """Metadata for a single tool parameter."""
    name: str
    required: bool = False
    description: str = ""


@dataclass
class ToolDef:
    """Canonical definition of a tool.

    ``category`` is the approval category the tool's effect falls under
    (see config.APPROVAL_CATEGORIES); ``mutates`` marks tools that write
    through an edit session.
    """
    name: ToolName
    category: str = "read"
    mutates: bool = False
    params: List[ToolParam] = field(default_factory=list)
    description: str = ""

    @property
    def required_params(self) -> List[str]:
        return [p.name for p in self.params if p.required]


# ── The Registry ─────────────────────────────────────────────────

TOOL_DEFS: List[ToolDef] = [
    # --- File operations ---
    ToolDef(ToolName.READ_FILE, category="read",
            params=[ToolParam("path", required=True),
                    ToolParam("start_line"), ToolParam("end_line")]),
    ToolDef(ToolName.WRITE_TO_FILE, category="write", mutates=True,
            params=[ToolParam("path", required=True),
                    ToolParam("content", required=True),
                    ToolParam("line_count", required=True)]),
    ToolDef(ToolName.APPLY_DIFF, category="write", mutates=True,
            params=[ToolParam("path", required=True),
                    ToolParam("diff", required=True),
                    ToolParam("start_line", required=True),
                    ToolParam("end_line", required=True)]),
    ToolDef(ToolName.INSERT_CONTENT, category="write", mutates=True,
            params=[ToolParam("path", required=True),
                    ToolParam("operations", required=True)]),
    ToolDef(ToolName.SEARCH_AND_REPLACE, category="write", mutates=True,
            params=[ToolParam("path", required=True),
                    ToolParam("operations", required=True)]),

    # --- Shell / process ---
    ToolDef(ToolName.EXECUTE_COMMAND, category="execute",
            params=[ToolParam("command", required=True), ToolParam("cwd")]),

    # --- Search / exploration ---
    ToolDef(ToolName.LIST_FILES, category="read",
            params=[ToolParam("path", required=True), ToolParam("recursive")]),
    ToolDef(ToolName.SEARCH_FILES, category="read",
            params=[ToolParam("path", required=True),
                    ToolParam("regex", required=True),
                    ToolParam("file_pattern")]),
    ToolDef(ToolName.LIST_CODE_DEFINITION_NAMES, category="read",
            params=[ToolParam("path", required=True)]),

    # --- External ---
    ToolDef(ToolName.BROWSER_ACTION, category="browser",
            params=[ToolParam("action", required=True), ToolParam("url"),
                    ToolParam("coordinate"), ToolParam("text")]),
    ToolDef(ToolName.USE_MCP_TOOL, category="mcp",
            params=[ToolParam("server_name", required=True),
                    ToolParam("tool_name", required=True),
                    ToolParam("arguments")]),
    ToolDef(ToolName.ACCESS_MCP_RESOURCE, category="mcp",
            params=[ToolParam("server_name", required=True),
                    ToolParam("uri", required=True)]),

    # --- Interaction / task flow ---
    ToolDef(ToolName.ASK_FOLLOWUP_QUESTION, category="interaction",
            params=[ToolParam("question", required=True), ToolParam("follow_up")]),
    ToolDef(ToolName.ATTEMPT_COMPLETION, category="interaction",
            params=[ToolParam("result", required=True), ToolParam("command")]),
    ToolDef(ToolName.SWITCH_MODE, category="mode",
            params=[ToolParam("mode_slug", required=True), ToolParam("reason")]),
    ToolDef(ToolName.NEW_TASK, category="subtask",
            params=[ToolParam("mode", required=True),
                    ToolParam("message", required=True)]),
    ToolDef(ToolName.FETCH_INSTRUCTIONS, category="read",
            params=[ToolParam("task", required=True)]),
]

# Derived lookups (computed once at import time)
TOOL_BY_NAME: Dict[ToolName, ToolDef] = {t.name: t for t in TOOL_DEFS}

_missing = set(ToolName) - set(TOOL_BY_NAME)
if _missing:
    raise RuntimeError(f"Tools without a definition: {sorted(m.value for m in _missing)}")


def get_tool_def(name: str) -> Optional[ToolDef]:
    """Return tool definition by name, or None if unknown."""
    tool = ToolName.lookup(name)
    return TOOL_BY_NAME.get(tool) if tool else None


def describe_invocation(invocation: ToolInvocation, mode_name: Optional[str] = None) -> str:
    """Short bracketed header used in front of a tool's result."""
    p = invocation.params
    name = invocation.name
    tool = invocation.tool
    if tool is None:
        return f"[{name}]"
    if tool == ToolName.EXECUTE_COMMAND:
        return f"[{name} for '{p.get('command', '')}']"
    if tool in (ToolName.READ_FILE, ToolName.WRITE_TO_FILE, ToolName.APPLY_DIFF,
                ToolName.INSERT_CONTENT, ToolName.SEARCH_AND_REPLACE,
                ToolName.LIST_FILES, ToolName.LIST_CODE_DEFINITION_NAMES):
        return f"[{name} for '{p.get('path', '')}']"
    if tool == ToolName.SEARCH_FILES:
        pattern = p.get("file_pattern")
        suffix = f" in '{pattern}'" if pattern else ""
        return f"[{name} for '{p.get('regex', '')}'{suffix}]"
    if tool == ToolName.BROWSER_ACTION:
        return f"[{name} for '{p.get('action', '')}']"
    if tool in (ToolName.USE_MCP_TOOL, ToolName.ACCESS_MCP_RESOURCE):
        return f"[{name} for '{p.get('server_name', '')}']"
    if tool == ToolName.ASK_FOLLOWUP_QUESTION:
        return f"[{name} for '{p.get('question', '')}']"
    if tool == ToolName.ATTEMPT_COMPLETION:
        return f"[{name}]"
    if tool == ToolName.SWITCH_MODE:
        reason = p.get("reason")
        suffix = f" because: {reason}" if reason else ""
        return f"[{name} to '{p.get('mode_slug', '')}'{suffix}]"
    if tool == ToolName.NEW_TASK:
        return f"[{name} in {mode_name or p.get('mode', '')} mode: '{p.get('message', '')}']"
    if tool == ToolName.FETCH_INSTRUCTIONS:
        return f"[{name} for '{p.get('task', '')}']"
    return f"[{name}]"


# ── Observability: ToolMetrics ───────────────────────────────────

@dataclass
class ToolCallRecord:
    """A single tool invocation record."""
    tool_name: str
    task_id: str
    started_at: float
    success: bool
    error: Optional[str] = None


class ToolMetrics:
    """Usage events per tool.

    Success is recorded once per completed invocation; failures record
    the first line of the error. One instance lives on HostServices and is
    shared by a task and its subtasks.
    """

    def __init__(self, history_size: int = 200):
        self._lock = threading.Lock()
        self._history_size = history_size
        self._calls: List[ToolCallRecord] = []
        self._per_tool: Dict[str, dict] = {}  # name -> {count, errors}
        self._start_time = time.time()

    def record(self, tool_name: str, task_id: str, success: bool,
               error: Optional[str] = None) -> None:
        """Record a usage event."""
        rec = ToolCallRecord(
            tool_name=tool_name,
            task_id=task_id,
            started_at=time.time(),
            success=success,
            error=error.splitlines()[0] if error else None,
        )
        with self._lock:
            self._calls.append(rec)
            if len(self._calls) > self._history_size:
                self._calls = self._calls[-self._history_size:]

            entry = self._per_tool.setdefault(tool_name, {"count": 0, "errors": 0})
            entry["count"] += 1
            if not success:
                entry["errors"] += 1

        log.debug("tool_usage: task=%s tool=%s success=%s", task_id, tool_name, success)

    def count(self, tool_name: str, successes_only: bool = True) -> int:
        with self._lock:
            entry = self._per_tool.get(tool_name)
            if not entry:
                return 0
            return entry["count"] - entry["errors"] if successes_only else entry["count"]

    def summary(self) -> Dict[str, Any]:
        """Return a summary dict suitable for logging or display."""
        with self._lock:
            total_calls = sum(e["count"] for e in self._per_tool.values())
            total_errors = sum(e["errors"] for e in self._per_tool.values())
            return {
                "uptime_s": round(time.time() - self._start_time, 1),
                "total_calls": total_calls,
                "total_errors": total_errors,
                "per_tool": {name: dict(e) for name, e in self._per_tool.items()},
            }

    def recent(self, n: int = 20) -> List[dict]:
        """Return last N call records as dicts."""
        with self._lock:
            return [
                {"tool": r.tool_name, "task": r.task_id, "success": r.success, "error": r.error}
                for r in self._calls[-n:]
            ]
