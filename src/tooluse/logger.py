"""Observability logger for the tool-execution core.

Every dispatch, approval decision, edit-session transition, truncation
and subtask hand-off is written to .tooluse_output/tooluse.log so the
timeline of a task can be reconstructed after the fact.

Records carry the id of the task whose invocation is being handled
(bound with ``task_context``), so a parent and its subtasks can be told
apart in one log file.

Usage in any module:
    from .logger import get_logger
    log = get_logger("dispatcher")
    log.info("dispatching %s", name)

The log file rotates at 5 MB and keeps the last 5 files.
"""

import logging
import os
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

# ── Singleton state ──────────────────────────────────────────

_initialized = False
_log_dir: Optional[Path] = None
_task_id: ContextVar[str] = ContextVar("tooluse_task_id", default="-")

LOG_DIR_NAME = ".tooluse_output"


def _ensure_log_dir() -> Path:
    """Return (and create) the log directory."""
    global _log_dir
    if _log_dir is not None:
        return _log_dir
    _log_dir = Path.cwd() / LOG_DIR_NAME
    _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def init_logging(
    workspace: Optional[str] = None,
    level: int = logging.DEBUG,
) -> None:
    """Initialise the file logger.  Safe to call more than once."""
    global _initialized, _log_dir

    if workspace:
        _log_dir = Path(workspace) / LOG_DIR_NAME
        _log_dir.mkdir(parents=True, exist_ok=True)
    else:
        _ensure_log_dir()

    if _initialized:
        return
    _initialized = True

    root = logging.getLogger("tooluse")
    root.setLevel(level)

    if root.handlers:
        return

    log_path = _log_dir / "tooluse.log"

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=5 * 1024 * 1024,   # 5 MB per file
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d | %(levelname)-5s | %(task_id)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)
    handler.addFilter(TaskIdFilter())
    root.addHandler(handler)

    # Mirror to stderr while developing
    if os.environ.get("TOOLUSE_DEBUG"):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(fmt)
        stderr_handler.addFilter(TaskIdFilter())
        root.addHandler(stderr_handler)

    root.info(
        "=== Logging initialised === pid=%d python=%s log=%s",
        os.getpid(),
        sys.version.split()[0],
        log_path,
    )


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the 'tooluse' namespace.

    Initialises logging lazily so that module-level loggers created
    before init_logging() still write somewhere.
    """
    if not _initialized:
        init_logging()
    return logging.getLogger(f"tooluse.{name}")


class TaskIdFilter(logging.Filter):
    """Adds ``task_id`` to every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.task_id = _task_id.get()
        return True


@contextmanager
def task_context(task_id: str) -> Iterator[None]:
    """Stamp records logged inside the block with ``task_id``."""
    token = _task_id.set(task_id)
    try:
        yield
    finally:
        _task_id.reset(token)


# ── Convenience helpers ──────────────────────────────────────

def log_exception(logger: logging.Logger, msg: str, exc: BaseException) -> None:
    """Log an exception with full traceback."""
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("%s: %s\n%s", msg, exc, "".join(tb))


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate a string for log readability."""
    if not text:
        return "(empty)"
    text = text.replace("\n", "\\n")
    if len(text) <= max_len:
        return text
    return text[:max_len] + f"...[{len(text)} chars]"
