"""Narrow interfaces to the hosting shell, plus local implementations.

The core never talks to a UI, a file system or a subprocess directly;
it goes through the protocols below. ``HostServices`` bundles one
implementation of each and is handed to a task at construction time.
"""

import asyncio
import inspect
import json
import os
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os
import psutil
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from .logger import get_logger, log_exception, truncate as log_truncate
from .models import AskResponse, AskResponseKind
from .tool_registry import ToolMetrics

log = get_logger("host")


# ── Prompt ───────────────────────────────────────────────────────

@runtime_checkable
class HostPrompt(Protocol):
    """Human-facing channel.

    ``ask`` with ``partial=True`` only renders an in-progress request and
    returns None; with ``partial=False`` it blocks until the human answers.
    """

    async def ask(self, kind: str, text: str = "", partial: bool = False) -> Optional[AskResponse]:
        ...

    async def say(self, kind: str, text: str = "", images: Optional[List[str]] = None,
                  partial: bool = False) -> None:
        ...


class ConsolePrompt:
    """HostPrompt on a rich console, for the replay CLI."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    async def ask(self, kind: str, text: str = "", partial: bool = False) -> Optional[AskResponse]:
        if partial:
            return None
        body = _pretty(text) or "(no details)"
        self.console.print(Panel(body, title=f"ask: {kind}", border_style="yellow"))
        answer = await asyncio.to_thread(
            Prompt.ask, "[bold]Approve?[/bold] (y / n / or type feedback)", default="y"
        )
        answer = answer.strip()
        if answer.lower() in ("y", "yes"):
            return AskResponse(response=AskResponseKind.YES)
        if answer.lower() in ("n", "no"):
            return AskResponse(response=AskResponseKind.NO)
        return AskResponse(response=AskResponseKind.MESSAGE, text=answer)

    async def say(self, kind: str, text: str = "", images: Optional[List[str]] = None,
                  partial: bool = False) -> None:
        if partial:
            return
        style = "red" if kind.endswith("error") else "dim"
        suffix = f" [+{len(images)} image(s)]" if images else ""
        self.console.print(f"[{style}]{kind}:[/{style}] {_pretty(text)}{suffix}")


def _pretty(text: str) -> str:
    try:
        return json.dumps(json.loads(text), indent=2)
    except (ValueError, TypeError):
        return text


# ── File system ──────────────────────────────────────────────────

@dataclass
class FileStat:
    exists: bool
    is_file: bool = False
    is_dir: bool = False
    size: int = 0


@runtime_checkable
class FileSystem(Protocol):
    async def read_text(self, path: str) -> str: ...
    async def write_text(self, path: str, content: str) -> None: ...
    async def stat(self, path: str) -> FileStat: ...
    async def remove(self, path: str) -> None: ...
    async def make_dirs(self, path: str) -> List[str]: ...
    async def remove_dir(self, path: str) -> None: ...
    async def is_binary(self, path: str) -> bool: ...


class LocalFileSystem:
    """FileSystem over the local disk using aiofiles."""

    async def read_text(self, path: str) -> str:
        async with aiofiles.open(path, "r", encoding="utf-8", newline="") as f:
            return await f.read()

    async def write_text(self, path: str, content: str) -> None:
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)

    async def stat(self, path: str) -> FileStat:
        try:
            st = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return FileStat(exists=False)
        is_dir = os.path.isdir(path)
        return FileStat(exists=True, is_file=not is_dir, is_dir=is_dir, size=st.st_size)

    async def remove(self, path: str) -> None:
        await aiofiles.os.remove(path)

    async def make_dirs(self, path: str) -> List[str]:
        """Create ``path`` and missing parents; return the ones created."""
        created = []
        current = Path(path)
        while not current.exists():
            created.append(str(current))
            if current.parent == current:
                break
            current = current.parent
        if created:
            await aiofiles.os.makedirs(path, exist_ok=True)
        return list(reversed(created))

    async def remove_dir(self, path: str) -> None:
        await aiofiles.os.rmdir(path)

    async def is_binary(self, path: str) -> bool:
        async with aiofiles.open(path, "rb") as f:
            chunk = await f.read(8192)
        if b"\x00" in chunk:
            return True
        try:
            chunk.decode("utf-8")
        except UnicodeDecodeError as e:
            # A multi-byte character cut at the chunk boundary is still text
            return e.start < len(chunk) - 4
        return False


# ── Editor surface ───────────────────────────────────────────────

@runtime_checkable
class EditorSurface(Protocol):
    """Where a proposed edit is previewed and possibly hand-edited."""

    async def open(self, path: str, original: Optional[str]) -> None: ...
    async def show(self, content: str, is_final: bool) -> None: ...
    async def current_content(self) -> str: ...
    async def close(self) -> None: ...
    def diagnostics(self, path: str) -> List[str]: ...


class HeadlessEditor:
    """EditorSurface with no UI: the proposal is accepted as shown.

    ``user_override`` lets a caller simulate a human editing the preview
    before it is saved.
    """

    def __init__(self):
        self.path: Optional[str] = None
        self.content: str = ""
        self.user_override: Optional[str] = None
        self.problems: Dict[str, List[str]] = {}
        self.updates = 0

    async def open(self, path: str, original: Optional[str]) -> None:
        self.path = path
        self.content = original or ""
        self.updates = 0

    async def show(self, content: str, is_final: bool) -> None:
        self.content = content
        self.updates += 1

    async def current_content(self) -> str:
        if self.user_override is not None:
            return self.user_override
        return self.content

    async def close(self) -> None:
        self.path = None
        self.user_override = None

    def diagnostics(self, path: str) -> List[str]:
        return list(self.problems.get(path, []))


# ── Processes ────────────────────────────────────────────────────

@dataclass
class ProcessResult:
    output: str
    exit_code: Optional[int]
    timed_out: bool = False
    cancelled: bool = False


LineCallback = Callable[[str], Union[None, Awaitable[None]]]


@runtime_checkable
class ProcessRunner(Protocol):
    async def run(self, command: str, cwd: str, on_line: Optional[LineCallback] = None,
                  timeout: Optional[float] = None) -> ProcessResult: ...

    def cancel(self) -> None: ...


def kill_process_tree(pid: int, timeout: float = 3.0) -> None:
    """Kill a process and all its descendants, children first."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    children = []
    try:
        children = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass

    for proc in list(reversed(children)) + [parent]:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    _gone, alive = psutil.wait_procs(children + [parent], timeout=timeout)
    for proc in alive:
        log.warning("process %d survived kill", proc.pid)


class LocalProcessRunner:
    """Runs shell commands with merged, line-streamed output."""

    def __init__(self):
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def run(self, command: str, cwd: str, on_line: Optional[LineCallback] = None,
                  timeout: Optional[float] = None) -> ProcessResult:
        self._cancelled = False
        log.info("run: cwd=%s cmd=%s", cwd, log_truncate(command, 200))
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            start_new_session=sys.platform != "win32",
            limit=1024 * 1024,
        )
        self._proc = proc
        lines: List[str] = []

        async def pump():
            assert proc.stdout is not None
            async for raw in proc.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                lines.append(line)
                if on_line is not None:
                    maybe = on_line(line)
                    if inspect.isawaitable(maybe):
                        await maybe
            await proc.wait()

        timed_out = False
        try:
            await asyncio.wait_for(pump(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            log.warning("command timed out after %ss: %s", timeout, log_truncate(command, 80))
            kill_process_tree(proc.pid)
            await proc.wait()
        except Exception as e:
            log_exception(log, "process pump failed", e)
            kill_process_tree(proc.pid)
            raise
        finally:
            self._proc = None

        return ProcessResult(
            output="\n".join(lines),
            exit_code=proc.returncode,
            timed_out=timed_out,
            cancelled=self._cancelled,
        )

    def cancel(self) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        self._cancelled = True
        log.info("cancelling process %d", proc.pid)
        if sys.platform != "win32":
            try:
                os.killpg(proc.pid, signal.SIGTERM)
            except (ProcessLookupError, PermissionError):
                pass
        kill_process_tree(proc.pid)


# ── Bundle ───────────────────────────────────────────────────────

@dataclass
class HostServices:
    """Concrete collaborators for one task, injected at task start."""
    prompt: HostPrompt
    fs: FileSystem = field(default_factory=LocalFileSystem)
    editor: EditorSurface = field(default_factory=HeadlessEditor)
    processes: ProcessRunner = field(default_factory=LocalProcessRunner)
    mcp: Optional[object] = None       # McpHub
    browser: Optional[object] = None   # BrowserSession
    metrics: ToolMetrics = field(default_factory=ToolMetrics)

    @classmethod
    def local(cls, prompt: HostPrompt, mcp_servers: Optional[Dict[str, str]] = None) -> "HostServices":
        """Local disk, headless editor, HTTP MCP servers, Playwright browser."""
        from .browser import PlaywrightBrowserSession
        from .mcp_hub import HttpMcpHub

        return cls(
            prompt=prompt,
            mcp=HttpMcpHub(mcp_servers or {}),
            browser=PlaywrightBrowserSession(),
        )
