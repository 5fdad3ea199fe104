"""In-memory collaborators for driving tasks and handlers in tests."""

import inspect
import os
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tooluse.config import Config
from tooluse.context_management import TokenCounter, estimate_tokens
from tooluse.host import HeadlessEditor, HostServices, LocalFileSystem, ProcessResult
from tooluse.models import (AskResponse, AskResponseKind, BrowserActionResult, McpResourceResponse,
                            McpToolCallResponse, TextBlock, ToolInvocation)
from tooluse.task import Task


def yes(text: Optional[str] = None) -> AskResponse:
    return AskResponse(response=AskResponseKind.YES, text=text)


def no(text: Optional[str] = None) -> AskResponse:
    return AskResponse(response=AskResponseKind.NO, text=text)


def reply(text: str) -> AskResponse:
    return AskResponse(response=AskResponseKind.MESSAGE, text=text)


class FakePrompt:
    """Answers complete asks from a queue (YES once it runs dry) and records everything."""

    def __init__(self, answers: Optional[List[AskResponse]] = None):
        self.answers = list(answers or [])
        self.asks = []
        self.says = []

    async def ask(self, kind, text="", partial=False):
        self.asks.append((kind, text, partial))
        if partial:
            return None
        if self.answers:
            return self.answers.pop(0)
        return yes()

    async def say(self, kind, text="", images=None, partial=False):
        self.says.append((kind, text, images, partial))

    def complete_asks(self, kind: Optional[str] = None):
        return [a for a in self.asks if not a[2] and (kind is None or a[0] == kind)]

    def said(self, kind: str) -> List[str]:
        return [s[1] for s in self.says if s[0] == kind and not s[3]]


class RecordingFileSystem(LocalFileSystem):
    """Local disk, plus a log of every mutating call."""

    def __init__(self):
        self.writes: List[str] = []
        self.removes: List[str] = []
        self.made_dirs: List[str] = []

    @property
    def mutations(self) -> int:
        return len(self.writes) + len(self.removes) + len(self.made_dirs)

    async def write_text(self, path, content):
        self.writes.append(path)
        await super().write_text(path, content)

    async def remove(self, path):
        self.removes.append(path)
        await super().remove(path)

    async def make_dirs(self, path):
        created = await super().make_dirs(path)
        self.made_dirs.extend(created)
        return created


class FakeProcessRunner:
    def __init__(self, output: str = "", exit_code: int = 0, timed_out: bool = False,
                 cancelled: bool = False):
        self.output = output
        self.exit_code = exit_code
        self.timed_out = timed_out
        self.cancelled = cancelled
        self.calls = []
        self.cancel_calls = 0

    async def run(self, command, cwd, on_line=None, timeout=None):
        self.calls.append((command, cwd, timeout))
        for line in self.output.splitlines():
            if on_line is not None:
                maybe = on_line(line)
                if inspect.isawaitable(maybe):
                    await maybe
        return ProcessResult(output=self.output, exit_code=self.exit_code,
                             timed_out=self.timed_out, cancelled=self.cancelled)

    def cancel(self):
        self.cancel_calls += 1


SCREENSHOT = "data:image/png;base64,iVBORw0KGgo="


class FakeBrowser:
    def __init__(self):
        self.open = False
        self.actions = []

    @property
    def is_open(self):
        return self.open

    def _result(self):
        return BrowserActionResult(screenshot=SCREENSHOT, logs="[log] ready", current_url="http://x")

    async def launch(self, url):
        self.actions.append(("launch", url))
        self.open = True
        return self._result()

    async def click(self, coordinate):
        self.actions.append(("click", coordinate))
        return self._result()

    async def type(self, text):
        self.actions.append(("type", text))
        return self._result()

    async def scroll_down(self):
        self.actions.append(("scroll_down",))
        return self._result()

    async def scroll_up(self):
        self.actions.append(("scroll_up",))
        return self._result()

    async def close(self):
        self.actions.append(("close",))
        self.open = False
        return BrowserActionResult()


class FakeMcpHub:
    def __init__(self):
        self.calls = []
        self.tool_response = McpToolCallResponse(content=[{"type": "text", "text": "42"}])
        self.resource_response = McpResourceResponse(contents=[{"uri": "res://a", "text": "body"}])

    async def call_tool(self, server_name, tool_name, arguments=None):
        self.calls.append(("call_tool", server_name, tool_name, arguments))
        return self.tool_response

    async def read_resource(self, server_name, uri):
        self.calls.append(("read_resource", server_name, uri))
        return self.resource_response

    async def close(self):
        pass


class EstimateCounter(TokenCounter):
    """Character-based counting; never loads tiktoken."""

    def count(self, text: str) -> int:
        return estimate_tokens(text) if text else 0


def make_task(workspace, answers: Optional[List[AskResponse]] = None, **config_fields) -> Task:
    config = Config(workspace_path=Path(workspace), **config_fields)
    services = HostServices(
        prompt=FakePrompt(answers),
        fs=RecordingFileSystem(),
        editor=HeadlessEditor(),
        processes=FakeProcessRunner(),
        mcp=FakeMcpHub(),
        browser=FakeBrowser(),
    )
    return Task(config, services, counter=EstimateCounter())


def invocation(name: str, partial: bool = False, **params) -> ToolInvocation:
    return ToolInvocation(name=name, params={k: str(v) for k, v in params.items()}, partial=partial)


def results(task: Task) -> List[str]:
    """Text of each pushed result in the pending user turn (headers removed)."""
    out: List[str] = []
    for block in task.user_content:
        if not isinstance(block, TextBlock):
            continue
        if block.text.endswith("] Result:"):
            out.append("")
        elif out:
            out[-1] = f"{out[-1]}\n\n{block.text}" if out[-1] else block.text
    return out


def last_result(task: Task) -> str:
    pushed = results(task)
    return pushed[-1] if pushed else ""


def write(workspace, rel_path: str, content: str) -> Path:
    path = Path(workspace) / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
