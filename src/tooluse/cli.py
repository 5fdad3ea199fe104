"""Command-line interface: replay recorded tool invocations through a task."""

import asyncio
import argparse
import sys
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple
from dataclasses import dataclass, field, asdict

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config
from .host import ConsolePrompt, HostServices
from .logger import get_logger, init_logging, log_exception
from .models import ToolInvocation, result_text
from .task import EMPTY_RESULT, Task, describe
from .tool_registry import TOOL_DEFS

log = get_logger("cli")


@dataclass
class ReplayResult:
    """Structured outcome of a replay run."""
    task_id: str
    invocations: int = 0
    completed: int = 0
    skipped_lines: List[int] = field(default_factory=list)
    final_state: str = ""
    error: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_invocations(path: Path) -> Iterator[Tuple[int, Optional[ToolInvocation], Optional[str]]]:
    """Yield (line number, invocation or None, parse error or None) per JSONL line.

    Blank lines and lines starting with '#' are ignored.
    """
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                yield lineno, ToolInvocation.model_validate_json(line), None
            except ValidationError as e:
                yield lineno, None, str(e).splitlines()[0]


def _watch(task: Task, console: Console, seen: Set[str]) -> None:
    if task.task_id in seen:
        return
    seen.add(task.task_id)

    def on_result(name: str, result) -> None:
        console.print(Panel(result_text(result) or EMPTY_RESULT,
                            title=f"{name} result ({task.task_id})", border_style="green"))

    task.on("tool_result", on_result)
    task.on("spawned", lambda child_id: console.print(f"[cyan]subtask {child_id} started[/cyan]"))
    task.on("resumed", lambda: console.print(f"[cyan]task {task.task_id} resumed[/cyan]"))


async def replay(path: Path, config: Config, console: Console, initial_task: str) -> ReplayResult:
    services = HostServices.local(ConsolePrompt(console), config.mcp_servers)
    root = Task(config, services)
    init_logging(workspace=str(config.workspace_path))
    root.start(initial_task)

    result = ReplayResult(task_id=root.task_id)
    seen: Set[str] = set()
    try:
        for lineno, invocation, error in load_invocations(path):
            if invocation is None:
                console.print(f"[red]line {lineno}: invalid invocation: {error}[/red]")
                result.skipped_lines.append(lineno)
                continue
            active = root.subtasks.active or root
            if not active.is_live:
                console.print(f"[yellow]task {active.task_id} is {active.state.value}; "
                              f"stopping at line {lineno}[/yellow]")
                break
            _watch(active, console, seen)
            result.invocations += 1
            if await active.handle_invocation(invocation):
                result.completed += 1
                active.finish_turn()
    except Exception as e:
        log_exception(log, "replay failed", e)
        result.error = str(e)
        await root.abort()
    finally:
        if services.browser is not None and services.browser.is_open:
            await services.browser.close()
        if services.mcp is not None:
            await services.mcp.close()

    result.final_state = root.state.value
    result.metrics = services.metrics.summary()
    log.info("replay finished: %s", describe(root))
    return result


def print_metrics(console: Console, summary: Dict[str, Any]) -> None:
    table = Table(title="Tool usage")
    table.add_column("Tool", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Errors", justify="right", style="red")
    for name, entry in sorted(summary["per_tool"].items()):
        table.add_row(name, str(entry["count"]), str(entry["errors"]))
    console.print(table)


def list_tools(console: Console) -> None:
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Approval category")
    table.add_column("Writes files")
    table.add_column("Required parameters")
    for tool_def in TOOL_DEFS:
        table.add_row(tool_def.name.value, tool_def.category, "yes" if tool_def.mutates else "",
                      ", ".join(tool_def.required_params))
    console.print(table)


def run_replay(args: argparse.Namespace) -> int:
    console = Console()
    config = Config.from_env(Path(args.env))
    if args.workspace:
        config.workspace_path = Path(args.workspace)
    if args.auto_approve:
        config.auto_approve = [c.strip() for c in args.auto_approve.split(",") if c.strip()]
    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return 2

    path = Path(args.file)
    if not path.exists():
        console.print(f"[red]No such file: {path}[/red]")
        return 2

    result = asyncio.run(replay(path, config, console, args.message or f"Replay of {path.name}"))
    if args.output_format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_metrics(console, result.metrics)
        console.print(f"[bold]{result.completed}[/bold] of {result.invocations} invocation(s) "
                      f"completed; task {result.task_id} is {result.final_state}")
        if result.error:
            console.print(f"[red]Error: {result.error}[/red]")
    return 1 if result.error else 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run recorded tool invocations through the tool-execution core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replay a session, asking for approval on the console
  tooluse replay session.jsonl

  # Auto-approve reads and writes, JSON summary
  tooluse replay session.jsonl --auto-approve read,write --output-format json

  # Show the tool table
  tooluse tools
        """
    )
    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser("replay", help="Replay a JSONL file of invocations")
    replay_parser.add_argument("file", help="JSONL file, one {name, params, partial} object per line")
    replay_parser.add_argument(
        "-w", "--workspace",
        type=str,
        default=None,
        help="Workspace directory (default: TOOLUSE_WORKSPACE or current directory)"
    )
    replay_parser.add_argument(
        "-m", "--message",
        type=str,
        help="Task text for the initial user turn"
    )
    replay_parser.add_argument(
        "--auto-approve",
        type=str,
        default=None,
        help="Comma-separated approval categories that skip the prompt"
    )
    replay_parser.add_argument(
        "-e", "--env",
        type=str,
        default=".env",
        help="Path to .env file (default: .env)"
    )
    replay_parser.add_argument(
        "--output-format",
        choices=["human", "json"],
        default="human",
        help="Output format (default: human)"
    )

    subparsers.add_parser("tools", help="List the tools and their approval categories")

    args = parser.parse_args()

    if args.command == "replay":
        sys.exit(run_replay(args))
    elif args.command == "tools":
        list_tools(Console())
        sys.exit(0)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
