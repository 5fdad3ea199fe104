"""Directory listing and regex search over the workspace."""

import os
import re
from collections import OrderedDict
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .logger import get_logger

if TYPE_CHECKING:
    from .ignore import IgnoreController

log = get_logger("workspace")

# Skipped when walking recursively, unless the listing starts inside one
SKIP_DIRS = frozenset({
    '.git', '.hg', '.svn', 'node_modules', '__pycache__', '.venv', 'venv',
    'env', 'dist', 'build', 'target', 'vendor', 'obj', 'bin',
    '.tox', '.mypy_cache', '.pytest_cache', '.ruff_cache', '.next',
    '.idea', '.vscode', '.tooluse_output',
})

MAX_SEARCH_FILE_SIZE = 1024 * 1024
MAX_LINE_LENGTH = 500
SEARCH_CONTEXT_LINES = 1


def _is_root(path: Path) -> bool:
    p = path.resolve()
    return p == Path(p.anchor) or p == Path.home()


def list_files(abs_path: str, recursive: bool, limit: int) -> Tuple[List[str], bool]:
    """Breadth-first listing of ``abs_path``.

    Returns absolute paths (directories end with ``/``) and whether the
    limit cut the listing short. Listing the filesystem root or the home
    directory returns only that path.
    """
    base = Path(abs_path)
    if _is_root(base):
        return [str(base)], False

    results: List[str] = []
    queue = [base]
    while queue:
        current = queue.pop(0)
        try:
            entries = sorted(current.iterdir(), key=lambda p: p.name.lower())
        except (PermissionError, FileNotFoundError, NotADirectoryError) as e:
            log.debug("cannot list %s: %s", current, e)
            continue
        for entry in entries:
            if len(results) >= limit:
                return results, True
            if entry.is_dir():
                results.append(str(entry) + "/")
                if recursive and entry.name not in SKIP_DIRS and not entry.name.startswith("."):
                    queue.append(entry)
            else:
                results.append(str(entry))
        if not recursive:
            break
    return results, False


def _iter_search_files(base: Path, file_pattern: Optional[str]):
    if base.is_file():
        yield base
        return
    for root, dirs, files in os.walk(base):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS and not d.startswith("."))
        for name in sorted(files):
            if file_pattern and not fnmatch(name, file_pattern):
                continue
            yield Path(root) / name


def regex_search_files(cwd: str, abs_path: str, regex: str, file_pattern: Optional[str] = None,
                       ignore: Optional["IgnoreController"] = None, limit: int = 300) -> str:
    """Search files under ``abs_path`` for ``regex``; results grouped by file.

    Each match is shown with one line of context on both sides. Raises
    ``re.error`` for an invalid pattern.
    """
    pattern = re.compile(regex)
    base = Path(abs_path)
    grouped: "OrderedDict[str, Dict[int, str]]" = OrderedDict()
    match_count = 0
    hit_limit = False

    for file_path in _iter_search_files(base, file_pattern):
        if ignore is not None and not ignore.validate_access(str(file_path)):
            continue
        try:
            if file_path.stat().st_size > MAX_SEARCH_FILE_SIZE:
                continue
            lines = file_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            log.debug("skipping %s: %s", file_path, e)
            continue

        for i, line in enumerate(lines):
            if not pattern.search(line):
                continue
            if match_count >= limit:
                hit_limit = True
                break
            match_count += 1
            rel = os.path.relpath(file_path, cwd).replace(os.sep, "/")
            shown = grouped.setdefault(rel, {})
            lo = max(0, i - SEARCH_CONTEXT_LINES)
            hi = min(len(lines), i + SEARCH_CONTEXT_LINES + 1)
            for j in range(lo, hi):
                shown[j + 1] = lines[j][:MAX_LINE_LENGTH]
        if hit_limit:
            break

    log.debug("search %r in %s: %d match(es)", regex, abs_path, match_count)
    if match_count == 0:
        return "Found 0 results."

    header = (f"Showing first {limit} of {limit}+ results. Use a more specific search if necessary."
              if hit_limit else f"Found {match_count} result{'s' if match_count != 1 else ''}.")
    blocks = []
    for rel, shown in grouped.items():
        out = [f"# {rel}"]
        prev = None
        for n in sorted(shown):
            if prev is not None and n > prev + 1:
                out.append("----")
            out.append(f"{n:3d} | {shown[n]}")
            prev = n
        out.append("----")
        blocks.append("\n".join(out))
    return header + "\n\n" + "\n\n".join(blocks)
