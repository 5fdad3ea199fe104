"""Top-level source definitions (classes, functions, types) for a file or directory."""

import ast
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from .logger import get_logger

if TYPE_CHECKING:
    from .host import FileSystem
    from .ignore import IgnoreController

log = get_logger("code_definitions")

SUPPORTED_EXTENSIONS = {
    ".py", ".js", ".jsx", ".ts", ".tsx", ".go", ".rs", ".java", ".kt",
    ".c", ".h", ".cpp", ".hpp", ".cs", ".rb", ".php", ".swift",
}

MAX_DIRECTORY_FILES = 50

_DEFINITION_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?"
    r"(?:abstract\s+|static\s+|public\s+|private\s+|protected\s+|final\s+)*"
    r"(?:def|class|func|function|fn|interface|type|struct|enum|trait|impl|module|object)\b"
    r"\s*[\w<(]"
)
_ARROW_RE = re.compile(r"^\s*(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?\([^)]*\)\s*=>")


@dataclass
class Definition:
    start_line: int  # 1-based
    end_line: int
    text: str


def _python_definitions(source: str) -> Optional[List[Definition]]:
    try:
        tree = ast.parse(source)
    except (SyntaxError, ValueError):
        return None
    lines = source.splitlines()
    defs: List[Definition] = []

    def visit(nodes, depth):
        for node in nodes:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                start = node.lineno
                end = getattr(node, "end_lineno", None) or start
                defs.append(Definition(start, end, lines[start - 1].rstrip()))
                # Methods, but not functions nested inside functions
                if isinstance(node, ast.ClassDef) and depth == 0:
                    visit(node.body, depth + 1)

    visit(tree.body, 0)
    return defs


def _regex_definitions(source: str) -> List[Definition]:
    defs = []
    for i, line in enumerate(source.splitlines(), 1):
        if _DEFINITION_RE.match(line) or _ARROW_RE.match(line):
            defs.append(Definition(i, i, line.rstrip()))
    return defs


def extract_definitions(file_name: str, source: str) -> List[Definition]:
    ext = os.path.splitext(file_name)[1].lower()
    if ext == ".py":
        parsed = _python_definitions(source)
        if parsed is not None:
            return parsed
    return _regex_definitions(source)


def format_definitions(file_name: str, defs: List[Definition]) -> Optional[str]:
    if not defs:
        return None
    body = "\n".join(
        f"{d.start_line}--{d.end_line} | {d.text}" if d.end_line != d.start_line
        else f"{d.start_line} | {d.text}"
        for d in defs
    )
    return f"# {file_name}\n{body}"


async def definitions_for_file(abs_path: str, fs: "FileSystem",
                               ignore: Optional["IgnoreController"] = None) -> Optional[str]:
    """Formatted definitions for one file, or None when there are none."""
    if ignore is not None and not ignore.validate_access(abs_path):
        return None
    if os.path.splitext(abs_path)[1].lower() not in SUPPORTED_EXTENSIONS:
        return None
    source = await fs.read_text(abs_path)
    return format_definitions(os.path.basename(abs_path), extract_definitions(abs_path, source))


async def definitions_for_directory(abs_dir: str, fs: "FileSystem",
                                    ignore: Optional["IgnoreController"] = None) -> str:
    """Definitions for the supported files directly inside ``abs_dir``."""
    try:
        names = sorted(os.listdir(abs_dir))
    except OSError as e:
        log.warning("cannot list %s: %s", abs_dir, e)
        return "No source code definitions found."

    results = []
    files = [n for n in names
             if os.path.isfile(os.path.join(abs_dir, n))
             and os.path.splitext(n)[1].lower() in SUPPORTED_EXTENSIONS][:MAX_DIRECTORY_FILES]
    for name in files:
        path = os.path.join(abs_dir, name)
        try:
            formatted = await definitions_for_file(path, fs, ignore)
        except (OSError, UnicodeDecodeError) as e:
            log.debug("skipping %s: %s", path, e)
            continue
        if formatted:
            results.append(formatted)
    return "\n\n".join(results) if results else "No source code definitions found."
