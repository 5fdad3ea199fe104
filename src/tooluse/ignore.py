"""Path access policy driven by a gitignore-style file at the workspace root.

Patterns follow .gitignore semantics (matched with ``pathspec``):
globs, ``**`` segments, directory-only patterns, negation and anchoring.
Paths outside the workspace are never blocked.
"""

import os
import shlex
from pathlib import Path
from typing import Iterable, Optional

import pathspec

from .logger import get_logger

log = get_logger("ignore")

# Commands whose arguments are file paths that get read
FILE_READING_COMMANDS = {
    "cat", "less", "more", "head", "tail", "grep", "awk", "sed",
    "type", "get-content", "gc", "select-string", "sls",
}


class IgnoreController:
    def __init__(self, cwd: str, ignore_file_name: str = ".tooluseignore"):
        self.cwd = os.path.abspath(cwd)
        self.ignore_file_name = ignore_file_name
        self._spec: Optional[pathspec.PathSpec] = None
        self.load()

    @property
    def ignore_file_path(self) -> Path:
        return Path(self.cwd) / self.ignore_file_name

    @property
    def active(self) -> bool:
        return self._spec is not None

    def load(self) -> None:
        """(Re)load patterns from the ignore file."""
        self._spec = None
        path = self.ignore_file_path
        if not path.exists():
            return
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            log.warning("could not read %s: %s", path, e)
            return
        self.set_patterns(content.splitlines())
        log.info("loaded ignore patterns from %s", path)

    def set_patterns(self, lines: Iterable[str]) -> None:
        spec = pathspec.PathSpec.from_lines("gitwildmatch", lines)
        # Comment and blank lines compile to patterns with include=None
        self._spec = spec if any(p.include is not None for p in spec.patterns) else None

    def _relative(self, path: str) -> Optional[str]:
        abs_path = os.path.abspath(os.path.join(self.cwd, path))
        rel = os.path.relpath(abs_path, self.cwd)
        if rel == "." or rel.startswith(".." + os.sep) or rel == "..":
            return None
        return rel.replace(os.sep, "/")

    def validate_access(self, path: str) -> bool:
        """True when the policy allows reading or writing ``path``."""
        if self._spec is None:
            return True
        rel = self._relative(path)
        if rel is None:
            return True
        is_dir = os.path.isdir(os.path.join(self.cwd, rel))
        return not self._spec.match_file(rel + "/" if is_dir else rel)

    def validate_command(self, command: str) -> Optional[str]:
        """Return the first blocked path a file-reading command would touch."""
        if self._spec is None:
            return None
        try:
            tokens = shlex.split(command)
        except ValueError:
            tokens = command.split()
        if not tokens:
            return None
        if tokens[0].lower() not in FILE_READING_COMMANDS:
            return None
        for arg in tokens[1:]:
            if arg.startswith("-") or (":" in arg and not os.path.isabs(arg)):
                continue
            if not self.validate_access(arg):
                return arg
        return None
