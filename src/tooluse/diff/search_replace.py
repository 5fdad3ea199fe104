"""Search-and-replace strategy over a list of structured operations.

Operations use JavaScript-style regex flags (``g``, ``i``, ``m``, ``s``)
and replacement templates (``$1``, ``$&``, ``$<name>``, ``$$``) because
that is what models emit; both are translated to Python ``re``.
Without ``use_regex`` the search text is escaped and the replacement is
inserted literally.
"""

import re
from typing import Callable, List, Optional, Tuple

from ..logger import get_logger
from ..models import SearchReplaceOperation
from .base import (
    DiffFailure,
    DiffHints,
    DiffResult,
    DiffStrategy,
    DiffSuccess,
    detect_line_ending,
    split_lines,
)

log = get_logger("diff.search_replace")

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Accepted but meaningless for Python's re
_IGNORED_FLAGS = set("gud")

_TEMPLATE_RE = re.compile(r"\$(\$|&|`|'|\d{1,2}|<[^>]*>)")


def effective_flags(op: SearchReplaceOperation) -> str:
    """JS flag string for an operation.

    Defaults to ``g`` (``gi`` with ignore_case); a line range forces ``m``
    so ``^``/``$`` anchor per line inside the slice.
    """
    flags = op.regex_flags if op.regex_flags is not None else ("gi" if op.ignore_case else "g")
    if op.has_range and "m" not in flags:
        flags += "m"
    return flags


def compile_flags(flags: str) -> Tuple[int, bool]:
    """Translate a JS flag string to (re flags, is_global)."""
    value = 0
    for ch in flags:
        if ch in _FLAG_MAP:
            value |= _FLAG_MAP[ch]
        elif ch not in _IGNORED_FLAGS:
            raise ValueError(f"Unsupported regex flag '{ch}'")
    return value, "g" in flags


def js_replacement(template: str) -> Callable[["re.Match[str]"], str]:
    """Build a replacement function honouring JS ``$`` substitutions."""

    def expand(match: "re.Match[str]") -> str:
        subject = match.string

        def sub(tok: "re.Match[str]") -> str:
            code = tok.group(1)
            if code == "$":
                return "$"
            if code == "&":
                return match.group(0)
            if code == "`":
                return subject[:match.start()]
            if code == "'":
                return subject[match.end():]
            if code.startswith("<"):
                name = code[1:-1]
                if name in match.re.groupindex:
                    return match.group(name) or ""
                return tok.group(0)
            # $nn: prefer the two-digit group when it exists, like JS
            if len(code) == 2 and int(code) <= match.re.groups and int(code) > 0:
                return match.group(int(code)) or ""
            if 0 < int(code[0]) <= match.re.groups:
                return (match.group(int(code[0])) or "") + code[1:]
            return tok.group(0)

        return _TEMPLATE_RE.sub(sub, template)

    return expand


def build_pattern(op: SearchReplaceOperation) -> Tuple["re.Pattern[str]", bool]:
    flags, is_global = compile_flags(effective_flags(op))
    source = op.search if op.use_regex else re.escape(op.search)
    return re.compile(source, flags), is_global


def _replace(pattern: "re.Pattern[str]", is_global: bool, text: str,
             op: SearchReplaceOperation) -> str:
    if op.use_regex:
        repl = js_replacement(op.replace)
    else:
        literal = op.replace
        repl = lambda _m: literal  # noqa: E731
    return pattern.sub(repl, text, count=0 if is_global else 1)


class SearchReplaceStrategy(DiffStrategy[List[SearchReplaceOperation]]):
    """Applies operations in order; each sees the previous one's output."""

    name = "search_and_replace"

    def apply_diff(self, original: str, diff_spec: List[SearchReplaceOperation],
                   hints: Optional[DiffHints] = None) -> DiffResult:
        line_ending = detect_line_ending(original)
        lines = split_lines(original)
        failures: List[DiffFailure] = []

        for index, op in enumerate(diff_spec, 1):
            try:
                pattern, is_global = build_pattern(op)
            except (re.error, ValueError) as e:
                failures.append(DiffFailure(
                    error=f"Operation {index}: invalid search pattern: {e}",
                    details={"search": op.search, "flags": effective_flags(op)},
                ))
                continue

            if op.has_range:
                start = max((op.start_line or 1) - 1, 0)
                end = min((op.end_line or len(lines)) - 1, len(lines) - 1)
                if start > end:
                    failures.append(DiffFailure(
                        error=(f"Operation {index}: start_line {op.start_line} is beyond the "
                               f"end of the file ({len(lines)} lines)"),
                    ))
                    continue
                target = "\n".join(lines[start:end + 1])
                modified = _replace(pattern, is_global, target, op)
                lines = lines[:start] + modified.split("\n") + lines[end + 1:]
            else:
                modified = _replace(pattern, is_global, "\n".join(lines), op)
                lines = modified.split("\n")

        if failures:
            if len(diff_spec) == 1:
                return failures[0]
            return DiffFailure(
                error=(f"Failed to apply {len(failures)} of {len(diff_spec)} operations; "
                       "no changes were made to the file"),
                fail_parts=tuple(failures),
            )
        log.debug("search_and_replace applied %d operation(s)", len(diff_spec))
        return DiffSuccess(content=line_ending.join(lines))
