"""Hunk strategy: SEARCH/REPLACE blocks anchored to a line window.

The diff is one or more blocks of the form::

    <<<<<<< SEARCH
    exact lines currently in the file
    =======
    lines to put in their place
    >>>>>>> REPLACE

Each SEARCH section is first compared against the lines starting at
``start_line``; if that is not similar enough, the window
``[start_line - buffer, end_line + buffer]`` is scanned middle-out for
the best candidate. Similarity is ``difflib.SequenceMatcher.ratio()``
over the window with spaces and tabs normalised inside each line. Line
breaks are compared as-is, so with the default threshold of 1.0
only matches with the same line structure are accepted.

Application is all-or-nothing: if any block fails, no content is
returned and every failing block is listed in ``fail_parts``.
"""

import difflib
import re
from typing import List, Optional, Tuple, Union

from ..logger import get_logger
from ..responses import add_line_numbers
from .base import (
    DiffFailure,
    DiffHints,
    DiffResult,
    DiffStrategy,
    DiffSuccess,
    detect_line_ending,
    every_line_has_line_numbers,
    split_lines,
    strip_line_numbers,
)

log = get_logger("diff.hunk")

BLOCK_RE = re.compile(
    r"<{7}\s*SEARCH[ \t]*\n(.*?)\n?={7}[ \t]*\n(.*?)\n?>{7}[ \t]*REPLACE",
    re.DOTALL,
)

DIFF_FORMAT_HELP = (
    "<<<<<<< SEARCH\n"
    "[exact content to find including whitespace]\n"
    "=======\n"
    "[new content to replace with]\n"
    ">>>>>>> REPLACE"
)

_SMART_QUOTES = str.maketrans({
    "‘": "'", "’": "'", "“": '"', "”": '"',
})


def parse_search_replace_blocks(diff: str) -> List[Tuple[str, str]]:
    """Parse SEARCH/REPLACE blocks from diff string."""
    diff = diff.replace("\r\n", "\n").replace("\r", "\n")
    return [m.groups() for m in BLOCK_RE.finditer(diff)]


def _normalize(text: str) -> str:
    """Collapse runs of spaces and tabs within each line; line breaks are kept."""
    lines = text.translate(_SMART_QUOTES).split("\n")
    return "\n".join(re.sub(r"[ \t]+", " ", line).strip() for line in lines)


def similarity(candidate: str, search: str) -> float:
    """Score in [0, 1]; 1.0 means equal line for line after whitespace normalisation."""
    a, b = _normalize(candidate), _normalize(search)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return difflib.SequenceMatcher(None, a, b, autojunk=False).ratio()


def _indent_of(lines: List[str]) -> str:
    for line in lines:
        if line.strip():
            return line[:len(line) - len(line.lstrip())]
    return ""


def _reindent(replace_lines: List[str], search_indent: str, target_indent: str) -> List[str]:
    """Shift replacement lines from the SEARCH block's base indent to the file's."""
    if search_indent == target_indent:
        return list(replace_lines)
    out = []
    for line in replace_lines:
        if not line.strip():
            out.append(line)
        elif line.startswith(search_indent):
            out.append(target_indent + line[len(search_indent):])
        else:
            out.append(line)
    return out


class HunkDiffStrategy(DiffStrategy[str]):
    """SEARCH/REPLACE blocks located near an explicit line window."""

    name = "hunk"

    def __init__(self, fuzzy_threshold: float = 1.0, buffer_lines: int = 40):
        self.fuzzy_threshold = fuzzy_threshold
        self.buffer_lines = buffer_lines

    def apply_diff(self, original: str, diff_spec: str,
                   hints: Optional[DiffHints] = None) -> DiffResult:
        blocks = parse_search_replace_blocks(diff_spec)
        if not blocks:
            return DiffFailure(
                error="Invalid diff format - missing required SEARCH/REPLACE sections",
                details={"expected_format": DIFF_FORMAT_HELP},
            )

        line_ending = detect_line_ending(original)
        lines = split_lines(original)
        start = hints.start_line - 1 if hints and hints.start_line else None
        end = hints.end_line - 1 if hints and hints.end_line else None

        failures: List[DiffFailure] = []
        delta = 0
        for index, (search, replace) in enumerate(blocks, 1):
            if every_line_has_line_numbers(search) and (
                    not replace or every_line_has_line_numbers(replace)):
                search = strip_line_numbers(search)
                replace = strip_line_numbers(replace) if replace else replace

            shifted_end = end + delta if end is not None else None
            outcome = self._apply_block(lines, search, replace, start, shifted_end)
            if isinstance(outcome, DiffFailure):
                log.debug("hunk block %d/%d failed: %s", index, len(blocks),
                          outcome.error.splitlines()[0])
                failures.append(outcome)
                continue
            new_lines = outcome
            delta += len(new_lines) - len(lines)
            lines = new_lines

        if failures:
            if len(blocks) == 1:
                return failures[0]
            return DiffFailure(
                error=(f"Failed to apply {len(failures)} of {len(blocks)} diff blocks; "
                       "no changes were made to the file"),
                fail_parts=tuple(failures),
            )
        return DiffSuccess(content=line_ending.join(lines))

    # ── internals ────────────────────────────────────────────────

    def _apply_block(self, lines: List[str], search: str, replace: str,
                     start: Optional[int], end: Optional[int]) -> Union[List[str], DiffFailure]:
        replace_lines = split_lines(replace) if replace else []

        if not search.strip():
            if start is None:
                return DiffFailure(
                    error="Empty search content requires start_line to be specified",
                    details={"expected_format": DIFF_FORMAT_HELP},
                )
            # Pure insertion before start_line
            idx = min(max(start, 0), len(lines))
            return lines[:idx] + replace_lines + lines[idx:]

        search_lines = split_lines(search)
        n = len(search_lines)
        search_text = "\n".join(search_lines)

        match_idx, best_score = self._locate(lines, search_text, n, start, end)
        if match_idx is not None and best_score >= self.fuzzy_threshold:
            matched = lines[match_idx:match_idx + n]
            new_block = _reindent(replace_lines, _indent_of(search_lines), _indent_of(matched))
            return lines[:match_idx] + new_block + lines[match_idx + n:]

        return self._failure(lines, search_text, n, start, end, match_idx, best_score)

    def _search_range(self, total: int, n: int, start: Optional[int],
                      end: Optional[int]) -> Tuple[int, int]:
        if start is None:
            return 0, max(0, total - n)
        lo = max(0, start - self.buffer_lines)
        last = end if end is not None else start + n - 1
        hi = min(total - n, last + self.buffer_lines)
        return lo, max(lo, hi)

    def _locate(self, lines: List[str], search_text: str, n: int,
                start: Optional[int], end: Optional[int]) -> Tuple[Optional[int], float]:
        total = len(lines)
        if n > total:
            return None, 0.0

        if start is not None and 0 <= start <= total - n:
            score = similarity("\n".join(lines[start:start + n]), search_text)
            if score >= self.fuzzy_threshold:
                return start, score

        lo, hi = self._search_range(total, n, start, end)
        center = start if start is not None else lo
        best_idx: Optional[int] = None
        best_score = 0.0
        for i in sorted(range(lo, hi + 1), key=lambda i: abs(i - center)):
            score = similarity("\n".join(lines[i:i + n]), search_text)
            if score > best_score:
                best_score, best_idx = score, i
                if score == 1.0:
                    break
        return best_idx, best_score

    def _failure(self, lines: List[str], search_text: str, n: int,
                 start: Optional[int], end: Optional[int],
                 best_idx: Optional[int], best_score: float) -> DiffFailure:
        lo, hi = self._search_range(len(lines), n, start, end)
        range_label = f"lines {lo + 1}-{min(len(lines), hi + n)}"
        if best_idx is not None:
            best_match = add_line_numbers("\n".join(lines[best_idx:best_idx + n]), best_idx + 1)
            matched_range = f"lines {best_idx + 1}-{best_idx + n}"
        else:
            best_match = "(no match)"
            matched_range = None

        where = (f"at start: {start + 1} to end: {end + 1 if end is not None else start + n}"
                 if start is not None else "in the file")
        window_lo = max(0, start - 5) if start is not None else 0
        window_hi = min(len(lines), (end if end is not None else window_lo + n) + 5)
        original_window = add_line_numbers("\n".join(lines[window_lo:window_hi]), window_lo + 1)

        error = (
            f"No sufficiently similar match found {where} "
            f"({int(best_score * 100)}% similar, needs {int(self.fuzzy_threshold * 100)}%)\n\n"
            "Debug Info:\n"
            f"- Similarity Score: {int(best_score * 100)}%\n"
            f"- Required Threshold: {int(self.fuzzy_threshold * 100)}%\n"
            f"- Search Range: {range_label}\n"
            "- Tip: Use read_file to get the latest content of the file before attempting "
            "the diff again, as the file content may have changed\n\n"
            f"Search Content:\n{search_text}\n\n"
            f"Best Match Found:\n{best_match}\n\n"
            f"Original Content:\n{original_window}"
        )
        return DiffFailure(
            error=error,
            details={
                "similarity": round(best_score, 3),
                "threshold": self.fuzzy_threshold,
                "matched_range": matched_range,
                "search_range": range_label,
            },
        )
