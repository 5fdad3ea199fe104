"""Diff strategy contract and result values."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar, Union


@dataclass(frozen=True)
class DiffHints:
    """Optional 1-based line window the edit is expected to fall in."""
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass(frozen=True)
class DiffSuccess:
    content: str
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class DiffFailure:
    error: str
    details: Optional[Dict[str, Any]] = None
    fail_parts: Tuple["DiffFailure", ...] = ()
    success: bool = field(default=False, init=False)


DiffResult = Union[DiffSuccess, DiffFailure]

SpecT = TypeVar("SpecT")


class DiffStrategy(ABC, Generic[SpecT]):
    """Maps (original text, edit spec) to new text or a structured failure.

    Strategies are pure: they never touch the file system and never
    raise for a bad edit. Every outcome is a DiffResult.
    """

    name: str = "base"

    @abstractmethod
    def apply_diff(self, original: str, diff_spec: SpecT,
                   hints: Optional[DiffHints] = None) -> DiffResult:
        ...


def detect_line_ending(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def split_lines(text: str):
    """Split on LF or CRLF, keeping a trailing empty element like str.split."""
    return text.replace("\r\n", "\n").split("\n")


_LINE_NUMBER_RE = re.compile(r"^\s*\d+\s+\|(?!\|)")
_LINE_NUMBER_STRIP_RE = re.compile(r"^\s*\d+\s+\|(?!\|) ?")


def every_line_has_line_numbers(text: str) -> bool:
    """True when every line carries a ``N | `` prefix as produced by read_file."""
    lines = split_lines(text)
    return bool(text) and all(_LINE_NUMBER_RE.match(line) for line in lines)


def strip_line_numbers(text: str) -> str:
    line_ending = detect_line_ending(text)
    return line_ending.join(_LINE_NUMBER_STRIP_RE.sub("", line) for line in split_lines(text))
