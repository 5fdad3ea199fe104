"""Diff application strategies."""

from .base import (
    DiffFailure,
    DiffHints,
    DiffResult,
    DiffStrategy,
    DiffSuccess,
    every_line_has_line_numbers,
    strip_line_numbers,
)
from .hunk import HunkDiffStrategy, parse_search_replace_blocks, similarity
from .insert_groups import InsertGroup, InsertGroupsStrategy, insert_groups
from .search_replace import SearchReplaceStrategy

__all__ = [
    "DiffFailure",
    "DiffHints",
    "DiffResult",
    "DiffStrategy",
    "DiffSuccess",
    "every_line_has_line_numbers",
    "strip_line_numbers",
    "HunkDiffStrategy",
    "parse_search_replace_blocks",
    "similarity",
    "InsertGroup",
    "InsertGroupsStrategy",
    "insert_groups",
    "SearchReplaceStrategy",
]
