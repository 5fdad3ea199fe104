"""Insert-groups strategy: add blocks of lines at fixed positions."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .base import DiffHints, DiffResult, DiffStrategy, DiffSuccess, detect_line_ending, split_lines
from ..models import InsertOperation


@dataclass(frozen=True)
class InsertGroup:
    """Lines to insert before the 0-based ``index`` of the original list.

    An index past the end (or negative) appends.
    """
    index: int
    elements: List[str]


def insert_groups(original: Sequence[str], groups: Sequence[InsertGroup]) -> List[str]:
    """Insert every group against the ORIGINAL indices.

    Groups are applied in index order while walking the original list
    once, so an earlier insertion never shifts a later group's target.
    Groups with the same index keep their given order.
    """
    total = len(original)
    ordered = sorted(
        ((g.index if 0 <= g.index <= total else total, pos, g) for pos, g in enumerate(groups)),
        key=lambda t: (t[0], t[1]),
    )
    result: List[str] = []
    cursor = 0
    for index, _pos, group in ordered:
        result.extend(original[cursor:index])
        result.extend(group.elements)
        cursor = index
    result.extend(original[cursor:])
    return result


def to_insert_groups(operations: Sequence[InsertOperation], line_count: int) -> List[InsertGroup]:
    """Map 1-based ``start_line`` values to 0-based insertion indices.

    ``start_line`` 0 means append.
    """
    groups = []
    for op in operations:
        index = op.start_line - 1 if op.start_line > 0 else line_count
        groups.append(InsertGroup(index=index, elements=op.content.split("\n")))
    return groups


class InsertGroupsStrategy(DiffStrategy[List[InsertOperation]]):
    name = "insert_content"

    def apply_diff(self, original: str, diff_spec: List[InsertOperation],
                   hints: Optional[DiffHints] = None) -> DiffResult:
        line_ending = detect_line_ending(original)
        lines = split_lines(original)
        # A trailing newline leaves an empty last element; appends go before it
        has_trailing_newline = len(lines) > 1 and lines[-1] == ""
        body = lines[:-1] if has_trailing_newline else lines
        updated = insert_groups(body, to_insert_groups(diff_spec, len(body)))
        if has_trailing_newline:
            updated.append("")
        return DiffSuccess(content=line_ending.join(updated))
