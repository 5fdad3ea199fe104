"""Consecutive-mistake accounting for a task."""

from dataclasses import dataclass, field
from typing import Dict

from .logger import get_logger

log = get_logger("mistakes")

# Same-file diff failures at or above this count are shown to the user
PATH_WARNING_THRESHOLD = 2


@dataclass
class MistakeTracker:
    """Task-wide failure counter plus per-path counts for diff failures.

    ``count`` increments once per failed validation and resets to 0 on
    the first fully valid dispatch. Per-path counts escalate repeated
    failures on the same file to a user-visible warning.
    """
    limit: int = 3
    count: int = 0
    _per_path: Dict[str, int] = field(default_factory=dict)

    def record_mistake(self, tool: str = "") -> int:
        self.count += 1
        log.debug("mistake #%d (tool=%s)", self.count, tool or "?")
        return self.count

    def record_path_failure(self, path: str) -> int:
        """Count a diff failure on ``path`` and return the per-path total."""
        current = self._per_path.get(path, 0) + 1
        self._per_path[path] = current
        return current

    def path_count(self, path: str) -> int:
        return self._per_path.get(path, 0)

    def should_warn(self, path: str) -> bool:
        return self._per_path.get(path, 0) >= PATH_WARNING_THRESHOLD

    def reset(self) -> None:
        if self.count:
            log.debug("mistake counter reset from %d", self.count)
        self.count = 0

    def reset_path(self, path: str) -> None:
        self._per_path.pop(path, None)

    @property
    def limit_reached(self) -> bool:
        return self.count >= self.limit
