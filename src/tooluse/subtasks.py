"""Parent/child task hand-off for new_task and attempt_completion.

A parent that spawns a child is PAUSED until the child finishes; at
most one task per lineage is RUNNING. The hand-off is synchronous: the
parent is resumed inside ``finish_subtask`` before it returns, so the
driver always sees a deterministic next task to feed.
"""

from typing import TYPE_CHECKING, List, Optional

from .logger import get_logger, truncate as log_truncate

if TYPE_CHECKING:
    from .task import Task

log = get_logger("subtasks")


class SubtaskError(RuntimeError):
    """A hand-off was requested that the lineage cannot perform."""


class SubtaskController:
    """Shared by every task in one lineage."""

    def __init__(self):
        self._stack: List["Task"] = []

    def register_root(self, task: "Task") -> None:
        if not self._stack:
            self._stack.append(task)

    @property
    def active(self) -> Optional["Task"]:
        """The task that should receive the next invocation."""
        return self._stack[-1] if self._stack else None

    @property
    def depth(self) -> int:
        return len(self._stack)

    async def spawn(self, parent: "Task", mode_slug: str, message: str) -> "Task":
        """Switch mode, create the child, pause the parent."""
        if parent.child is not None and parent.child.is_live:
            raise SubtaskError(f"Task {parent.task_id} already has a live subtask {parent.child.task_id}")

        parent.paused_mode_slug = parent.modes.current_slug
        await parent.modes.switch(mode_slug)

        child = parent.spawn_child(message)
        parent.child = child
        self.register_root(parent)
        self._stack.append(child)

        parent.emit("spawned", child.task_id)
        parent.pause()
        log.info("subtask %s spawned by %s in mode %s: %s", child.task_id, parent.task_id,
                 mode_slug, log_truncate(message, 120))
        return child

    async def finish_subtask(self, child: "Task", message: str) -> "Task":
        """Complete ``child`` and resume exactly the parent that spawned it."""
        parent = child.parent
        if parent is None:
            raise SubtaskError(f"Task {child.task_id} has no parent to return to")
        if parent.child is not child:
            raise SubtaskError(f"Task {child.task_id} is not the live subtask of {parent.task_id}")

        child.complete()
        if self._stack and self._stack[-1] is child:
            self._stack.pop()
        parent.child = None

        if parent.paused_mode_slug and parent.modes.current_slug != parent.paused_mode_slug:
            await parent.modes.switch(parent.paused_mode_slug)
        parent.paused_mode_slug = None

        await parent.resume(message)
        log.info("subtask %s finished; resumed %s", child.task_id, parent.task_id)
        return parent

    async def cancel(self, task: "Task") -> None:
        """Abort ``task`` and everything below it in the lineage."""
        await task.abort()
        while self._stack and self._stack[-1] is not task:
            self._stack.pop()
        if self._stack:
            self._stack.pop()
