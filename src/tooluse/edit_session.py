"""Preview / approve / save-or-revert lifecycle for a single file edit.

    UNOPENED -> OPEN -> STREAMING* -> FINAL -> SAVED | REVERTED -> (reset) UNOPENED

A task owns exactly one EditSession. Mutating handlers must leave it
SAVED or REVERTED and always call ``reset()`` last, even on error.
Nothing reaches the disk before ``save_changes()``; the editor surface
only holds the proposal.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import EditSessionError
from .host import EditorSurface, FileSystem
from .logger import get_logger
from .responses import create_pretty_patch

log = get_logger("edit_session")


class EditState(str, Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    STREAMING = "streaming"
    FINAL = "final"
    SAVED = "saved"
    REVERTED = "reverted"


@dataclass
class SaveResult:
    new_problems_message: str
    user_edits: Optional[str]
    final_content: str


def _normalize_eol(text: str) -> str:
    return text.replace("\r\n", "\n")


class EditSession:
    def __init__(self, fs: FileSystem, editor: EditorSurface, cwd: str):
        self.fs = fs
        self.editor = editor
        self.cwd = cwd
        self.state = EditState.UNOPENED
        self.reset_count = 0
        self._clear()

    def _clear(self) -> None:
        self.rel_path: Optional[str] = None
        self.abs_path: Optional[str] = None
        self.edit_type: Optional[str] = None  # "create" | "modify"
        self.original_content: Optional[str] = None
        self.proposed_content: Optional[str] = None
        self._created_dirs: List[str] = []
        self._problems_before: List[str] = []

    @property
    def is_editing(self) -> bool:
        return self.state in (EditState.OPEN, EditState.STREAMING, EditState.FINAL)

    async def open(self, rel_path: str) -> None:
        """Open ``rel_path`` for editing. Idempotent for the same path."""
        abs_path = os.path.abspath(os.path.join(self.cwd, rel_path))
        if self.is_editing:
            if abs_path == self.abs_path:
                return
            raise EditSessionError(
                f"Cannot open {rel_path}: an edit of {self.rel_path} is still in progress"
            )
        if self.state != EditState.UNOPENED:
            raise EditSessionError(f"Edit session must be reset before opening {rel_path}")

        stat = await self.fs.stat(abs_path)
        self.rel_path = rel_path
        self.abs_path = abs_path
        if stat.exists:
            self.edit_type = "modify"
            self.original_content = await self.fs.read_text(abs_path)
        else:
            self.edit_type = "create"
            self.original_content = ""

        self._problems_before = self.editor.diagnostics(abs_path)
        await self.editor.open(abs_path, self.original_content)
        self.state = EditState.OPEN
        log.debug("edit session open: %s (%s)", rel_path, self.edit_type)

    async def update(self, content: str, is_final: bool) -> None:
        """Stream proposed content into the preview; once final, no more updates."""
        if not self.is_editing:
            raise EditSessionError("update() called without an open edit session")
        if self.state == EditState.FINAL:
            raise EditSessionError("Edit session already received its final content")
        self.proposed_content = content
        await self.editor.show(content, is_final)
        self.state = EditState.FINAL if is_final else EditState.STREAMING

    async def save_changes(self) -> SaveResult:
        if self.state != EditState.FINAL:
            raise EditSessionError(f"Cannot save from state '{self.state.value}'")
        final_content = await self.editor.current_content()
        if self.edit_type == "create":
            self._created_dirs = await self.fs.make_dirs(os.path.dirname(self.abs_path))
        await self.fs.write_text(self.abs_path, final_content)
        self.state = EditState.SAVED
        log.info("saved %s (%d chars)", self.rel_path, len(final_content))

        user_edits = None
        if _normalize_eol(final_content) != _normalize_eol(self.proposed_content or ""):
            user_edits = create_pretty_patch(self.rel_path, self.proposed_content, final_content) or None

        return SaveResult(
            new_problems_message=self._new_problems_message(),
            user_edits=user_edits,
            final_content=final_content,
        )

    def _new_problems_message(self) -> str:
        after = self.editor.diagnostics(self.abs_path)
        new = [p for p in after if p not in self._problems_before]
        if not new:
            return ""
        listing = "\n".join(f"- {p}" for p in new)
        return (f"\n\nNew problems detected after saving the file:\n{self.rel_path}\n{listing}")

    async def revert_changes(self) -> None:
        """Undo everything this session did to the disk."""
        if self.state in (EditState.UNOPENED, EditState.REVERTED):
            return
        if self.edit_type == "create" and self.state == EditState.SAVED:
            stat = await self.fs.stat(self.abs_path)
            if stat.exists:
                await self.fs.remove(self.abs_path)
            for d in reversed(self._created_dirs):
                try:
                    await self.fs.remove_dir(d)
                except OSError as e:
                    log.warning("could not remove created directory %s: %s", d, e)
        elif self.state == EditState.SAVED:
            await self.fs.write_text(self.abs_path, self.original_content or "")
        await self.editor.close()
        self.state = EditState.REVERTED
        log.info("reverted %s", self.rel_path)

    async def reset(self) -> None:
        """Release the session. Safe to call in any state."""
        if self.is_editing or self.state in (EditState.SAVED, EditState.REVERTED):
            await self.editor.close()
        self._clear()
        self.state = EditState.UNOPENED
        self.reset_count += 1
