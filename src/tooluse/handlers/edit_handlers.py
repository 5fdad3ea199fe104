"""apply_diff, search_and_replace and insert_content.

All three compute the new content with a diff strategy first, then run
the same preview / approve / save-or-revert flow through the task's
edit session.
"""

import json
from typing import Any, Dict, List, Type

from pydantic import BaseModel

from ..diff import (DiffFailure, DiffHints, DiffResult, HunkDiffStrategy, InsertGroupsStrategy,
                    SearchReplaceStrategy)
from ..errors import FileNotFoundToolError, InvalidParameterError
from ..logger import get_logger
from ..models import InsertOperation, SearchReplaceOperation, ToolName, parse_operations
from .. import responses
from .file_handlers import EditHandler

log = get_logger("handlers.edit")


class _DiffEditHandler(EditHandler):
    """Shared flow: read, transform, detect no-op, preview, approve, save."""

    # Whether the user-edits result shows the final content with line numbers
    numbered_user_edits = True

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        if not rel_path:
            return
        await self.task.prompt.ask("tool", responses.tool_message("appliedDiff", path=rel_path), partial=True)

    async def read_existing(self, rel_path: str) -> str:
        abs_path = self.resolve(rel_path)
        stat = await self.task.fs.stat(abs_path)
        if not stat.exists or not stat.is_file:
            raise FileNotFoundToolError(abs_path, tool=self.name)
        return await self.task.fs.read_text(abs_path)

    def parse_ops(self, raw: str, model: Type[BaseModel]) -> List[Any]:
        try:
            return parse_operations(raw, model)
        except ValueError as e:
            raise InvalidParameterError(
                self.name, "operations", f"Invalid operations JSON format: {e}",
                user_text=f"Failed to parse operations JSON: {e}",
            )

    async def apply_edit(self, rel_path: str, original: str, new_content: str,
                         payload: Dict[str, Any], success_text: str, extra: str = "") -> None:
        diff = responses.create_pretty_patch(rel_path, original, new_content)
        if not diff:
            log.info("%s: no changes needed for %s", self.name, rel_path)
            await self.complete_success(f"No changes needed for '{rel_path}'")
            return

        session = self.task.edit_session
        await session.open(rel_path)
        await session.update(new_content, is_final=True)

        payload.setdefault("diff", diff)
        if not await self.ask_approval("tool", {"tool": "appliedDiff", "path": rel_path, **payload}):
            await session.revert_changes()
            return

        saved = await session.save_changes()
        self.task.did_edit_file = True
        if saved.user_edits:
            await self.task.prompt.say(
                "user_feedback_diff",
                responses.tool_message("appliedDiff", path=rel_path, diff=saved.user_edits),
            )
            await self.complete_success(responses.user_edits_result(
                rel_path, saved.user_edits, saved.final_content, saved.new_problems_message,
                numbered=self.numbered_user_edits, extra=extra))
            return
        await self.complete_success(f"{success_text}{saved.new_problems_message}{extra}")


class ApplyDiffHandler(_DiffEditHandler):
    tool = ToolName.APPLY_DIFF
    action = "applying diff"

    def _line_window(self) -> DiffHints:
        start_raw, end_raw = self.params["start_line"], self.params["end_line"]
        try:
            start, end = int(start_raw), int(end_raw)
        except ValueError:
            reason = "start_line and end_line must be positive integers."
        else:
            if start < 1 or end < 1:
                reason = "start_line and end_line must be positive integers."
            elif start > end:
                reason = "start_line cannot be greater than end_line."
            else:
                return DiffHints(start_line=start, end_line=end)
        raise InvalidParameterError(self.name, "start_line", f"Invalid line numbers: {reason}")

    def strategy(self) -> HunkDiffStrategy:
        cfg = self.task.config
        return HunkDiffStrategy(fuzzy_threshold=cfg.fuzzy_match_threshold,
                                buffer_lines=cfg.diff_buffer_lines)

    @staticmethod
    def format_failure(abs_path: str, result: DiffFailure) -> str:
        def block(failure: DiffFailure) -> str:
            details = f"\n\nDetails:\n{json.dumps(failure.details, indent=2)}" if failure.details else ""
            return f"<error_details>\n{failure.error}{details}\n</error_details>"

        if result.fail_parts:
            parts = "".join(block(p) for p in result.fail_parts)
            return parts or f"Unable to apply some parts of the diff to file: {abs_path}"
        return f"Unable to apply diff to file: {abs_path}\n\n{block(result)}"

    async def handle_complete(self) -> None:
        args = self.require_all()
        rel_path = args["path"]
        hints = self._line_window()
        self.check_access(rel_path)
        original = await self.read_existing(rel_path)

        result: DiffResult = self.strategy().apply_diff(original, args["diff"], hints)
        mistakes = self.task.mistakes
        if not result.success:
            mistakes.record_mistake(self.name)
            count = mistakes.record_path_failure(rel_path)
            error = self.format_failure(self.resolve(rel_path), result)
            log.info("apply_diff failed on %s (attempt %d)", rel_path, count)
            if mistakes.should_warn(rel_path):
                await self.task.prompt.say("error", error)
            await self.push(responses.tool_error(error))
            return

        mistakes.reset_path(rel_path)
        await self.apply_edit(rel_path, original, result.content, {"diff": args["diff"]},
                              f"Changes successfully applied to {rel_path}.")


class SearchAndReplaceHandler(_DiffEditHandler):
    tool = ToolName.SEARCH_AND_REPLACE
    action = "applying search and replace"

    async def handle_complete(self) -> None:
        args = self.require_all()
        rel_path = args["path"]
        operations: List[SearchReplaceOperation] = self.parse_ops(args["operations"], SearchReplaceOperation)
        self.check_access(rel_path)
        original = await self.read_existing(rel_path)

        result = SearchReplaceStrategy().apply_diff(original, operations)
        if not result.success:
            error = ApplyDiffHandler.format_failure(self.resolve(rel_path), result)
            raise InvalidParameterError(self.name, "operations", error)

        await self.apply_edit(rel_path, original, result.content, {},
                              f"Changes successfully applied to {rel_path}.")


class InsertContentHandler(_DiffEditHandler):
    tool = ToolName.INSERT_CONTENT
    action = "insert content"
    numbered_user_edits = False

    async def handle_complete(self) -> None:
        args = self.require_all()
        rel_path = args["path"]
        operations: List[InsertOperation] = self.parse_ops(args["operations"], InsertOperation)
        self.check_access(rel_path)
        original = await self.read_existing(rel_path)

        result = InsertGroupsStrategy().apply_diff(original, operations)
        await self.apply_edit(rel_path, original, result.content, {},
                              f"The content was successfully inserted in {rel_path}.")
