"""read_file and write_to_file."""

import os

from ..code_definitions import definitions_for_file
from ..errors import FileNotFoundToolError, InvalidParameterError, MissingParameterError, ToolError
from ..diff.base import every_line_has_line_numbers, strip_line_numbers
from ..logger import get_logger
from ..models import ToolName
from .. import responses
from .base import ToolHandler

log = get_logger("handlers.file")

OMISSION_KEYWORDS = {"remain", "remains", "unchanged", "rest", "previous", "existing", "content",
                     "same", "..."}
COMMENT_PREFIXES = ("//", "#", "/*", "<!--", "[", "{/*", "*")


def detect_code_omission(original: str, new: str, predicted_line_count: int) -> bool:
    """True when ``new`` looks cut short and carries "rest of code" style comments."""
    new_lines = new.split("\n")
    if predicted_line_count <= 0:
        return False
    if len(new_lines) / predicted_line_count > 0.85:
        return False
    original_lines = set(original.split("\n"))
    for line in new_lines:
        stripped = line.strip()
        if not stripped.startswith(COMMENT_PREFIXES):
            continue
        words = stripped.lower().split()
        if any(w.strip(".,:;*/-") in OMISSION_KEYWORDS or w == "..." for w in words):
            if line not in original_lines:
                return True
    return False


def strip_code_fences(content: str) -> str:
    if content.startswith("```"):
        content = "\n".join(content.split("\n")[1:]).strip()
    if content.endswith("```"):
        content = "\n".join(content.split("\n")[:-1]).strip()
    return content


class EditHandler(ToolHandler):
    """Base for handlers that write through the task's edit session.

    Whatever happens in the complete phase, an unsaved session is
    reverted and the session is reset exactly once.
    """

    async def report_unexpected(self, e: Exception) -> None:
        if self.task.edit_session.is_editing:
            await self.task.edit_session.revert_changes()
        await super().report_unexpected(e)

    async def cleanup(self) -> None:
        session = self.task.edit_session
        try:
            if session.is_editing:
                await session.revert_changes()
        finally:
            await session.reset()

    async def save_and_report(self, rel_path: str, success_text: str, tool_kind: str) -> None:
        """Save the approved edit and push the success (or user-edits) result."""
        saved = await self.task.edit_session.save_changes()
        self.task.did_edit_file = True
        if saved.user_edits:
            await self.task.prompt.say(
                "user_feedback_diff",
                responses.tool_message(tool_kind, path=rel_path, diff=saved.user_edits),
            )
            await self.complete_success(responses.user_edits_result(
                rel_path, saved.user_edits, saved.final_content, saved.new_problems_message))
            return
        await self.complete_success(f"{success_text}{saved.new_problems_message}")


class ReadFileHandler(ToolHandler):
    tool = ToolName.READ_FILE
    action = "reading file"

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        if not rel_path:
            return
        await self.task.prompt.ask("tool", responses.tool_message("readFile", path=rel_path), partial=True)

    def _line_range(self):
        start_raw = self.optional("start_line")
        end_raw = self.optional("end_line")
        start = end = None
        if start_raw is not None:
            try:
                start = int(start_raw)
            except ValueError:
                start = 0
            if start < 1:
                raise InvalidParameterError(
                    self.name, "start_line", "Invalid start_line value. Must be a positive integer.",
                    user_text=f"Invalid start_line value: {start_raw}. Must be a positive integer.")
        if end_raw is not None:
            try:
                end = int(end_raw)
            except ValueError:
                end = 0
            if end < 1:
                raise InvalidParameterError(
                    self.name, "end_line", "Invalid end_line value. Must be a positive integer.",
                    user_text=f"Invalid end_line value: {end_raw}. Must be a positive integer.")
        if start is not None and end is not None and start > end:
            raise InvalidParameterError(
                self.name, "start_line", "Invalid line range: start_line must not be greater than end_line.",
                user_text=f"Invalid line range: start_line ({start}) is greater than end_line ({end}).")
        return start, end

    async def handle_complete(self) -> None:
        rel_path = self.require("path")
        start, end = self._line_range()
        self.check_access(rel_path)

        abs_path = self.resolve(rel_path)
        approved = await self.ask_approval(
            "tool", {"tool": "readFile", "path": rel_path, "content": abs_path})
        if not approved:
            return

        fs = self.task.fs
        stat = await fs.stat(abs_path)
        if not stat.exists or stat.is_dir:
            raise FileNotFoundToolError(abs_path, tool=self.name)

        if await fs.is_binary(abs_path):
            ext = os.path.splitext(abs_path)[1] or "(none)"
            raise ToolError(f"Cannot read text for file type: {ext}", tool=self.name)

        text = await fs.read_text(abs_path)
        lines = text.splitlines()
        total = len(lines)
        max_lines = self.task.config.max_read_file_line

        if start is not None or end is not None:
            first = start or 1
            chunk = lines[first - 1:end]
            content = responses.add_line_numbers("\n".join(chunk), first)
        elif max_lines >= 0 and total > max_lines:
            content = responses.add_line_numbers("\n".join(lines[:max_lines])) if max_lines > 0 else ""
            defs = await definitions_for_file(abs_path, fs, self.task.ignore)
            defs_text = f"\n\n{defs}" if defs else ""
            content += (f"\n\n[Showing only {max_lines} of {total} total lines. "
                        f"Use start_line and end_line if you need to read more]{defs_text}")
        else:
            content = responses.add_line_numbers(text) if text else ""

        log.debug("read %s: %d line(s)", rel_path, total)
        await self.complete_success(content)


class WriteToFileHandler(EditHandler):
    tool = ToolName.WRITE_TO_FILE

    @property
    def action(self) -> str:
        return f"saving file {self.params.get('path', '')}"

    def _prepare_content(self, content: str) -> str:
        content = strip_code_fences(content)
        if "claude" not in self.task.config.model.lower():
            content = content.replace("&gt;", ">").replace("&lt;", "<").replace("&quot;", "\"")
        if every_line_has_line_numbers(content):
            content = strip_line_numbers(content)
        return content

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        if not rel_path or not self.task.ignore.validate_access(rel_path):
            return
        session = self.task.edit_session
        stat = await self.task.fs.stat(self.resolve(rel_path))
        tool = "editedExistingFile" if stat.exists else "newFileCreated"
        await self.task.prompt.ask("tool", responses.tool_message(tool, path=rel_path), partial=True)

        content = self.params.get("content")
        if not content:
            return
        await session.open(rel_path)
        await session.update(self._prepare_content(content), is_final=False)

    async def handle_complete(self) -> None:
        rel_path = self.require("path")
        content = self.params.get("content")
        if content is None:
            raise MissingParameterError(self.name, "content", rel_path)
        line_count_raw = self.optional("line_count")
        try:
            predicted = int(line_count_raw) if line_count_raw else 0
        except ValueError:
            predicted = 0
        if not predicted:
            raise MissingParameterError(self.name, "line_count", rel_path)
        self.check_access(rel_path)

        new_content = self._prepare_content(content)
        session = self.task.edit_session
        await session.open(rel_path)
        await session.update(new_content, is_final=True)

        if detect_code_omission(session.original_content or "", new_content, predicted):
            actual = len(new_content.split("\n"))
            await session.revert_changes()
            raise ToolError(
                f"Content appears to be truncated (file has {actual} lines but was predicted to have "
                f"{predicted} lines), and found comments indicating omitted code (e.g., '// rest of "
                "code unchanged', '/* previous code */'). Please provide the complete file content "
                "without any omissions if possible, or otherwise use the 'apply_diff' tool to apply "
                "the diff to the original file.",
                tool=self.name,
            )

        exists = session.edit_type == "modify"
        payload = {
            "tool": "editedExistingFile" if exists else "newFileCreated",
            "path": rel_path,
        }
        if exists:
            payload["diff"] = responses.create_pretty_patch(rel_path, session.original_content, new_content)
        else:
            payload["content"] = new_content
        if not await self.ask_approval("tool", payload):
            await session.revert_changes()
            return

        await self.save_and_report(rel_path, f"Successfully saved changes to {rel_path}", payload["tool"])
