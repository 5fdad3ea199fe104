"""list_files, search_files and list_code_definition_names.

These only read, but the results are still shown to the human for
approval before the model receives them.
"""

import asyncio
import re

from ..code_definitions import definitions_for_directory, definitions_for_file
from ..errors import InvalidParameterError, ToolError
from ..logger import get_logger
from ..models import ToolName
from ..workspace import list_files, regex_search_files
from .. import responses
from .base import ToolHandler

log = get_logger("handlers.explore")


class ListFilesHandler(ToolHandler):
    tool = ToolName.LIST_FILES
    action = "listing files"

    def _tool_kind(self) -> str:
        recursive = (self.params.get("recursive") or "").lower() == "true"
        return "listFilesRecursive" if recursive else "listFilesTopLevel"

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        if not rel_path:
            return
        await self.task.prompt.ask(
            "tool", responses.tool_message(self._tool_kind(), path=rel_path, content=""), partial=True)

    async def handle_complete(self) -> None:
        rel_path = self.require("path")
        recursive = (self.params.get("recursive") or "").lower() == "true"
        abs_path = self.resolve(rel_path)
        cfg = self.task.config

        files, did_hit_limit = await asyncio.to_thread(
            list_files, abs_path, recursive, cfg.list_files_limit)
        result = responses.format_files_list(
            abs_path, files, did_hit_limit, self.task.ignore, cfg.show_ignored_files)

        if not await self.ask_approval(
                "tool", {"tool": self._tool_kind(), "path": rel_path, "content": result}):
            return
        await self.complete_success(result)


class SearchFilesHandler(ToolHandler):
    tool = ToolName.SEARCH_FILES
    action = "searching files"

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        regex = self.remove_closing_tag("regex", self.params.get("regex"))
        if not rel_path or not regex:
            return
        await self.task.prompt.ask("tool", responses.tool_message(
            "searchFiles", path=rel_path, regex=regex,
            filePattern=self.remove_closing_tag("file_pattern", self.params.get("file_pattern")) or None,
            content=""), partial=True)

    async def handle_complete(self) -> None:
        rel_path = self.require("path")
        regex = self.require("regex")
        file_pattern = self.optional("file_pattern")
        try:
            re.compile(regex)
        except re.error as e:
            raise InvalidParameterError(self.name, "regex", f"Invalid regex '{regex}': {e}")

        cfg = self.task.config
        results = await asyncio.to_thread(
            regex_search_files, self.cwd, self.resolve(rel_path), regex, file_pattern,
            self.task.ignore, cfg.search_results_limit)

        payload = {"tool": "searchFiles", "path": rel_path, "regex": regex, "content": results}
        if file_pattern:
            payload["filePattern"] = file_pattern
        if not await self.ask_approval("tool", payload):
            return
        await self.complete_success(results)


class ListCodeDefinitionNamesHandler(ToolHandler):
    tool = ToolName.LIST_CODE_DEFINITION_NAMES
    action = "parsing source code definitions"

    async def handle_partial(self) -> None:
        rel_path = self.remove_closing_tag("path", self.params.get("path"))
        if not rel_path:
            return
        await self.task.prompt.ask(
            "tool", responses.tool_message("listCodeDefinitionNames", path=rel_path, content=""),
            partial=True)

    async def handle_complete(self) -> None:
        rel_path = self.require("path")
        abs_path = self.resolve(rel_path)
        fs = self.task.fs

        stat = await fs.stat(abs_path)
        if not stat.exists:
            raise ToolError(f"{abs_path}: does not exist or cannot be accessed.", tool=self.name)
        if stat.is_file:
            self.check_access(rel_path)
            result = (await definitions_for_file(abs_path, fs, self.task.ignore)
                      or "No source code definitions found in this file.")
        elif stat.is_dir:
            result = await definitions_for_directory(abs_path, fs, self.task.ignore)
        else:
            result = "The specified path is neither a file nor a directory."

        if not await self.ask_approval(
                "tool", {"tool": "listCodeDefinitionNames", "path": rel_path, "content": result}):
            return
        await self.complete_success(result)
