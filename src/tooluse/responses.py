"""Model-facing text templates for tool results.

Every string the model sees as the outcome of a tool lives here so the
wording stays consistent across handlers.
"""

import difflib
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional

from .models import ContentBlock, ImageBlock, TextBlock, ToolResult

if TYPE_CHECKING:
    from .ignore import IgnoreController

LOCK_SYMBOL = "\U0001F512"


def tool_denied() -> str:
    return "The user denied this operation."


def tool_denied_with_feedback(feedback: Optional[str]) -> str:
    return (
        "The user denied this operation and provided the following feedback:\n"
        f"<feedback>\n{feedback or ''}\n</feedback>"
    )


def tool_approved_with_feedback(feedback: Optional[str]) -> str:
    return (
        "The user approved this operation and provided the following context:\n"
        f"<feedback>\n{feedback or ''}\n</feedback>"
    )


def tool_error(error: Optional[str]) -> str:
    return f"The tool execution failed with the following error:\n<error>\n{error or ''}\n</error>"


def ignore_error(path: str, ignore_file_name: str = ".tooluseignore") -> str:
    return (
        f"Access to {path} is blocked by the {ignore_file_name} file settings. "
        "You must try to continue in the task without using this file, or ask "
        f"the user to update the {ignore_file_name} file."
    )


def missing_param_error(param: str) -> str:
    return (
        f"Missing value for required parameter '{param}'. Please retry with complete response.\n\n"
        "# Reminder: Instructions for Tool Use\n\n"
        "Tool uses are formatted using XML-style tags. The tool name is enclosed in opening "
        "and closing tags, and each parameter is similarly enclosed within its own set of tags."
    )


def invalid_mcp_tool_argument_error(server_name: str, tool_name: str) -> str:
    return (
        f"Invalid JSON argument used with {server_name} for {tool_name}. "
        "Please retry with a properly formatted JSON argument."
    )


def unknown_tool_error(name: str) -> str:
    return f"Unknown tool '{name}'. Use one of the tools listed in the system prompt."


def too_many_mistakes(feedback: Optional[str]) -> str:
    return (
        "You seem to be having trouble proceeding. The user has provided the following "
        f"feedback to help guide you:\n<feedback>\n{feedback or ''}\n</feedback>"
    )


def image_blocks(images: Optional[Iterable[str]]) -> List[ImageBlock]:
    return [ImageBlock.from_data_url(img) for img in (images or [])]


def tool_result(text: str, images: Optional[List[str]] = None) -> ToolResult:
    """Plain text, or text followed by image blocks when images are given."""
    if images:
        blocks: List[ContentBlock] = [TextBlock(text=text)]
        blocks.extend(image_blocks(images))
        return blocks
    return text


def add_line_numbers(content: str, start_line: int = 1) -> str:
    """Prefix each line with its 1-based number, right-aligned."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines = lines[:-1]
    if not lines:
        return ""
    width = len(str(start_line + len(lines) - 1))
    return "\n".join(f"{str(start_line + i).rjust(width)} | {line}" for i, line in enumerate(lines))


def create_pretty_patch(rel_path: str, old: Optional[str], new: Optional[str]) -> str:
    """Unified diff of ``old`` → ``new`` without file headers.

    Returns an empty string when the texts are identical.
    """
    old_lines = (old or "").splitlines(keepends=True)
    new_lines = (new or "").splitlines(keepends=True)
    patch = list(difflib.unified_diff(
        old_lines, new_lines,
        fromfile=rel_path.replace(os.sep, "/"),
        tofile=rel_path.replace(os.sep, "/"),
    ))
    if not patch:
        return ""
    # Drop the ---/+++ header lines
    body = patch[2:]
    return "".join(line if line.endswith("\n") else line + "\n" for line in body).rstrip("\n")


def user_edits_result(rel_path: str, user_edits: str, final_content: str,
                      new_problems_message: str = "", *, numbered: bool = True,
                      extra: str = "") -> str:
    content = add_line_numbers(final_content or "") if numbered else (final_content or "")
    numbers_note = ", including line numbers" if numbered else ""
    return (
        f"The user made the following updates to your content:\n\n{user_edits}\n\n"
        "The updated content, which includes both your original modifications and the user's "
        f"edits, has been successfully saved to {rel_path}. Here is the full, updated content "
        f"of the file{numbers_note}:\n\n"
        f"<final_file_content path=\"{rel_path}\">\n{content}\n</final_file_content>\n\n"
        "Please note:\n"
        "1. You do not need to re-write the file with these changes, as they have already been applied.\n"
        "2. Proceed with the task using this updated file content as the new baseline.\n"
        "3. If the user's edits have addressed part of the task or changed the requirements, "
        "adjust your approach accordingly."
        f"{new_problems_message}{extra}"
    )


def format_files_list(abs_path: str, files: List[str], did_hit_limit: bool,
                      ignore: Optional["IgnoreController"] = None,
                      show_ignored: bool = True) -> str:
    """Render a directory listing relative to ``abs_path``.

    Ignored entries are either marked with a lock or hidden, depending on
    ``show_ignored``.
    """
    base = Path(abs_path)
    rendered = []
    for f in files:
        p = Path(f)
        try:
            rel = p.relative_to(base).as_posix()
        except ValueError:
            rel = p.as_posix()
        if f.endswith(("/", os.sep)):
            rel += "/"
        rendered.append(rel)

    # Directories before their contents, case-insensitive
    rendered.sort(key=lambda r: [part.lower() for part in r.rstrip("/").split("/")])

    if ignore is not None:
        shown = []
        for rel in rendered:
            if ignore.validate_access(str(base / rel)):
                shown.append(rel)
            elif show_ignored:
                shown.append(f"{LOCK_SYMBOL} {rel}")
        rendered = shown

    if did_hit_limit:
        return ("\n".join(rendered) +
                "\n\n(File list truncated. Use list_files on specific subdirectories "
                "if you need to explore further.)")
    if not rendered:
        return "No files found."
    return "\n".join(rendered)


def tool_message(tool: str, **fields) -> str:
    """JSON payload describing a tool call to the host prompt; None fields are dropped."""
    payload = {"tool": tool}
    payload.update({k: v for k, v in fields.items() if v is not None})
    return json.dumps(payload)
