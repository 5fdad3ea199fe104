"""Expected failures raised while a handler completes an invocation.

The handler boundary catches ``ToolError`` exactly once and turns it
into a tool result. Anything that is not a ``ToolError`` is treated as
unexpected and reported with the handler's action description.
"""

from typing import Optional


class ToolError(Exception):
    """Base class for recoverable tool failures."""

    counts_as_mistake = True
    # Host prompt kind used to surface the error ("error", "ignore_error")
    say_kind = "error"

    def __init__(self, message: str, *, tool: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tool = tool

    def user_message(self) -> str:
        """Text shown to the human for this failure."""
        return self.message


class MissingParameterError(ToolError):
    def __init__(self, tool: str, param: str, rel_path: Optional[str] = None):
        self.param = param
        self.rel_path = rel_path
        super().__init__(f"Missing value for required parameter '{param}'", tool=tool)

    def user_message(self) -> str:
        suffix = f" for '{self.rel_path}'" if self.rel_path else ""
        return (f"Model tried to use {self.tool}{suffix} without value for required "
                f"parameter '{self.param}'. Retrying...")


class InvalidParameterError(ToolError):
    """Bad ranges, malformed JSON, unknown enum values."""

    def __init__(self, tool: str, param: str, reason: str, *, user_text: Optional[str] = None):
        self.param = param
        self.reason = reason
        self._user_text = user_text
        super().__init__(reason, tool=tool)

    def user_message(self) -> str:
        return self._user_text or self.reason


class AccessDeniedError(ToolError):
    """The ignore policy blocks the path. Not counted as a mistake."""

    counts_as_mistake = False
    say_kind = "ignore_error"

    def __init__(self, path: str, *, tool: Optional[str] = None):
        self.path = path
        super().__init__(path, tool=tool)


class FileNotFoundToolError(ToolError):
    def __init__(self, abs_path: str, *, tool: Optional[str] = None):
        self.abs_path = abs_path
        super().__init__(
            f"File does not exist at path: {abs_path}\n\n<error_details>\n"
            "The specified file could not be found. Please verify the file path and try again.\n"
            "</error_details>",
            tool=tool,
        )


class DiffApplicationError(ToolError):
    """A diff strategy could not apply the requested change."""


class EditSessionError(RuntimeError):
    """The edit session lifecycle was driven out of order."""


class ApprovalUnavailableError(RuntimeError):
    """The host prompt went away while waiting for an answer."""
