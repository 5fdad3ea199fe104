"""Wire-level data model: tool invocations, content blocks, messages.

Everything that crosses the boundary to the upstream parser, the host,
or the model transcript is a pydantic model so that payloads coming
from the model are validated before any handler touches them.
"""

import json
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    model_validator,
)


class ToolName(str, Enum):
    """The closed set of tools the dispatcher knows about."""
    WRITE_TO_FILE = "write_to_file"
    READ_FILE = "read_file"
    EXECUTE_COMMAND = "execute_command"
    APPLY_DIFF = "apply_diff"
    SEARCH_FILES = "search_files"
    LIST_FILES = "list_files"
    LIST_CODE_DEFINITION_NAMES = "list_code_definition_names"
    BROWSER_ACTION = "browser_action"
    USE_MCP_TOOL = "use_mcp_tool"
    ACCESS_MCP_RESOURCE = "access_mcp_resource"
    ASK_FOLLOWUP_QUESTION = "ask_followup_question"
    ATTEMPT_COMPLETION = "attempt_completion"
    SWITCH_MODE = "switch_mode"
    NEW_TASK = "new_task"
    FETCH_INSTRUCTIONS = "fetch_instructions"
    INSERT_CONTENT = "insert_content"
    SEARCH_AND_REPLACE = "search_and_replace"

    @classmethod
    def lookup(cls, name: str) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


class InvocationPhase(str, Enum):
    STREAMING = "streaming"
    FINALIZED = "finalized"


class ToolInvocation(BaseModel):
    """One tool call as emitted by the upstream parser.

    Instances are immutable. As more stream tokens arrive the parser
    produces a new invocation with ``with_fragment``; once ``partial`` is
    False the invocation is terminal and cannot be extended.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    params: Dict[str, str] = Field(default_factory=dict)
    partial: bool = False

    @property
    def phase(self) -> InvocationPhase:
        return InvocationPhase.STREAMING if self.partial else InvocationPhase.FINALIZED

    @property
    def tool(self) -> Optional[ToolName]:
        return ToolName.lookup(self.name)

    def with_fragment(self, params: Dict[str, str], partial: bool = True) -> "ToolInvocation":
        """Return the next snapshot of this invocation.

        Raises ValueError when called on a finalized invocation.
        """
        if not self.partial:
            raise ValueError(f"Invocation '{self.name}' is already finalized")
        merged = dict(self.params)
        merged.update(params)
        return ToolInvocation(name=self.name, params=merged, partial=partial)


# ── Content blocks ───────────────────────────────────────────────

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageSource(BaseModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    source: ImageSource

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageBlock":
        """Build an image block from ``data:<mime>;base64,<data>``."""
        m = _DATA_URL_RE.match(data_url)
        if m:
            mime, data = m.groups()
        else:
            mime, data = "image/png", data_url
        return cls(source=ImageSource(media_type=mime, data=data))


ContentBlock = Union[TextBlock, ImageBlock]
ToolResult = Union[str, List[ContentBlock]]


def result_text(result: ToolResult) -> str:
    """Flatten a ToolResult to its text parts (images are dropped)."""
    if isinstance(result, str):
        return result
    return "\n\n".join(b.text for b in result if isinstance(b, TextBlock))


class ConversationMessage(BaseModel):
    """One role-tagged turn of the model-facing transcript."""
    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        parts = []
        for block in self.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            else:
                # Images still occupy context; count their payload as text
                parts.append(block.source.data)
        return "\n".join(parts)


# ── Host prompt answers ──────────────────────────────────────────

class AskResponseKind(str, Enum):
    YES = "yesButtonClicked"
    NO = "noButtonClicked"
    MESSAGE = "messageResponse"


class AskResponse(BaseModel):
    """What the human answered to an ``ask`` prompt."""
    response: AskResponseKind
    text: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class ApprovalResult(BaseModel):
    """Outcome of an approval checkpoint."""
    approved: bool
    feedback_text: Optional[str] = None
    feedback_images: List[str] = Field(default_factory=list)

    @property
    def has_feedback(self) -> bool:
        return bool(self.feedback_text) or bool(self.feedback_images)


# ── Structured operation payloads ────────────────────────────────

class SearchReplaceOperation(BaseModel):
    """One entry of the ``operations`` array for search_and_replace."""
    search: StrictStr
    replace: StrictStr
    start_line: Optional[StrictInt] = None
    end_line: Optional[StrictInt] = None
    use_regex: StrictBool = False
    ignore_case: StrictBool = False
    regex_flags: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _check_range(self) -> "SearchReplaceOperation":
        if self.start_line is not None and self.start_line < 1:
            raise ValueError("start_line must be a positive integer")
        if self.end_line is not None and self.end_line < 1:
            raise ValueError("end_line must be a positive integer")
        if (self.start_line is not None and self.end_line is not None
                and self.start_line > self.end_line):
            raise ValueError("start_line cannot be greater than end_line")
        return self

    @property
    def has_range(self) -> bool:
        return self.start_line is not None or self.end_line is not None


class InsertOperation(BaseModel):
    """One entry of the ``operations`` array for insert_content.

    ``start_line`` is 1-based; 0 appends to the end of the file.
    """
    start_line: StrictInt = Field(ge=0)
    content: StrictStr


class BrowserActionResult(BaseModel):
    screenshot: Optional[str] = None
    logs: Optional[str] = None
    current_url: Optional[str] = None
    current_mouse_position: Optional[str] = None


class McpToolCallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: List[Dict[str, Any]] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")


class McpResourceResponse(BaseModel):
    contents: List[Dict[str, Any]] = Field(default_factory=list)


OpT = TypeVar("OpT", bound=BaseModel)


def _format_validation_error(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()))
        msg = e.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def parse_operations(raw: str, op_model: Type[OpT]) -> List[OpT]:
    """Decode a JSON ``operations`` parameter into validated models.

    Raises ValueError with a message suitable for relaying to the model.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e
    if not isinstance(data, list):
        raise ValueError("Operations must be an array")
    try:
        return TypeAdapter(List[op_model]).validate_python(data)
    except ValidationError as e:
        raise ValueError(_format_validation_error(e)) from e
