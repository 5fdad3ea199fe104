"""Sliding-window conversation truncation and output trimming.

The transcript sent to the model grows with every tool result. Before
each model call the window manager estimates the token footprint and,
when it would not fit, drops the oldest user/assistant pairs while
always keeping the first message (the original task).
"""

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import tiktoken

from .logger import get_logger
from .models import ConversationMessage

log = get_logger("context")

# Fraction of the context window kept free on top of the reserved output
TOKEN_BUFFER_PERCENTAGE = 0.1

# 200k context minus a 1k safety margin
CLAUDE_MAX_SAFE_TOKEN_LIMIT = 199_000

# Per-message framing overhead when counting tokens
MESSAGE_OVERHEAD_TOKENS = 4


# ── Model limits ─────────────────────────────────────────────────

@dataclass(frozen=True)
class ModelInfo:
    """What the window manager needs to know about the active model."""
    id: str
    context_window: int
    # Models whose provider rejects requests above the window outright
    hard_ceiling: bool = False


MODEL_CONTEXT_WINDOWS = {
    "claude-": 200_000,
    "gpt-4o": 128_000,
    "gpt-4": 128_000,
    "deepseek-chat": 64_000,
    "glm-4": 128_000,
}


def get_model_info(model_id: str, context_window: Optional[int] = None) -> ModelInfo:
    """Resolve a ModelInfo, preferring an explicit context window."""
    window = context_window
    if window is None:
        for key, size in MODEL_CONTEXT_WINDOWS.items():
            if key in model_id.lower():
                window = size
                break
    return ModelInfo(
        id=model_id,
        context_window=window or 128_000,
        hard_ceiling=model_id.startswith("claude-"),
    )


# ── Token counting ───────────────────────────────────────────────

def estimate_tokens(text: str) -> int:
    """Rough approximation: ~4 chars per token."""
    return len(text) // 4


class TokenCounter:
    """tiktoken-backed counter, loaded on first use."""

    def __init__(self, model: str = "gpt-4"):
        self.model = model
        self._encoder = None
        self._unavailable = False

    def _load(self):
        if self._encoder is not None or self._unavailable:
            return self._encoder
        try:
            try:
                self._encoder = tiktoken.encoding_for_model(self.model)
            except KeyError:
                self._encoder = tiktoken.get_encoding("cl100k_base")
        except Exception as e:  # encoding files are fetched on first use
            log.warning("tiktoken unavailable (%s); using character estimate", e)
            self._unavailable = True
        return self._encoder

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoder = self._load()
        if encoder is None:
            return estimate_tokens(text)
        return len(encoder.encode(text, disallowed_special=()))

    def count_message(self, message: ConversationMessage) -> int:
        return self.count(message.text()) + MESSAGE_OVERHEAD_TOKENS

    def count_messages(self, messages: Sequence[ConversationMessage]) -> int:
        return sum(self.count_message(m) for m in messages)


# ── Truncation ───────────────────────────────────────────────────

def truncate_conversation(messages: List[ConversationMessage],
                          frac_to_remove: float) -> List[ConversationMessage]:
    """Drop a fraction of the messages after the first one.

    The count removed is ``floor((N - 1) * frac)`` rounded down to an even
    number so that user/assistant pairs stay together; the removed
    messages are the oldest ones after ``messages[0]``.
    """
    if not messages:
        return []
    raw_to_remove = math.floor((len(messages) - 1) * frac_to_remove)
    to_remove = raw_to_remove - (raw_to_remove % 2)
    return [messages[0]] + list(messages[to_remove + 1:])


def truncate_conversation_if_needed(
    messages: List[ConversationMessage],
    total_tokens: int,
    context_window: int,
    max_tokens: Optional[int] = None,
    model: Optional[ModelInfo] = None,
    count_tokens: Optional[Callable[[str], int]] = None,
) -> List[ConversationMessage]:
    """Truncate when the transcript plus the pending user turn will not fit.

    ``total_tokens`` never includes the last message, which is always the
    user turn about to be sent; its size is estimated here.
    """
    if not messages:
        return messages
    counter = count_tokens or TokenCounter().count

    reserved = max_tokens or context_window * 0.2
    last_message_tokens = counter(messages[-1].text())
    effective = total_tokens + last_message_tokens

    if model is not None and model.hard_ceiling:
        safe_limit = min(model.context_window - 1000, CLAUDE_MAX_SAFE_TOKEN_LIMIT)
        if effective > safe_limit:
            excess = effective - safe_limit
            fraction = 0.7 if excess > effective * 0.3 else 0.5
            log.warning(
                "Token count %d exceeds safe limit %d for %s; truncating %.0f%%",
                effective, safe_limit, model.id, fraction * 100,
            )
            return truncate_conversation(messages, fraction)

    allowed = context_window * (1 - TOKEN_BUFFER_PERCENTAGE) - reserved
    if effective > allowed:
        log.info("Token count %d exceeds allowed %d; truncating 50%%", effective, int(allowed))
        return truncate_conversation(messages, 0.5)
    return messages


@dataclass
class TruncationResult:
    """Result of a truncation pass."""
    messages: List[ConversationMessage]
    removed_count: int


class ConversationWindowManager:
    """Applies the sliding window for one task's model and limits."""

    def __init__(self, model: ModelInfo, context_window: Optional[int] = None,
                 max_output_tokens: Optional[int] = None,
                 counter: Optional[TokenCounter] = None):
        self.model = model
        self.context_window = context_window or model.context_window
        self.max_output_tokens = max_output_tokens
        self.counter = counter or TokenCounter()

    def history_tokens(self, messages: Sequence[ConversationMessage]) -> int:
        """Tokens of every message except the last (pending) one."""
        return self.counter.count_messages(messages[:-1])

    def truncate_if_needed(self, messages: List[ConversationMessage],
                           total_tokens: Optional[int] = None) -> TruncationResult:
        if total_tokens is None:
            total_tokens = self.history_tokens(messages)
        kept = truncate_conversation_if_needed(
            messages,
            total_tokens=total_tokens,
            context_window=self.context_window,
            max_tokens=self.max_output_tokens,
            model=self.model,
            count_tokens=self.counter.count,
        )
        removed = len(messages) - len(kept)
        if removed:
            log.info("Sliding window removed %d of %d messages", removed, len(messages))
        return TruncationResult(messages=kept, removed_count=removed)


def truncate_output(
    text: str,
    max_lines: int = 500,
    keep_start: int = 200,
    keep_end: int = 200,
) -> str:
    """Truncate long command output, keeping start and end."""
    lines = text.splitlines()

    if len(lines) <= max_lines:
        return text

    start = lines[:keep_start]
    end = lines[-keep_end:] if keep_end else []
    removed = len(lines) - keep_start - keep_end

    return "\n".join(start) + f"\n\n... ({removed} lines truncated) ...\n\n" + "\n".join(end)
