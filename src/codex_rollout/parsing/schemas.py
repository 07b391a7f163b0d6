"""Typed rollout entry model produced by the validator.

Every rollout line that survives validation becomes one immutable entry
dataclass. Each entry keeps the original JSON object in ``raw`` so it can be
marshaled back onto the wire unchanged; ``raw`` never takes part in equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

TOKEN_FIELDS: tuple[str, ...] = (
    "input_tokens",
    "cached_input_tokens",
    "output_tokens",
    "reasoning_output_tokens",
    "total_tokens",
)

MessageRole = Literal["developer", "user", "assistant"]


@dataclass(frozen=True)
class TokenUsageValues:
    """Token usage counters for one snapshot."""

    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0
    reasoning_output_tokens: int = 0
    total_tokens: int = 0

    def field_value(self, field_name: str) -> int:
        """Return a field value by field name."""
        return getattr(self, field_name)


# Content blocks


@dataclass(frozen=True)
class InputTextBlock:
    text: str
    type: str = field(default="input_text", init=False)


@dataclass(frozen=True)
class OutputTextBlock:
    text: str
    type: str = field(default="output_text", init=False)


@dataclass(frozen=True)
class InputImageBlock:
    image_url: str
    type: str = field(default="input_image", init=False)


@dataclass(frozen=True)
class UnknownContentBlock:
    """A well-formed block of a type this model does not know; passed through."""

    type: str
    text: str | None = None


ContentBlock = Union[InputTextBlock, OutputTextBlock, InputImageBlock, UnknownContentBlock]


def content_block_text(block: ContentBlock) -> str:
    """Return the text carried by a content block, or an empty string."""
    if isinstance(block, (InputTextBlock, OutputTextBlock)):
        return block.text
    if isinstance(block, UnknownContentBlock):
        return block.text or ""
    return ""


# response_item payloads


@dataclass(frozen=True)
class MessagePayload:
    role: MessageRole
    content: tuple[ContentBlock, ...]
    type: str = field(default="message", init=False)

    def text(self) -> str:
        """Join non-empty block texts with newlines."""
        return "\n".join(text for text in map(content_block_text, self.content) if text)


@dataclass(frozen=True)
class FunctionCallPayload:
    name: str
    arguments: str
    call_id: str
    type: str = field(default="function_call", init=False)


@dataclass(frozen=True)
class FunctionCallOutputPayload:
    call_id: str
    output: str
    type: str = field(default="function_call_output", init=False)


@dataclass(frozen=True)
class ReasoningPayload:
    """Reasoning summary; object items are flattened to their ``text``."""

    summary: tuple[str, ...]
    encrypted_content: str | None = None
    type: str = field(default="reasoning", init=False)


ResponseItemPayload = Union[MessagePayload, FunctionCallPayload, FunctionCallOutputPayload, ReasoningPayload]


# event_msg payloads


@dataclass(frozen=True)
class TokenCountInfo:
    total_usage: TokenUsageValues
    last_usage: TokenUsageValues
    model_context_window: int


@dataclass(frozen=True)
class TokenCountPayload:
    info: TokenCountInfo | None
    type: str = field(default="token_count", init=False)


@dataclass(frozen=True)
class AgentReasoningPayload:
    text: str
    type: str = field(default="agent_reasoning", init=False)


@dataclass(frozen=True)
class AgentMessagePayload:
    message: str
    type: str = field(default="agent_message", init=False)


@dataclass(frozen=True)
class UserMessagePayload:
    message: str
    type: str = field(default="user_message", init=False)


@dataclass(frozen=True)
class ContextCompactedPayload:
    type: str = field(default="context_compacted", init=False)


EventMsgPayload = Union[
    TokenCountPayload,
    AgentReasoningPayload,
    AgentMessagePayload,
    UserMessagePayload,
    ContextCompactedPayload,
]


# Entries


@dataclass(frozen=True)
class SessionMetaGit:
    commit_hash: str | None = None
    branch: str | None = None
    repository_url: str | None = None


@dataclass(frozen=True)
class SessionMetaEntry:
    """First-line session metadata; accepted only with an ``id`` or ``cwd``."""

    timestamp: str
    id: str | None = None
    cwd: str | None = None
    originator: str | None = None
    cli_version: str | None = None
    model_provider: str | None = None
    model: str | None = None
    base_instructions: Any = field(default=None, compare=False)
    git: SessionMetaGit | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    type: str = field(default="session_meta", init=False)


@dataclass(frozen=True)
class ResponseItemEntry:
    timestamp: str
    payload: ResponseItemPayload
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    type: str = field(default="response_item", init=False)


@dataclass(frozen=True)
class TurnContextEntry:
    """Per-turn configuration; accepted only with a ``cwd`` or ``model``.

    ``collaboration_mode`` holds the normalized mode label: the string itself,
    or the ``mode`` key when the log carries an object.
    """

    timestamp: str
    turn_id: str | None = None
    cwd: str | None = None
    model: str | None = None
    effort: str | None = None
    collaboration_mode: str | None = None
    approval_policy: str | None = None
    personality: str | None = None
    summary: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    type: str = field(default="turn_context", init=False)


@dataclass(frozen=True)
class EventMsgEntry:
    timestamp: str
    payload: EventMsgPayload
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    type: str = field(default="event_msg", init=False)


@dataclass(frozen=True)
class CompactedEntry:
    """Top-level context compaction marker."""

    timestamp: str
    message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    type: str = field(default="compacted", init=False)


LogEntry = Union[SessionMetaEntry, ResponseItemEntry, TurnContextEntry, EventMsgEntry, CompactedEntry]

LOG_ENTRY_TYPES: tuple[type, ...] = (
    SessionMetaEntry,
    ResponseItemEntry,
    TurnContextEntry,
    EventMsgEntry,
    CompactedEntry,
)
