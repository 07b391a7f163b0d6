"""Typed chunk model emitted by the chunk builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

AttachmentKind = Literal["image", "text", "markdown", "code", "binary", "unknown"]
PreviewReason = Literal["too_large", "decode_error", "binary", "unsupported_mime"]


@dataclass(frozen=True)
class UserAttachment:
    """One ``data:`` URL attachment carried by a user message."""

    kind: AttachmentKind
    mime_type: str
    size_bytes: int | None
    previewable: bool
    preview_reason: PreviewReason | None = None
    data_url: str | None = None
    text_content: str | None = None
    truncated: bool = False


@dataclass(frozen=True)
class FunctionCallInfo:
    name: str
    arguments: str
    call_id: str


@dataclass(frozen=True)
class FunctionOutputInfo:
    call_id: str
    output: str
    is_error: bool


@dataclass(frozen=True)
class ToolTokenUsage:
    input_tokens: int
    cached_input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class ToolExecution:
    """One function call paired with at most one output by ``call_id``."""

    function_call: FunctionCallInfo
    function_output: FunctionOutputInfo | None
    duration: int
    token_usage: ToolTokenUsage | None = None


@dataclass(frozen=True)
class ChunkMetrics:
    input_tokens: int = 0
    cached_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    tool_call_count: int = 0


@dataclass(frozen=True)
class MessageSection:
    text_blocks: tuple[str, ...]
    type: str = field(default="message", init=False)


@dataclass(frozen=True)
class ReasoningSection:
    summaries: tuple[str, ...]
    type: str = field(default="reasoning", init=False)


@dataclass(frozen=True)
class ToolExecutionsSection:
    executions: tuple[ToolExecution, ...]
    type: str = field(default="tool_executions", init=False)


AIChunkSection = Union[MessageSection, ReasoningSection, ToolExecutionsSection]


@dataclass(frozen=True)
class UserChunk:
    content: str
    timestamp: str
    attachments: tuple[UserAttachment, ...] = ()
    type: str = field(default="user", init=False)


@dataclass(frozen=True)
class AIChunk:
    """One assistant turn: text, reasoning and tool activity between user turns."""

    text_blocks: tuple[str, ...]
    tool_executions: tuple[ToolExecution, ...]
    reasoning: tuple[str, ...]
    sections: tuple[AIChunkSection, ...]
    metrics: ChunkMetrics
    timestamp: str
    duration: int
    type: str = field(default="ai", init=False)


@dataclass(frozen=True)
class SystemChunk:
    content: str
    timestamp: str
    prelude_kind: str | None = None
    type: str = field(default="system", init=False)


@dataclass(frozen=True)
class ModelChangeChunk:
    previous_model: str
    previous_effort: str
    model: str
    effort: str
    timestamp: str
    type: str = field(default="model_change", init=False)


@dataclass(frozen=True)
class CollaborationModeChangeChunk:
    previous_mode: str
    mode: str
    timestamp: str
    type: str = field(default="collaboration_mode_change", init=False)


@dataclass(frozen=True)
class CompactionChunk:
    timestamp: str
    type: str = field(default="compaction", init=False)


Chunk = Union[UserChunk, AIChunk, SystemChunk, ModelChangeChunk, CollaborationModeChangeChunk, CompactionChunk]
