"""Chunk reconstruction: a fold over time-sorted rollout entries.

The builder keeps one :class:`BuilderState` and threads it through
:func:`apply_entry` for every entry. Chunks are only ever appended to
``state.chunks``; the open AI accumulator and the pending user message are
the only mutable parts until they are flushed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any, Literal

import orjson

from ..parsing.bootstrap import classify_prelude
from ..parsing.classifier import is_developer_message, is_user_message
from ..parsing.schemas import (
    AgentMessagePayload,
    AgentReasoningPayload,
    CompactedEntry,
    ContextCompactedPayload,
    EventMsgEntry,
    FunctionCallOutputPayload,
    FunctionCallPayload,
    LogEntry,
    MessagePayload,
    ReasoningPayload,
    ResponseItemEntry,
    SessionMetaEntry,
    TokenCountPayload,
    TokenUsageValues,
    TurnContextEntry,
    UserMessagePayload,
    content_block_text,
)
from ..parsing.session_parser import normalize_model, normalize_reasoning_effort
from ..parsing.timestamps import timestamp_ms
from ..parsing.token_usage import CumulativeUsageTracker
from .attachments import extract_attachments
from .schemas import (
    AIChunk,
    AIChunkSection,
    Chunk,
    ChunkMetrics,
    CollaborationModeChangeChunk,
    CompactionChunk,
    FunctionCallInfo,
    FunctionOutputInfo,
    MessageSection,
    ModelChangeChunk,
    ReasoningSection,
    SystemChunk,
    ToolExecution,
    ToolExecutionsSection,
    ToolTokenUsage,
    UserAttachment,
)
from .user_messages import (
    MessageSource,
    PendingUserMessage,
    is_equivalent_user_content,
    normalize_comparable_text,
    pick_preferred,
    sanitize_user_text,
)

LOGGER = logging.getLogger(__name__)

COMPACTION_DEDUP_WINDOW_MS = 1000
UNKNOWN_TOOL_NAME = "unknown"

SectionKind = Literal["message", "reasoning", "tools"]


@dataclass
class _ToolCallRef:
    index: int
    call_ms: int | None
    output_ms: int | None = None


@dataclass
class _SectionDraft:
    kind: SectionKind
    source: MessageSource | None
    items: list[Any] = field(default_factory=list)


@dataclass
class _AIAccumulator:
    timestamp: str
    start_ms: int
    end_ms: int
    sections: list[_SectionDraft] = field(default_factory=list)
    tool_executions: list[ToolExecution] = field(default_factory=list)
    call_index_by_id: dict[str, _ToolCallRef] = field(default_factory=dict)
    pending_usage_tool_index: int | None = None
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class BuilderState:
    """Everything carried from one entry to the next."""

    chunks: list[Chunk] = field(default_factory=list)
    current_ai: _AIAccumulator | None = None
    pending_user: PendingUserMessage | None = None
    last_model: tuple[str, str] | None = None
    last_mode: str | None = None
    usage_tracker: CumulativeUsageTracker = field(default_factory=CumulativeUsageTracker)


def sort_entries(entries: Iterable[LogEntry]) -> list[LogEntry]:
    """Stable sort by timestamp; ties keep file order."""
    return sorted(entries, key=lambda entry: timestamp_ms(entry.timestamp))


def build_chunks(entries: Iterable[LogEntry]) -> list[Chunk]:
    """Reconstruct the ordered conversation chunks of one session."""
    state = BuilderState()
    for entry in sort_entries(entries):
        state = apply_entry(state, entry)
    return finish(state)


def finish(state: BuilderState) -> list[Chunk]:
    """Flush whatever is still pending and return the chunk sequence."""
    _flush_user(state)
    _flush_ai(state)
    return state.chunks


def apply_entry(state: BuilderState, entry: LogEntry) -> BuilderState:
    """Advance the builder state by one entry."""
    if isinstance(entry, SessionMetaEntry):
        return state

    if _is_compaction_marker(entry):
        _flush_user(state)
        _flush_ai(state)
        _append_compaction(state, entry.timestamp)
        return state

    if isinstance(entry, TurnContextEntry):
        _apply_turn_context(state, entry)
        return state

    if is_user_message(entry):
        _flush_ai(state)
        _apply_user_message(state, entry)
        return state

    if is_developer_message(entry) and isinstance(entry, ResponseItemEntry):
        _flush_user(state)
        _flush_ai(state)
        content = entry.payload.text() if isinstance(entry.payload, MessagePayload) else ""
        state.chunks.append(
            SystemChunk(content=content, timestamp=entry.timestamp, prelude_kind=classify_prelude(content))
        )
        return state

    _flush_user(state)
    _apply_ai_entry(state, entry)
    return state


def _is_compaction_marker(entry: LogEntry) -> bool:
    if isinstance(entry, CompactedEntry):
        return True
    return isinstance(entry, EventMsgEntry) and isinstance(entry.payload, ContextCompactedPayload)


def _append_compaction(state: BuilderState, timestamp: str) -> None:
    last_chunk = state.chunks[-1] if state.chunks else None
    if isinstance(last_chunk, CompactionChunk):
        gap = abs(timestamp_ms(timestamp) - timestamp_ms(last_chunk.timestamp))
        if gap <= COMPACTION_DEDUP_WINDOW_MS:
            return
    state.chunks.append(CompactionChunk(timestamp=timestamp))


def _apply_turn_context(state: BuilderState, entry: TurnContextEntry) -> None:
    model = normalize_model(entry.model)
    if model:
        current = (model, normalize_reasoning_effort(entry.effort))
        if state.last_model is not None and state.last_model != current:
            _flush_user(state)
            _flush_ai(state)
            previous_model, previous_effort = state.last_model
            state.chunks.append(
                ModelChangeChunk(
                    previous_model=previous_model,
                    previous_effort=previous_effort,
                    model=current[0],
                    effort=current[1],
                    timestamp=entry.timestamp,
                )
            )
        state.last_model = current

    mode = entry.collaboration_mode
    if mode:
        if state.last_mode is not None and state.last_mode != mode:
            _flush_user(state)
            _flush_ai(state)
            state.chunks.append(
                CollaborationModeChangeChunk(previous_mode=state.last_mode, mode=mode, timestamp=entry.timestamp)
            )
        state.last_mode = mode


def _apply_user_message(state: BuilderState, entry: LogEntry) -> None:
    attachments: tuple[UserAttachment, ...] = ()
    if isinstance(entry, ResponseItemEntry) and isinstance(entry.payload, MessagePayload):
        content = sanitize_user_text(entry.payload.text())
        attachments = tuple(extract_attachments(entry.payload.content))
        source: MessageSource = "response"
    elif isinstance(entry, EventMsgEntry) and isinstance(entry.payload, UserMessagePayload):
        content = sanitize_user_text(entry.payload.message)
        source = "event"
    else:
        return

    if not content:
        return

    incoming = PendingUserMessage(content=content, timestamp=entry.timestamp, source=source, attachments=attachments)
    pending = state.pending_user
    if pending is None:
        state.pending_user = incoming
    elif is_equivalent_user_content(pending.content, incoming.content):
        state.pending_user = pick_preferred(pending, incoming)
    else:
        state.chunks.append(pending.to_chunk())
        state.pending_user = incoming


def _flush_user(state: BuilderState) -> None:
    if state.pending_user is None:
        return
    state.chunks.append(state.pending_user.to_chunk())
    state.pending_user = None


# AI accumulator


def _ensure_ai(state: BuilderState, timestamp: str) -> _AIAccumulator:
    if state.current_ai is None:
        at = timestamp_ms(timestamp)
        state.current_ai = _AIAccumulator(timestamp=timestamp, start_ms=at, end_ms=at)
    return state.current_ai


def _apply_ai_entry(state: BuilderState, entry: LogEntry) -> None:
    ai = _ensure_ai(state, entry.timestamp)
    entry_ms = timestamp_ms(entry.timestamp)
    ai.end_ms = max(ai.end_ms, entry_ms)

    if isinstance(entry, ResponseItemEntry):
        payload = entry.payload
        if isinstance(payload, MessagePayload):
            for block in payload.content:
                _push_text(ai, "message", "response", content_block_text(block))
        elif isinstance(payload, FunctionCallPayload):
            _record_function_call(ai, payload, entry_ms)
        elif isinstance(payload, FunctionCallOutputPayload):
            _record_function_output(ai, payload, entry_ms)
        elif isinstance(payload, ReasoningPayload):
            for text in payload.summary:
                _push_text(ai, "reasoning", "response", text)
        return

    if isinstance(entry, EventMsgEntry):
        payload = entry.payload
        if isinstance(payload, AgentMessagePayload):
            _push_text(ai, "message", "event", payload.message)
        elif isinstance(payload, AgentReasoningPayload):
            _push_text(ai, "reasoning", "event", payload.text)
        elif isinstance(payload, TokenCountPayload) and payload.info is not None:
            usage = state.usage_tracker.observe(payload.info)
            if usage is not None:
                _add_usage(ai, usage)


def _push_unique_adjacent(items: list[str], value: str) -> None:
    text = value.strip()
    if not text:
        return
    if items and normalize_comparable_text(items[-1]) == normalize_comparable_text(text):
        return
    items.append(text)


def _push_text(ai: _AIAccumulator, kind: SectionKind, source: MessageSource, value: str) -> None:
    if not value.strip():
        return
    last = ai.sections[-1] if ai.sections else None
    if last is None or last.kind != kind or last.source != source:
        last = _SectionDraft(kind=kind, source=source)
        ai.sections.append(last)
    _push_unique_adjacent(last.items, value)


def _push_tool_index(ai: _AIAccumulator, index: int) -> None:
    last = ai.sections[-1] if ai.sections else None
    if last is None or last.kind != "tools":
        last = _SectionDraft(kind="tools", source=None)
        ai.sections.append(last)
    last.items.append(index)


def _record_function_call(ai: _AIAccumulator, payload: FunctionCallPayload, call_ms: int) -> None:
    call = FunctionCallInfo(name=payload.name, arguments=payload.arguments, call_id=payload.call_id)
    ref = ai.call_index_by_id.get(payload.call_id)

    if ref is None:
        index = len(ai.tool_executions)
        ai.tool_executions.append(ToolExecution(function_call=call, function_output=None, duration=0))
        ai.call_index_by_id[payload.call_id] = _ToolCallRef(index=index, call_ms=call_ms)
        ai.pending_usage_tool_index = index
        _push_tool_index(ai, index)
        return

    if ref.call_ms is not None:
        LOGGER.debug("Ignoring duplicate function call %s", payload.call_id)
        return

    # Output arrived first; fill in the synthetic call.
    ref.call_ms = call_ms
    execution = ai.tool_executions[ref.index]
    duration = max(ref.output_ms - call_ms, 0) if ref.output_ms is not None else 0
    ai.tool_executions[ref.index] = replace(execution, function_call=call, duration=duration)


def _record_function_output(ai: _AIAccumulator, payload: FunctionCallOutputPayload, output_ms: int) -> None:
    output = FunctionOutputInfo(
        call_id=payload.call_id,
        output=payload.output,
        is_error=parse_tool_output_error(payload.output),
    )
    ref = ai.call_index_by_id.get(payload.call_id)

    if ref is None:
        index = len(ai.tool_executions)
        ai.tool_executions.append(
            ToolExecution(
                function_call=FunctionCallInfo(name=UNKNOWN_TOOL_NAME, arguments="", call_id=payload.call_id),
                function_output=output,
                duration=0,
            )
        )
        ai.call_index_by_id[payload.call_id] = _ToolCallRef(index=index, call_ms=None, output_ms=output_ms)
        _push_tool_index(ai, index)
        return

    ref.output_ms = output_ms
    execution = ai.tool_executions[ref.index]
    duration = max(output_ms - ref.call_ms, 0) if ref.call_ms is not None else 0
    ai.tool_executions[ref.index] = replace(execution, function_output=output, duration=duration)


def _add_usage(ai: _AIAccumulator, usage: TokenUsageValues) -> None:
    for key, value in (
        ("input_tokens", usage.input_tokens),
        ("cached_tokens", usage.cached_input_tokens),
        ("output_tokens", usage.output_tokens),
        ("reasoning_tokens", usage.reasoning_output_tokens),
        ("total_tokens", usage.total_tokens),
    ):
        ai.usage[key] = ai.usage.get(key, 0) + value

    index = ai.pending_usage_tool_index
    if index is None:
        return
    execution = ai.tool_executions[index]
    previous = execution.token_usage
    ai.tool_executions[index] = replace(
        execution,
        token_usage=ToolTokenUsage(
            input_tokens=usage.input_tokens + (previous.input_tokens if previous else 0),
            cached_input_tokens=usage.cached_input_tokens + (previous.cached_input_tokens if previous else 0),
            output_tokens=usage.output_tokens + (previous.output_tokens if previous else 0),
        ),
    )
    ai.pending_usage_tool_index = None


def parse_tool_output_error(output: str) -> bool:
    """Best-effort error detection on a tool output; non-JSON output is never an error."""
    try:
        parsed = orjson.loads(output)
    except orjson.JSONDecodeError:
        return False
    if not isinstance(parsed, dict):
        return False

    is_error = parsed.get("is_error")
    if isinstance(is_error, bool):
        return is_error

    exit_code = parsed.get("exit_code")
    if _is_number(exit_code):
        return exit_code != 0

    metadata = parsed.get("metadata")
    if isinstance(metadata, dict) and _is_number(metadata.get("exit_code")):
        return metadata["exit_code"] != 0

    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# Flush


def _flush_ai(state: BuilderState) -> None:
    ai = state.current_ai
    if ai is None:
        return
    state.current_ai = None

    sections = _merge_adjacent_sections(_select_sources(ai.sections))
    text_blocks: list[str] = []
    reasoning: list[str] = []
    for section in sections:
        if section.kind == "message":
            for text in section.items:
                _push_unique_adjacent(text_blocks, text)
        elif section.kind == "reasoning":
            for text in section.items:
                _push_unique_adjacent(reasoning, text)

    if not text_blocks and not reasoning and not ai.tool_executions:
        return

    tool_executions = tuple(ai.tool_executions)
    state.chunks.append(
        AIChunk(
            text_blocks=tuple(text_blocks),
            tool_executions=tool_executions,
            reasoning=tuple(reasoning),
            sections=tuple(_freeze_section(section, tool_executions) for section in sections),
            metrics=ChunkMetrics(tool_call_count=len(tool_executions), **ai.usage),
            timestamp=ai.timestamp,
            duration=max(ai.end_ms - ai.start_ms, 0),
        )
    )


def _select_sources(sections: list[_SectionDraft]) -> list[_SectionDraft]:
    """Drop event-sourced message or reasoning sections when a response-sourced one exists."""
    response_kinds = {section.kind for section in sections if section.source == "response"}
    return [
        section
        for section in sections
        if section.kind == "tools" or section.source == "response" or section.kind not in response_kinds
    ]


def _merge_adjacent_sections(sections: list[_SectionDraft]) -> list[_SectionDraft]:
    merged: list[_SectionDraft] = []
    for section in sections:
        last = merged[-1] if merged else None
        if last is None or last.kind != section.kind:
            merged.append(_SectionDraft(kind=section.kind, source=section.source, items=list(section.items)))
            continue
        if section.kind == "tools":
            for index in section.items:
                if index not in last.items:
                    last.items.append(index)
        else:
            for text in section.items:
                _push_unique_adjacent(last.items, text)
    return merged


def _freeze_section(section: _SectionDraft, tool_executions: tuple[ToolExecution, ...]) -> AIChunkSection:
    if section.kind == "message":
        return MessageSection(text_blocks=tuple(section.items))
    if section.kind == "reasoning":
        return ReasoningSection(summaries=tuple(section.items))
    return ToolExecutionsSection(executions=tuple(tool_executions[index] for index in section.items))
