"""Single-pass session metadata and metrics extraction for one rollout file."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .classifier import ClassifiedEntry, classify_entries
from .reader import ReadCounters, iter_json_values, validate_values
from .schemas import (
    EventMsgEntry,
    FunctionCallPayload,
    LogEntry,
    ResponseItemEntry,
    SessionMetaEntry,
    TokenCountPayload,
    TokenUsageValues,
    TurnContextEntry,
)
from .timestamps import timestamp_ms
from .token_usage import CumulativeUsageTracker

LOGGER = logging.getLogger(__name__)

UNKNOWN_EFFORT = "unknown"

_EPOCH_ISO = "1970-01-01T00:00:00.000Z"
_UUID_TAIL_PATTERN = re.compile(
    r"([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\.jsonl$"
)
_ID_TAIL_PATTERN = re.compile(r"-([A-Za-z0-9-]+)\.jsonl$")


@dataclass(frozen=True)
class ModelUsage:
    model: str
    reasoning_effort: str


@dataclass
class SessionMetrics:
    """Aggregate counters for one session."""

    total_tokens: int = 0
    input_tokens: int = 0
    cached_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    tool_call_count: int = 0
    turn_count: int = 0
    duration: int = 0

    def add_usage(self, usage: TokenUsageValues) -> None:
        self.input_tokens += usage.input_tokens
        self.cached_tokens += usage.cached_input_tokens
        self.output_tokens += usage.output_tokens
        self.reasoning_tokens += usage.reasoning_output_tokens
        self.total_tokens += usage.total_tokens


@dataclass(frozen=True)
class SessionInfo:
    """Identity and configuration of one session."""

    id: str
    file_path: str
    cwd: str
    model: str
    reasoning_effort: str
    model_usages: tuple[ModelUsage, ...]
    cli_version: str
    git_branch: str
    git_commit: str
    start_time: str
    model_provider: str
    originator: str


@dataclass
class ParsedSession:
    """Everything derived from one read of a rollout file."""

    file_path: str
    entries: list[LogEntry]
    session_meta: SessionMetaEntry | None
    response_items: list[ResponseItemEntry]
    turn_contexts: list[TurnContextEntry]
    event_messages: list[EventMsgEntry]
    classified_entries: list[ClassifiedEntry]
    session: SessionInfo
    metrics: SessionMetrics
    malformed_lines: int = 0
    rejected_values: int = 0
    malformed_line_numbers: list[int] = field(default_factory=list)


def parse_session_file(path: Path) -> ParsedSession:
    """Read, validate and summarize one rollout file.

    Malformed lines and invalid values are skipped and counted.

    Raises:
        RolloutReadError: If the file cannot be read.
    """
    counters = ReadCounters()
    values = (value for _, value in iter_json_values(path, counters))
    return parse_session_values(values, str(path), counters)


def parse_session_values(
    values: Iterable[Any],
    file_path: str,
    counters: ReadCounters | None = None,
) -> ParsedSession:
    """Summarize an already-decoded sequence of raw JSON values."""
    counters = counters if counters is not None else ReadCounters()
    entries = validate_values(values, counters)
    parsed = summarize_entries(entries, file_path)
    parsed.malformed_lines = counters.malformed_lines
    parsed.rejected_values = counters.rejected_values
    parsed.malformed_line_numbers = list(counters.malformed_line_numbers)

    LOGGER.debug(
        "Parsed session file %s: %d entries, %d malformed lines, %d rejected values",
        file_path,
        len(entries),
        counters.malformed_lines,
        counters.rejected_values,
    )
    return parsed


def summarize_entries(entries: list[LogEntry], file_path: str) -> ParsedSession:
    """Walk validated entries once in file order and build the parsed session."""
    response_items: list[ResponseItemEntry] = []
    turn_contexts: list[TurnContextEntry] = []
    event_messages: list[EventMsgEntry] = []
    session_meta: SessionMetaEntry | None = None

    metrics = SessionMetrics()
    tracker = CumulativeUsageTracker()
    first_timestamp: str | None = None
    last_timestamp: str | None = None
    first_model_usage: ModelUsage | None = None
    model_usages: list[ModelUsage] = []

    for entry in entries:
        if first_timestamp is None:
            first_timestamp = entry.timestamp
        last_timestamp = entry.timestamp

        if isinstance(entry, SessionMetaEntry):
            if session_meta is None:
                session_meta = entry
            continue

        if isinstance(entry, ResponseItemEntry):
            response_items.append(entry)
            if isinstance(entry.payload, FunctionCallPayload):
                metrics.tool_call_count += 1
            continue

        if isinstance(entry, TurnContextEntry):
            turn_contexts.append(entry)
            model = normalize_model(entry.model)
            if model:
                usage = ModelUsage(model=model, reasoning_effort=normalize_reasoning_effort(entry.effort))
                if first_model_usage is None:
                    first_model_usage = usage
                if usage not in model_usages:
                    model_usages.append(usage)
            continue

        if isinstance(entry, EventMsgEntry):
            event_messages.append(entry)
            if isinstance(entry.payload, TokenCountPayload) and entry.payload.info is not None:
                delta = tracker.observe(entry.payload.info)
                if delta is not None:
                    metrics.add_usage(delta)

    classified_entries = classify_entries(entries)
    metrics.turn_count = sum(1 for classified in classified_entries if classified.kind == "user")

    if first_timestamp is not None and last_timestamp is not None:
        metrics.duration = max(timestamp_ms(last_timestamp) - timestamp_ms(first_timestamp), 0)

    meta_model = normalize_model(session_meta.model if session_meta else None)
    if meta_model and not model_usages:
        model_usages.append(ModelUsage(model=meta_model, reasoning_effort=UNKNOWN_EFFORT))

    if first_model_usage is not None:
        model, reasoning_effort = first_model_usage.model, first_model_usage.reasoning_effort
    else:
        model, reasoning_effort = meta_model, UNKNOWN_EFFORT

    fallback_start = first_timestamp or _EPOCH_ISO
    start_time = fallback_start
    if session_meta is not None and timestamp_ms(session_meta.timestamp) != 0:
        start_time = session_meta.timestamp

    git = session_meta.git if session_meta else None
    session = SessionInfo(
        id=(session_meta.id if session_meta and session_meta.id else None) or session_id_from_path(file_path),
        file_path=file_path,
        cwd=(session_meta.cwd if session_meta else None) or _first_turn_context_cwd(turn_contexts),
        model=model,
        reasoning_effort=reasoning_effort,
        model_usages=tuple(model_usages),
        cli_version=(session_meta.cli_version if session_meta else None) or "",
        git_branch=(git.branch if git else None) or "",
        git_commit=(git.commit_hash if git else None) or "",
        start_time=start_time,
        model_provider=(session_meta.model_provider if session_meta else None) or "",
        originator=(session_meta.originator if session_meta else None) or "",
    )

    return ParsedSession(
        file_path=file_path,
        entries=entries,
        session_meta=session_meta,
        response_items=response_items,
        turn_contexts=turn_contexts,
        event_messages=event_messages,
        classified_entries=classified_entries,
        session=session,
        metrics=metrics,
    )


def session_id_from_path(file_path: str) -> str:
    """Derive a session id from a rollout file name.

    ``rollout-2025-01-01T10-00-00-<uuid>.jsonl`` yields the UUID; other names
    fall back to the last ``-<id>.jsonl`` segment, then to the file stem.
    """
    file_name = Path(file_path).name
    uuid_match = _UUID_TAIL_PATTERN.search(file_name)
    if uuid_match:
        return uuid_match.group(1)
    id_match = _ID_TAIL_PATTERN.search(file_name)
    if id_match:
        return id_match.group(1)
    return file_name.removesuffix(".jsonl")


def normalize_model(model: str | None) -> str:
    return model.strip() if model else ""


def normalize_reasoning_effort(effort: str | None) -> str:
    value = effort.strip() if effort else ""
    return value or UNKNOWN_EFFORT


def _first_turn_context_cwd(turn_contexts: list[TurnContextEntry]) -> str:
    if turn_contexts and turn_contexts[0].cwd:
        return turn_contexts[0].cwd
    return ""
