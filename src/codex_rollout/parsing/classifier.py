"""Semantic role classification for validated rollout entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .schemas import (
    AgentMessagePayload,
    AgentReasoningPayload,
    EventMsgEntry,
    FunctionCallOutputPayload,
    FunctionCallPayload,
    LogEntry,
    MessagePayload,
    ReasoningPayload,
    ResponseItemEntry,
    TokenCountPayload,
    UserMessagePayload,
)

MessageKind = Literal[
    "user",
    "assistant",
    "developer",
    "function_call",
    "function_output",
    "reasoning",
    "event",
    "other",
]


@dataclass(frozen=True)
class ClassifiedEntry:
    entry: LogEntry
    kind: MessageKind


def classify_entry(entry: LogEntry) -> MessageKind:
    """Return the semantic role of one entry; the first matching check wins.

    The assistant check also matches ``agent_reasoning`` events, so those are
    reported as ``assistant`` and never reach the reasoning check.
    """
    if is_user_message(entry):
        return "user"
    if is_assistant_message(entry):
        return "assistant"
    if is_function_call(entry):
        return "function_call"
    if is_function_output(entry):
        return "function_output"
    if is_reasoning(entry):
        return "reasoning"
    if is_developer_message(entry):
        return "developer"
    if isinstance(entry, EventMsgEntry):
        return "event"
    return "other"


def classify_entries(entries: list[LogEntry]) -> list[ClassifiedEntry]:
    return [ClassifiedEntry(entry=entry, kind=classify_entry(entry)) for entry in entries]


def _message_role(entry: LogEntry) -> str | None:
    if isinstance(entry, ResponseItemEntry) and isinstance(entry.payload, MessagePayload):
        return entry.payload.role
    return None


def is_user_message(entry: LogEntry) -> bool:
    role = _message_role(entry)
    if role is not None:
        return role == "user"
    return isinstance(entry, EventMsgEntry) and isinstance(entry.payload, UserMessagePayload)


def is_assistant_message(entry: LogEntry) -> bool:
    role = _message_role(entry)
    if role is not None:
        return role == "assistant"
    return isinstance(entry, EventMsgEntry) and isinstance(
        entry.payload, (AgentMessagePayload, AgentReasoningPayload)
    )


def is_developer_message(entry: LogEntry) -> bool:
    return _message_role(entry) == "developer"


def is_function_call(entry: LogEntry) -> bool:
    return isinstance(entry, ResponseItemEntry) and isinstance(entry.payload, FunctionCallPayload)


def is_function_output(entry: LogEntry) -> bool:
    return isinstance(entry, ResponseItemEntry) and isinstance(entry.payload, FunctionCallOutputPayload)


def is_reasoning(entry: LogEntry) -> bool:
    if isinstance(entry, ResponseItemEntry) and isinstance(entry.payload, ReasoningPayload):
        return True
    return isinstance(entry, EventMsgEntry) and isinstance(entry.payload, AgentReasoningPayload)


def is_token_count_event(entry: LogEntry) -> bool:
    return isinstance(entry, EventMsgEntry) and isinstance(entry.payload, TokenCountPayload)
