"""Tests for rollout entry role classification."""

from __future__ import annotations

from typing import Any

from codex_rollout.parsing.classifier import classify_entries, classify_entry, is_reasoning, is_token_count_event
from codex_rollout.parsing.schemas import LogEntry
from codex_rollout.parsing.validator import validate_entry


def test_classify_entry_covers_each_role() -> None:
    """Every payload family maps to its semantic role."""
    cases = [
        (_response({"type": "message", "role": "user", "content": []}), "user"),
        (_response({"type": "message", "role": "assistant", "content": []}), "assistant"),
        (_response({"type": "message", "role": "developer", "content": []}), "developer"),
        (_response({"type": "function_call", "name": "shell", "arguments": "{}", "call_id": "c1"}), "function_call"),
        (_response({"type": "function_call_output", "call_id": "c1", "output": "ok"}), "function_output"),
        (_response({"type": "reasoning", "summary": []}), "reasoning"),
        (_event({"type": "user_message", "message": "hi"}), "user"),
        (_event({"type": "agent_message", "message": "hello"}), "assistant"),
        (_event({"type": "token_count", "info": None}), "event"),
        (_event({"type": "context_compacted"}), "event"),
    ]

    assert [classify_entry(entry) for entry, _ in cases] == [kind for _, kind in cases]
    assert [classify_entry(entry) for entry, _ in cases] == [classify_entry(entry) for entry, _ in cases]


def test_agent_reasoning_classifies_as_assistant() -> None:
    """The assistant check runs before the reasoning check."""
    entry = _event({"type": "agent_reasoning", "text": "considering"})

    assert classify_entry(entry) == "assistant"
    assert is_reasoning(entry)


def test_non_message_entries_are_other() -> None:
    """Session metadata, turn contexts and compaction markers classify as other."""
    meta = _entry({"timestamp": "2026-02-15T00:00:00Z", "type": "session_meta", "payload": {"id": "s"}})
    context = _entry({"timestamp": "2026-02-15T00:00:00Z", "type": "turn_context", "payload": {"model": "gpt-5"}})
    compacted = _entry({"timestamp": "2026-02-15T00:00:00Z", "type": "compacted", "payload": {"message": "m"}})

    assert [item.kind for item in classify_entries([meta, context, compacted])] == ["other", "other", "other"]


def test_is_token_count_event() -> None:
    assert is_token_count_event(_event({"type": "token_count", "info": None}))
    assert not is_token_count_event(_event({"type": "agent_message", "message": "x"}))


def _entry(value: dict[str, Any]) -> LogEntry:
    entry = validate_entry(value)
    assert entry is not None
    return entry


def _response(payload: dict[str, Any]) -> LogEntry:
    return _entry({"timestamp": "2026-02-15T00:00:01Z", "type": "response_item", "payload": payload})


def _event(payload: dict[str, Any]) -> LogEntry:
    return _entry({"timestamp": "2026-02-15T00:00:01Z", "type": "event_msg", "payload": payload})
