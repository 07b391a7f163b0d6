"""Tests for JSON wire marshaling."""

from __future__ import annotations

import orjson

from codex_rollout.chunks.schemas import CompactionChunk, UserChunk
from codex_rollout.parsing.session_parser import ModelUsage
from codex_rollout.parsing.validator import validate_entry
from codex_rollout.stats.rates import ModelRate
from codex_rollout.wire import camel_case, dumps, to_wire


def test_camel_case() -> None:
    assert camel_case("reasoning_effort") == "reasoningEffort"
    assert camel_case("model") == "model"
    assert camel_case("cached_input_usd_per_1m") == "cachedInputUsdPer1M"


def test_to_wire_uses_raw_json_for_entries() -> None:
    raw = {
        "timestamp": "2026-02-15T00:00:00Z",
        "type": "event_msg",
        "payload": {"type": "agent_message", "message": "hi", "extra_field": 1},
    }
    entry = validate_entry(raw)

    assert to_wire(entry) == raw


def test_to_wire_converts_dataclasses() -> None:
    chunk = UserChunk(content="hello", timestamp="2026-02-15T00:00:00Z")

    assert to_wire(chunk) == {
        "content": "hello",
        "timestamp": "2026-02-15T00:00:00Z",
        "attachments": [],
        "type": "user",
    }
    assert to_wire((ModelUsage(model="gpt-5", reasoning_effort="high"),)) == [
        {"model": "gpt-5", "reasoningEffort": "high"}
    ]
    assert to_wire(ModelRate("gpt-5", 1.0, 0.1, 8.0, 8.0))["reasoningOutputUsdPer1M"] == 8.0


def test_dumps_emits_json_bytes() -> None:
    encoded = dumps([CompactionChunk(timestamp="2026-02-15T00:00:00Z")], indent=True)

    assert encoded.startswith(b"[\n")
    assert orjson.loads(encoded) == [{"timestamp": "2026-02-15T00:00:00Z", "type": "compaction"}]
