"""Tests for cumulative token usage reconciliation."""

from __future__ import annotations

from codex_rollout.parsing.schemas import TokenCountInfo, TokenUsageValues
from codex_rollout.parsing.token_usage import CumulativeUsageTracker, diff_token_usage, resolve_token_usage


def test_first_event_uses_fallback_delta() -> None:
    """Without a previous snapshot the event's own last usage is used."""
    current = TokenUsageValues(100, 20, 10, 5, 110)
    fallback = TokenUsageValues(40, 0, 4, 1, 44)

    assert resolve_token_usage(None, current, fallback) == fallback


def test_duplicate_snapshot_is_skipped() -> None:
    """Re-emitting the same cumulative snapshot contributes nothing."""
    snapshot = TokenUsageValues(10, 2, 6, 1, 19)

    assert resolve_token_usage(snapshot, snapshot, TokenUsageValues(10, 2, 6, 1, 19)) is None


def test_mixed_delta_clamps_decreasing_field_to_zero() -> None:
    """A counter that goes backwards contributes zero instead of cancelling growth."""
    previous = TokenUsageValues(
        input_tokens=120000,
        cached_input_tokens=50000,
        output_tokens=3000,
        reasoning_output_tokens=1000,
        total_tokens=123000,
    )
    current = TokenUsageValues(
        input_tokens=125000,
        cached_input_tokens=49900,
        output_tokens=3500,
        reasoning_output_tokens=1200,
        total_tokens=128500,
    )

    delta = resolve_token_usage(previous, current, TokenUsageValues())

    assert delta == TokenUsageValues(
        input_tokens=5000,
        cached_input_tokens=0,
        output_tokens=500,
        reasoning_output_tokens=200,
        total_tokens=5500,
    )


def test_counter_reset_falls_back_to_last_usage() -> None:
    """When every counter drops, the provider reset and the fallback delta applies."""
    previous = TokenUsageValues(500, 100, 50, 10, 550)
    current = TokenUsageValues(40, 0, 5, 0, 45)
    fallback = TokenUsageValues(40, 0, 5, 0, 45)

    assert resolve_token_usage(previous, current, fallback) == fallback


def test_diff_token_usage_never_goes_negative() -> None:
    """Each field is clamped independently."""
    delta = diff_token_usage(TokenUsageValues(5, 5, 5, 5, 5), TokenUsageValues(1, 9, 1, 9, 1))

    assert delta == TokenUsageValues(0, 4, 0, 4, 0)


def test_tracker_remembers_snapshot_even_when_skipping() -> None:
    """The tracker sums deltas across a stream without double counting duplicates."""
    tracker = CumulativeUsageTracker()
    events = [
        _info(total=TokenUsageValues(10, 0, 6, 0, 16), last=TokenUsageValues(10, 0, 6, 0, 16)),
        _info(total=TokenUsageValues(10, 0, 6, 0, 16), last=TokenUsageValues(10, 0, 6, 0, 16)),
        _info(total=TokenUsageValues(30, 5, 9, 1, 39), last=TokenUsageValues(20, 5, 3, 1, 23)),
    ]

    deltas = [tracker.observe(info) for info in events]

    assert deltas[0] == TokenUsageValues(10, 0, 6, 0, 16)
    assert deltas[1] is None
    assert deltas[2] == TokenUsageValues(20, 5, 3, 1, 23)
    assert sum(delta.total_tokens for delta in deltas if delta is not None) == 39


def _info(total: TokenUsageValues, last: TokenUsageValues) -> TokenCountInfo:
    return TokenCountInfo(total_usage=total, last_usage=last, model_context_window=258400)
