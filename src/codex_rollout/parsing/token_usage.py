"""Reconciliation of cumulative token usage snapshots into per-event deltas.

Rollouts report a running ``total_token_usage`` and a provider-supplied
``last_token_usage`` in every ``token_count`` event. Summing either naively
double counts: the same cumulative snapshot is often emitted twice, and
individual counters can move backwards (cache eviction) or reset entirely.
"""

from __future__ import annotations

from .schemas import TOKEN_FIELDS, TokenCountInfo, TokenUsageValues


def diff_token_usage(previous: TokenUsageValues, current: TokenUsageValues) -> TokenUsageValues:
    """Return ``current - previous`` with every field clamped to zero independently."""
    return TokenUsageValues(
        **{
            field_name: max(current.field_value(field_name) - previous.field_value(field_name), 0)
            for field_name in TOKEN_FIELDS
        }
    )


def has_positive_field(usage: TokenUsageValues) -> bool:
    """Return True when at least one counter is above zero."""
    return any(usage.field_value(field_name) > 0 for field_name in TOKEN_FIELDS)


def resolve_token_usage(
    previous: TokenUsageValues | None,
    current: TokenUsageValues,
    fallback: TokenUsageValues,
) -> TokenUsageValues | None:
    """Return the usage delta contributed by one token_count event, or None to skip it.

    Args:
        previous: Cumulative snapshot of the previous token_count event, if any.
        current: Cumulative snapshot of this event.
        fallback: The event's own ``last_token_usage``.

    Returns:
        ``fallback`` for the first event and for provider-side counter resets,
        the clamped cumulative diff when any counter grew, and None when the
        event re-emits the previous snapshot unchanged.
    """
    if previous is None:
        return fallback

    delta = diff_token_usage(previous, current)
    if has_positive_field(delta):
        return delta

    if current == previous:
        return None

    return fallback


class CumulativeUsageTracker:
    """Feeds token_count events through :func:`resolve_token_usage` in order."""

    def __init__(self) -> None:
        self._previous: TokenUsageValues | None = None

    def observe(self, info: TokenCountInfo) -> TokenUsageValues | None:
        """Return the delta for one event and remember its cumulative snapshot."""
        usage = resolve_token_usage(self._previous, info.total_usage, info.last_usage)
        self._previous = info.total_usage
        return usage
