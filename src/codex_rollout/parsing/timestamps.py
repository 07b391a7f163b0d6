"""Timestamp helpers shared by the parser, chunk builder, and stats."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339-style timestamp into an aware datetime, or None when invalid."""
    if not isinstance(value, str) or not value:
        return None

    normalized = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def timestamp_ms(value: Any) -> int:
    """Return epoch milliseconds for a timestamp string; invalid values map to 0."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return 0
    return (parsed - _EPOCH) // _ONE_MS
