"""JSON wire marshaling for parsed sessions, chunks, and stats.

Result dataclasses use snake_case attributes; the wire format uses camelCase
keys. Validated entries are emitted as the raw JSON object they were parsed
from.
"""

from __future__ import annotations

import dataclasses
from typing import Any

import orjson

from .parsing.schemas import LOG_ENTRY_TYPES

_KEY_OVERRIDES = {
    "input_usd_per_1m": "inputUsdPer1M",
    "cached_input_usd_per_1m": "cachedInputUsdPer1M",
    "output_usd_per_1m": "outputUsdPer1M",
    "reasoning_output_usd_per_1m": "reasoningOutputUsdPer1M",
}


def camel_case(name: str) -> str:
    if name in _KEY_OVERRIDES:
        return _KEY_OVERRIDES[name]
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def to_wire(value: Any) -> Any:
    """Convert a result value into plain JSON data with camelCase keys."""
    if isinstance(value, LOG_ENTRY_TYPES) and value.raw:
        return value.raw
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            camel_case(item.name): to_wire(getattr(value, item.name))
            for item in dataclasses.fields(value)
            if item.name != "raw"
        }
    if isinstance(value, dict):
        return {str(key): to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value


def dumps(value: Any, *, indent: bool = False) -> bytes:
    """Encode a result value as wire JSON bytes."""
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(to_wire(value), option=option)
