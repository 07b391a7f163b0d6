"""Line-oriented JSONL reading for rollout files."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from .errors import RolloutReadError
from .schemas import LogEntry
from .validator import validate_entry

LOGGER = logging.getLogger(__name__)


@dataclass
class ReadCounters:
    """Line bookkeeping for one rollout read."""

    lines_read: int = 0
    malformed_lines: int = 0
    rejected_values: int = 0
    malformed_line_numbers: list[int] = field(default_factory=list)


def iter_json_values(path: Path, counters: ReadCounters | None = None) -> Iterator[tuple[int, Any]]:
    """Yield decoded JSON values with line numbers, skipping blank and malformed lines.

    Raises:
        RolloutReadError: If the file cannot be opened or read.
    """
    counters = counters if counters is not None else ReadCounters()
    try:
        with path.open("rb") as handle:
            for line_number, raw_line in enumerate(handle, start=1):
                if not raw_line.strip():
                    continue
                counters.lines_read += 1
                try:
                    value = orjson.loads(raw_line)
                except orjson.JSONDecodeError as exc:
                    counters.malformed_lines += 1
                    counters.malformed_line_numbers.append(line_number)
                    LOGGER.debug("Skipping malformed JSON in %s at line %d: %s", path, line_number, exc)
                    continue
                yield line_number, value
    except OSError as exc:
        raise RolloutReadError(f"Failed to read rollout file {path}: {exc}") from exc


def validate_values(values: Iterable[Any], counters: ReadCounters | None = None) -> list[LogEntry]:
    """Validate already-decoded JSON values, dropping the ones that are not entries."""
    counters = counters if counters is not None else ReadCounters()
    entries: list[LogEntry] = []
    for index, value in enumerate(values):
        entry = validate_entry(value)
        if entry is None:
            counters.rejected_values += 1
            LOGGER.debug("Rejected rollout value at position %d", index)
            continue
        entries.append(entry)
    return entries


def read_entries(path: Path, counters: ReadCounters | None = None) -> list[LogEntry]:
    """Read and validate every entry of one rollout file in file order."""
    counters = counters if counters is not None else ReadCounters()
    return validate_values((value for _, value in iter_json_values(path, counters)), counters)


def read_first_entry(path: Path) -> LogEntry | None:
    """Return the first valid entry of a rollout file without reading the rest."""
    for _, value in iter_json_values(path):
        entry = validate_entry(value)
        if entry is not None:
            return entry
    return None
