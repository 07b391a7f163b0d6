"""Typed schemas used by the stats pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from ..parsing.schemas import TokenUsageValues
from ..parsing.session_parser import ModelUsage


@dataclass
class TokenTotals:
    """Accumulates token counters."""

    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    reasoning_tokens: int = 0

    @classmethod
    def from_usage(cls, usage: TokenUsageValues) -> "TokenTotals":
        return cls(
            total_tokens=usage.total_tokens,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cached_tokens=usage.cached_input_tokens,
            reasoning_tokens=usage.reasoning_output_tokens,
        )

    def add(self, other: "TokenTotals") -> None:
        """Mutate this object by adding another set of counters in place."""
        self.total_tokens += other.total_tokens
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cached_tokens += other.cached_tokens
        self.reasoning_tokens += other.reasoning_tokens


# Per-session record


@dataclass(kw_only=True)
class SessionModelTokenTotals(TokenTotals):
    model: str
    reasoning_effort: str


@dataclass(kw_only=True)
class SessionDailyBucket(TokenTotals):
    date: str
    event_count: int = 0


@dataclass(kw_only=True)
class SessionHourlyBucket(TokenTotals):
    hour: int
    event_count: int = 0


@dataclass
class SessionStatsRecord:
    """Compact statistical summary of one session."""

    session_id: str
    file_path: str
    revision: str
    archived: bool
    cwd: str
    start_time: str
    last_activity: str
    model_usages: tuple[ModelUsage, ...]
    event_count: int
    turn_count: int
    tool_call_count: int
    duration_ms: int
    tokens: TokenTotals
    model_token_totals: list[SessionModelTokenTotals]
    daily_buckets: list[SessionDailyBucket]
    hourly_buckets: list[SessionHourlyBucket]
    last_seen_at: str


@dataclass
class CollectedRecords:
    """Result of parsing many session files into stats records."""

    records: list[SessionStatsRecord] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    files_scanned: int = 0
    malformed_lines: int = 0
    rejected_values: int = 0


# Aggregated summary


@dataclass(frozen=True)
class StatsScope:
    type: Literal["all", "project"]
    cwd: str | None = None

    def matches(self, record: SessionStatsRecord) -> bool:
        return self.type == "all" or record.cwd == self.cwd

    def label(self) -> str:
        return "all" if self.type == "all" else f"project:{self.cwd}"


@dataclass(kw_only=True)
class StatsTotals(TokenTotals):
    sessions: int = 0
    archived_sessions: int = 0
    event_count: int = 0
    duration_ms: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(kw_only=True)
class DailyPoint(TokenTotals):
    date: str
    event_count: int = 0
    session_count: int = 0


@dataclass(kw_only=True)
class HourlyPoint(TokenTotals):
    hour: int
    event_count: int = 0
    session_count: int = 0


@dataclass(frozen=True)
class TopDay:
    date: str
    event_count: int
    session_count: int
    total_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class TopHour:
    hour: int
    event_count: int
    session_count: int
    total_tokens: int
    output_tokens: int


@dataclass(kw_only=True)
class ModelBreakdown(TokenTotals):
    model: str
    reasoning_effort: str
    session_count: int = 0
    archived_session_count: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(kw_only=True)
class ReasoningEffortBreakdown(TokenTotals):
    reasoning_effort: str
    session_count: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class CostCoverage:
    priced_tokens: int
    unpriced_tokens: int
    unpriced_models: tuple[str, ...]


@dataclass(frozen=True)
class RatesInfo:
    updated_at: str | None
    source: str | None
    warnings: tuple[str, ...] = ()


@dataclass
class StatsSummary:
    """Scoped aggregation of many session records with cost estimates."""

    generated_at: str
    timezone: str
    scope: StatsScope
    totals: StatsTotals
    daily: list[DailyPoint]
    hourly: list[HourlyPoint]
    top_days: list[TopDay]
    top_hours: list[TopHour]
    models: list[ModelBreakdown]
    reasoning_efforts: list[ReasoningEffortBreakdown]
    cost_coverage: CostCoverage
    rates: RatesInfo
