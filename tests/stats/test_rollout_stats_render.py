"""Unit tests for rollout stats rendering."""

from __future__ import annotations

from rich.console import Console

from codex_rollout.stats.render import render_stats_summary
from codex_rollout.stats.schemas import (
    CostCoverage,
    DailyPoint,
    HourlyPoint,
    ModelBreakdown,
    RatesInfo,
    StatsScope,
    StatsSummary,
    StatsTotals,
    TopHour,
)


def test_render_stats_summary_includes_tables_and_warnings() -> None:
    """Rendered output should include daily rows, model breakdowns, and coverage notes."""
    summary = _summary(
        totals=StatsTotals(sessions=2, archived_sessions=1, event_count=12, total_tokens=1500, estimated_cost_usd=0.25),
        daily=[DailyPoint(date="2026-02-15", total_tokens=1500, event_count=12, session_count=2)],
        models=[
            ModelBreakdown(model="gpt-5", reasoning_effort="high", total_tokens=1400, session_count=2),
            ModelBreakdown(model="mystery-model", reasoning_effort="unknown", total_tokens=100, session_count=1),
        ],
        top_hours=[TopHour(hour=9, event_count=12, session_count=2, total_tokens=1500, output_tokens=300)],
        cost_coverage=CostCoverage(priced_tokens=1400, unpriced_tokens=100, unpriced_models=("mystery-model",)),
    )

    console = Console(record=True, width=220)
    render_stats_summary(summary, console)

    output = console.export_text()
    assert "Daily Token Usage" in output
    assert "2026-02-15" in output
    assert "gpt-5" in output
    assert "09:00" in output
    assert "Unpriced tokens: 100 (models: mystery-model)" in output
    assert "Rates warning: bundled" in output


def test_render_stats_summary_without_sessions() -> None:
    console = Console(record=True, width=120)
    render_stats_summary(_summary(scope=StatsScope(type="project", cwd="/repo")), console)

    assert "No sessions found for scope project:/repo." in console.export_text()


def _summary(
    *,
    scope: StatsScope | None = None,
    totals: StatsTotals | None = None,
    daily: list[DailyPoint] | None = None,
    models: list[ModelBreakdown] | None = None,
    top_hours: list[TopHour] | None = None,
    cost_coverage: CostCoverage | None = None,
) -> StatsSummary:
    return StatsSummary(
        generated_at="2026-02-16T00:00:00.000Z",
        timezone="UTC",
        scope=scope or StatsScope(type="all"),
        totals=totals or StatsTotals(),
        daily=daily or [],
        hourly=[HourlyPoint(hour=hour) for hour in range(24)],
        top_days=[],
        top_hours=top_hours or [],
        models=models or [],
        reasoning_efforts=[],
        cost_coverage=cost_coverage or CostCoverage(priced_tokens=0, unpriced_tokens=0, unpriced_models=()),
        rates=RatesInfo(updated_at=None, source="bundled-defaults", warnings=("bundled",)),
    )
