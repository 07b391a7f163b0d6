"""Rich rendering helpers for rollout statistics."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from .schemas import StatsSummary, TokenTotals

TABLE_ROW_STYLES = ["white", "yellow"]


def render_stats_summary(summary: StatsSummary, console: Console) -> None:
    """Render totals, daily, model, and busiest-hour tables."""
    if summary.totals.sessions == 0:
        console.print(f"No sessions found for scope {summary.scope.label()}.")
        return

    totals = summary.totals
    console.print(
        f"Scope: {summary.scope.label()}  Timezone: {summary.timezone}  "
        f"Sessions: {totals.sessions} ({totals.archived_sessions} archived)  "
        f"Events: {totals.event_count:,}  Estimated cost ($): {totals.estimated_cost_usd:,.6f}"
    )
    console.print("\n")

    daily_table = _token_table("Daily Token Usage", "Date", footer_totals=totals)
    daily_table.add_column("Events", justify="right")
    daily_table.add_column("Sessions", justify="right")
    for index, point in enumerate(summary.daily):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        daily_table.add_row(
            point.date,
            *_token_cells(point),
            f"{point.event_count:,}",
            str(point.session_count),
            style=style,
        )
    console.print(daily_table)
    console.print("\n")

    model_table = _token_table("Token Usage by Model", "Model", footer_totals=totals)
    model_table.add_column("Effort", justify="left")
    model_table.add_column("Sessions", justify="right")
    model_table.add_column("Cost ($)", justify="right", footer=f"{totals.estimated_cost_usd:,.6f}")
    for index, model in enumerate(summary.models):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        model_table.add_row(
            model.model,
            *_token_cells(model),
            model.reasoning_effort,
            str(model.session_count),
            f"{model.estimated_cost_usd:,.6f}",
            style=style,
        )
    console.print(model_table)

    top_hours = Table(title="Busiest Hours", title_justify="left")
    top_hours.add_column("Hour", justify="right")
    top_hours.add_column("Events", justify="right")
    top_hours.add_column("Sessions", justify="right")
    top_hours.add_column("Total Tokens", justify="right")
    for hour in summary.top_hours:
        top_hours.add_row(
            f"{hour.hour:02d}:00",
            f"{hour.event_count:,}",
            str(hour.session_count),
            f"{hour.total_tokens:,}",
        )
    console.print("\n")
    console.print(top_hours)

    coverage = summary.cost_coverage
    if coverage.unpriced_tokens:
        console.print(
            f"\nUnpriced tokens: {coverage.unpriced_tokens:,} (models: {', '.join(coverage.unpriced_models)})"
        )
    for warning in summary.rates.warnings:
        console.print(f"Rates warning: {warning}")


def _token_table(title: str, key_column: str, footer_totals: TokenTotals) -> Table:
    table = Table(
        title=title,
        show_footer=True,
        footer_style="bold",
        title_justify="left",
    )
    table.add_column(key_column, footer="Grand Total", justify="left")
    table.add_column("Input Tokens", footer=f"{footer_totals.input_tokens:,}", justify="right")
    table.add_column("Cached Tokens", footer=f"{footer_totals.cached_tokens:,}", justify="right")
    table.add_column("Output Tokens", footer=f"{footer_totals.output_tokens:,}", justify="right")
    table.add_column("Reasoning Tokens", footer=f"{footer_totals.reasoning_tokens:,}", justify="right")
    table.add_column("Total Tokens", footer=f"{footer_totals.total_tokens:,}", justify="right")
    return table


def _token_cells(totals: TokenTotals) -> list[str]:
    return [
        f"{totals.input_tokens:,}",
        f"{totals.cached_tokens:,}",
        f"{totals.output_tokens:,}",
        f"{totals.reasoning_tokens:,}",
        f"{totals.total_tokens:,}",
    ]
