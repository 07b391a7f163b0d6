"""CLI entrypoints for inspecting Codex rollout files."""

from __future__ import annotations

import logging
from pathlib import Path
from zoneinfo import ZoneInfo

import typer
from rich.console import Console

from .chunks.builder import build_chunks
from .chunks.schemas import AIChunk, Chunk, CollaborationModeChangeChunk, ModelChangeChunk, SystemChunk, UserChunk
from .parsing.errors import RolloutReadError, StatsScopeError
from .parsing.session_parser import ParsedSession, parse_session_file
from .stats.rates import load_rate_card
from .stats.render import render_stats_summary
from .stats.schemas import CollectedRecords
from .stats.service import aggregate_stats_summary, collect_session_records, discover_session_files, parse_stats_scope
from .wire import dumps

LOGGER = logging.getLogger(__name__)
DEFAULT_SESSIONS_ROOTS = [
    Path.home() / ".codex" / "sessions",
    Path.home() / ".codex" / "archived_sessions",
]
PREVIEW_LENGTH = 80

TYPER_APP = typer.Typer(help="Codex rollout inspection tooling.")


@TYPER_APP.callback()
def main() -> None:
    """Root CLI callback."""


@TYPER_APP.command("session")
def session_command(
    session_file: Path = typer.Argument(..., help="Rollout JSONL file."),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed session as wire JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Print session metadata and aggregate metrics for one rollout file."""
    _configure_logging(verbose)
    parsed = _parse_or_fail(session_file)
    if as_json:
        typer.echo(dumps(parsed, indent=True).decode())
        return
    _emit_session_summary(parsed)


@TYPER_APP.command("chunks")
def chunks_command(
    session_file: Path = typer.Argument(..., help="Rollout JSONL file."),
    as_json: bool = typer.Option(False, "--json", help="Print chunks as wire JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Print the reconstructed conversation chunks of one rollout file."""
    _configure_logging(verbose)
    parsed = _parse_or_fail(session_file)
    chunks = build_chunks(parsed.entries)
    if as_json:
        typer.echo(dumps(chunks, indent=True).decode())
        return
    for chunk in chunks:
        typer.echo(_describe_chunk(chunk))


@TYPER_APP.command("stats")
def stats_command(
    paths: list[Path] | None = typer.Argument(
        None,
        help="Rollout files or directories to scan. Defaults to ~/.codex/sessions and ~/.codex/archived_sessions.",
    ),
    timezone: str | None = typer.Option(
        None,
        "--timezone",
        "-tz",
        help="Timezone to use for daily stats (e.g., 'UTC', 'America/New_York'). Defaults to local system time.",
    ),
    rates: Path | None = typer.Option(
        None,
        "--rates",
        help="Rate card JSON file (rate card document or LiteLLM price map). Defaults to bundled rates.",
    ),
    scope: str = typer.Option("all", "--scope", help="'all' or 'project:<cwd>'."),
    workers: int | None = typer.Option(None, "--workers", min=1, help="Maximum number of parsing threads."),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as wire JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Aggregate token usage and estimated costs across rollout files."""
    _configure_logging(verbose)
    resolved_timezone = _parse_timezone(timezone)
    try:
        stats_scope = parse_stats_scope(scope)
    except StatsScopeError as exc:
        raise typer.BadParameter(str(exc)) from exc

    session_files = [path for root in (paths or DEFAULT_SESSIONS_ROOTS) for path in discover_session_files(root)]
    LOGGER.info("Collecting stats from %d session files.", len(session_files))
    collected = collect_session_records(session_files, timezone=resolved_timezone, max_workers=workers)
    summary = aggregate_stats_summary(
        collected.records,
        stats_scope,
        load_rate_card(rates),
        timezone=resolved_timezone,
    )

    if as_json:
        typer.echo(dumps(summary, indent=True).decode())
    else:
        render_stats_summary(summary, Console())
        if verbose:
            _emit_collection_summary(collected)
    if collected.failed_files:
        raise typer.Exit(code=1)


def _configure_logging(verbose: bool) -> None:
    """Initialize default logging for CLI usage."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def _parse_or_fail(session_file: Path) -> ParsedSession:
    try:
        return parse_session_file(session_file)
    except RolloutReadError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _emit_session_summary(parsed: ParsedSession) -> None:
    """Print session metadata and metrics to stdout."""
    session = parsed.session
    metrics = parsed.metrics
    summary_lines = [
        f"id={session.id}",
        f"cwd={session.cwd}",
        f"model={session.model}",
        f"reasoning_effort={session.reasoning_effort}",
        f"model_provider={session.model_provider}",
        f"cli_version={session.cli_version}",
        f"git_branch={session.git_branch}",
        f"git_commit={session.git_commit}",
        f"start_time={session.start_time}",
        f"duration_ms={metrics.duration}",
        f"turn_count={metrics.turn_count}",
        f"tool_call_count={metrics.tool_call_count}",
        f"input_tokens={metrics.input_tokens}",
        f"cached_tokens={metrics.cached_tokens}",
        f"output_tokens={metrics.output_tokens}",
        f"reasoning_tokens={metrics.reasoning_tokens}",
        f"total_tokens={metrics.total_tokens}",
        f"entries={len(parsed.entries)}",
        f"malformed_lines={parsed.malformed_lines}",
        f"rejected_values={parsed.rejected_values}",
    ]
    for line in summary_lines:
        typer.echo(line)

    for usage in session.model_usages:
        typer.echo(f"model_usage={usage.model}:{usage.reasoning_effort}")


def _emit_collection_summary(collected: CollectedRecords) -> None:
    typer.echo(f"files_scanned={collected.files_scanned}")
    typer.echo(f"records={len(collected.records)}")
    typer.echo(f"malformed_lines={collected.malformed_lines}")
    typer.echo(f"rejected_values={collected.rejected_values}")
    for failed_file in collected.failed_files:
        typer.echo(f"failed_file={failed_file}")


def _describe_chunk(chunk: Chunk) -> str:
    """Return a one-line description of a chunk."""
    if isinstance(chunk, UserChunk):
        detail = _preview(chunk.content)
        if chunk.attachments:
            detail += f" (+{len(chunk.attachments)} attachments)"
    elif isinstance(chunk, AIChunk):
        detail = (
            f"text_blocks={len(chunk.text_blocks)} reasoning={len(chunk.reasoning)} "
            f"tools={len(chunk.tool_executions)} total_tokens={chunk.metrics.total_tokens} "
            f"duration_ms={chunk.duration}"
        )
    elif isinstance(chunk, SystemChunk):
        detail = chunk.prelude_kind or _preview(chunk.content)
    elif isinstance(chunk, ModelChangeChunk):
        detail = f"{chunk.previous_model}:{chunk.previous_effort} -> {chunk.model}:{chunk.effort}"
    elif isinstance(chunk, CollaborationModeChangeChunk):
        detail = f"{chunk.previous_mode} -> {chunk.mode}"
    else:
        detail = ""
    return f"[{chunk.timestamp}] {chunk.type} {detail}".rstrip()


def _preview(text: str) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= PREVIEW_LENGTH:
        return single_line
    return single_line[: PREVIEW_LENGTH - 3] + "..."


def _parse_timezone(timezone: str | None) -> ZoneInfo | None:
    """Parse timezone option into a ZoneInfo instance."""
    if timezone is None:
        return None
    try:
        return ZoneInfo(timezone)
    except Exception as exc:
        raise typer.BadParameter(f"Invalid timezone: {timezone}.") from exc


def module_cli_entry_point():
    TYPER_APP()
