"""Per-session stats records, scoped aggregation, and cost estimation."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..parsing.errors import RolloutReadError, StatsScopeError
from ..parsing.schemas import EventMsgEntry, TokenCountPayload, TurnContextEntry
from ..parsing.session_parser import ParsedSession, parse_session_file
from ..parsing.timestamps import parse_timestamp, timestamp_ms
from ..parsing.token_usage import CumulativeUsageTracker
from .rates import TOKENS_PER_MILLION, ModelRate, RateCard, normalize_rate_key
from .schemas import (
    CollectedRecords,
    CostCoverage,
    DailyPoint,
    HourlyPoint,
    ModelBreakdown,
    RatesInfo,
    ReasoningEffortBreakdown,
    SessionDailyBucket,
    SessionHourlyBucket,
    SessionModelTokenTotals,
    SessionStatsRecord,
    StatsScope,
    StatsSummary,
    StatsTotals,
    TokenTotals,
    TopDay,
    TopHour,
)

LOGGER = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown-model"
UNKNOWN_EFFORT = "unknown"
UNKNOWN_REVISION = "unknown-revision"
ARCHIVED_SESSIONS_DIR = "archived_sessions"
TOP_ENTRY_LIMIT = 5
COST_DECIMALS = 6
LOCALTIME_PATH = Path("/etc/localtime")
HOURS_PER_DAY = 24


def build_session_stats_record(
    parsed: ParsedSession,
    *,
    timezone: ZoneInfo | None = None,
    revision: str = "",
    archived: bool = False,
    now: datetime | None = None,
) -> SessionStatsRecord:
    """Bucket one parsed session's reconciled token usage by day, hour, and model.

    Args:
        parsed: Output of the session parser.
        timezone: Bucketing timezone; None means the local system timezone.
        revision: Caller-supplied file revision marker.
        archived: Whether the session lives in the archive.
        now: Reference time for ``last_seen_at``.
    """
    daily_buckets: dict[str, SessionDailyBucket] = {}
    hourly_buckets = {hour: SessionHourlyBucket(hour=hour) for hour in range(HOURS_PER_DAY)}
    model_buckets: dict[tuple[str, str], SessionModelTokenTotals] = {}
    tokens = TokenTotals()
    tracker = CumulativeUsageTracker()

    meta_model = parsed.session_meta.model if parsed.session_meta else None
    current_model = _normalize_model(parsed.session.model or meta_model)
    current_effort = UNKNOWN_EFFORT
    for model_usage in parsed.session.model_usages:
        if model_usage.model:
            current_model = _normalize_model(model_usage.model)
            current_effort = _normalize_effort(model_usage.reasoning_effort)
            break

    for entry in parsed.entries:
        if isinstance(entry, TurnContextEntry):
            if entry.model:
                current_model = _normalize_model(entry.model)
            current_effort = _normalize_effort(entry.effort)
            continue

        if not (
            isinstance(entry, EventMsgEntry)
            and isinstance(entry.payload, TokenCountPayload)
            and entry.payload.info is not None
        ):
            continue

        usage = tracker.observe(entry.payload.info)
        if usage is None:
            continue

        usage_totals = TokenTotals.from_usage(usage)
        tokens.add(usage_totals)

        model_key = (normalize_rate_key(current_model), current_effort)
        if model_key not in model_buckets:
            model_buckets[model_key] = SessionModelTokenTotals(model=current_model, reasoning_effort=current_effort)
        model_buckets[model_key].add(usage_totals)

        local_time = _local_time(entry.timestamp, timezone)
        if local_time is None:
            continue
        _daily_bucket(daily_buckets, local_time).add(usage_totals)
        hourly_buckets[local_time.hour].add(usage_totals)

    event_count = 0
    for classified in parsed.classified_entries:
        local_time = _local_time(classified.entry.timestamp, timezone)
        if local_time is None:
            continue
        event_count += 1
        _daily_bucket(daily_buckets, local_time).event_count += 1
        hourly_buckets[local_time.hour].event_count += 1

    last_activity = parsed.entries[-1].timestamp if parsed.entries else parsed.session.start_time

    return SessionStatsRecord(
        session_id=parsed.session.id,
        file_path=parsed.session.file_path,
        revision=revision,
        archived=archived,
        cwd=parsed.session.cwd,
        start_time=parsed.session.start_time,
        last_activity=last_activity,
        model_usages=parsed.session.model_usages,
        event_count=event_count,
        turn_count=parsed.metrics.turn_count,
        tool_call_count=parsed.metrics.tool_call_count,
        duration_ms=parsed.metrics.duration,
        tokens=tokens,
        model_token_totals=sorted(model_buckets.values(), key=lambda bucket: -bucket.total_tokens),
        daily_buckets=sorted(daily_buckets.values(), key=lambda bucket: bucket.date),
        hourly_buckets=list(hourly_buckets.values()),
        last_seen_at=_iso_timestamp(now),
    )


def aggregate_stats_summary(
    records: Iterable[SessionStatsRecord],
    scope: StatsScope,
    rate_card: RateCard,
    *,
    timezone: ZoneInfo | None = None,
    now: datetime | None = None,
) -> StatsSummary:
    """Sum the in-scope session records and estimate their cost against a rate card."""
    daily: dict[str, DailyPoint] = {}
    daily_sessions: dict[str, set[str]] = {}
    hourly = {hour: HourlyPoint(hour=hour) for hour in range(HOURS_PER_DAY)}
    hourly_sessions: dict[int, set[str]] = {hour: set() for hour in range(HOURS_PER_DAY)}
    models: dict[tuple[str, str], ModelBreakdown] = {}
    model_sessions: dict[tuple[str, str], set[str]] = {}
    model_archived_sessions: dict[tuple[str, str], set[str]] = {}
    rate_lookup = rate_card.lookup()
    unpriced_models: set[str] = set()
    priced_tokens = 0
    unpriced_tokens = 0
    totals = StatsTotals()

    for record in records:
        if not scope.matches(record):
            continue

        totals.sessions += 1
        if record.archived:
            totals.archived_sessions += 1
        totals.event_count += record.event_count
        totals.duration_ms += record.duration_ms
        totals.add(record.tokens)

        for day_bucket in record.daily_buckets:
            point = daily.setdefault(day_bucket.date, DailyPoint(date=day_bucket.date))
            point.event_count += day_bucket.event_count
            point.add(day_bucket)
            daily_sessions.setdefault(day_bucket.date, set()).add(record.session_id)

        for hour_bucket in record.hourly_buckets:
            point = hourly[hour_bucket.hour]
            point.event_count += hour_bucket.event_count
            point.add(hour_bucket)
            if hour_bucket.event_count or hour_bucket.total_tokens:
                hourly_sessions[hour_bucket.hour].add(record.session_id)

        for model_totals in record.model_token_totals:
            model_key = (normalize_rate_key(model_totals.model), _normalize_effort(model_totals.reasoning_effort))
            breakdown = models.setdefault(
                model_key,
                ModelBreakdown(model=model_totals.model, reasoning_effort=model_totals.reasoning_effort),
            )
            breakdown.add(model_totals)
            model_sessions.setdefault(model_key, set()).add(record.session_id)
            if record.archived:
                model_archived_sessions.setdefault(model_key, set()).add(record.session_id)

            rate = rate_lookup.get(normalize_rate_key(model_totals.model))
            if rate is None:
                unpriced_tokens += model_totals.total_tokens
                unpriced_models.add(model_totals.model)
                continue
            usage_cost = estimate_usage_cost_usd(model_totals, rate)
            breakdown.estimated_cost_usd += usage_cost
            totals.estimated_cost_usd += usage_cost
            priced_tokens += model_totals.total_tokens

    for date, point in daily.items():
        point.session_count = len(daily_sessions[date])
    for hour, point in hourly.items():
        point.session_count = len(hourly_sessions[hour])
    for model_key, breakdown in models.items():
        breakdown.session_count = len(model_sessions[model_key])
        breakdown.archived_session_count = len(model_archived_sessions.get(model_key, ()))

    daily_points = sorted(daily.values(), key=lambda point: point.date)
    hourly_points = list(hourly.values())

    reasoning_efforts = _reasoning_effort_breakdown(models, model_sessions)
    for breakdown in models.values():
        breakdown.estimated_cost_usd = round(breakdown.estimated_cost_usd, COST_DECIMALS)
    totals.estimated_cost_usd = round(totals.estimated_cost_usd, COST_DECIMALS)

    return StatsSummary(
        generated_at=_iso_timestamp(now),
        timezone=timezone_label(timezone),
        scope=scope,
        totals=totals,
        daily=daily_points,
        hourly=hourly_points,
        top_days=[
            TopDay(
                date=point.date,
                event_count=point.event_count,
                session_count=point.session_count,
                total_tokens=point.total_tokens,
                output_tokens=point.output_tokens,
            )
            for point in _top_points(daily_points)
        ],
        top_hours=[
            TopHour(
                hour=point.hour,
                event_count=point.event_count,
                session_count=point.session_count,
                total_tokens=point.total_tokens,
                output_tokens=point.output_tokens,
            )
            for point in _top_points(hourly_points)
        ],
        models=sorted(models.values(), key=lambda breakdown: -breakdown.total_tokens),
        reasoning_efforts=reasoning_efforts,
        cost_coverage=CostCoverage(
            priced_tokens=priced_tokens,
            unpriced_tokens=unpriced_tokens,
            unpriced_models=tuple(sorted(unpriced_models)),
        ),
        rates=RatesInfo(updated_at=rate_card.updated_at, source=rate_card.source, warnings=rate_card.warnings),
    )


def estimate_usage_cost_usd(tokens: TokenTotals, rate: ModelRate) -> float:
    """Return the USD cost of one token bucket at per-million rates."""
    non_reasoning_output = max(tokens.output_tokens - tokens.reasoning_tokens, 0)
    return (
        (tokens.input_tokens / TOKENS_PER_MILLION) * rate.input_usd_per_1m
        + (tokens.cached_tokens / TOKENS_PER_MILLION) * rate.cached_input_usd_per_1m
        + (non_reasoning_output / TOKENS_PER_MILLION) * rate.output_usd_per_1m
        + (tokens.reasoning_tokens / TOKENS_PER_MILLION) * rate.reasoning_output_usd_per_1m
    )


def parse_stats_scope(value: str) -> StatsScope:
    """Parse ``all`` or ``project:<cwd>`` into a scope.

    Raises:
        StatsScopeError: If the value is neither form or the project cwd is empty.
    """
    text = value.strip()
    if text == "all":
        return StatsScope(type="all")
    prefix, separator, cwd = text.partition(":")
    if prefix != "project" or not separator:
        raise StatsScopeError(f"Unknown stats scope '{value}'; expected 'all' or 'project:<cwd>'.")
    if not cwd.strip():
        raise StatsScopeError(f"Stats scope '{value}' is missing a project cwd.")
    return StatsScope(type="project", cwd=cwd)


def collect_session_records(
    paths: Iterable[Path],
    *,
    timezone: ZoneInfo | None = None,
    max_workers: int | None = None,
    now: datetime | None = None,
) -> CollectedRecords:
    """Parse many session files concurrently into stats records.

    Files that cannot be read are logged and listed in ``failed_files``; the
    batch continues. Records are returned sorted by session start time.
    """
    collected = CollectedRecords()
    path_list = list(paths)
    if not path_list:
        return collected

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_build_record_for_file, path, timezone, now): path for path in path_list}
        for future in as_completed(futures):
            path = futures[future]
            collected.files_scanned += 1
            try:
                parsed, record = future.result()
            except RolloutReadError as exc:
                collected.failed_files.append(str(path))
                LOGGER.error("Failed to read session file %s: %s", path, exc)
                continue
            collected.malformed_lines += parsed.malformed_lines
            collected.rejected_values += parsed.rejected_values
            collected.records.append(record)

    collected.records.sort(key=lambda record: (timestamp_ms(record.start_time), record.file_path))
    collected.failed_files.sort()
    return collected


def discover_session_files(root: Path) -> list[Path]:
    """Discover JSONL session files in sorted path order."""
    if root.is_file():
        return [root]
    if not root.exists():
        return []
    return sorted(path for path in root.rglob("*.jsonl") if path.is_file())


def file_revision(path: Path) -> str:
    """Return an ``<mtime ms>:<size>`` marker that changes whenever the file does."""
    try:
        stat_result = path.stat()
    except OSError:
        return UNKNOWN_REVISION
    return f"{stat_result.st_mtime_ns // 1_000_000}:{stat_result.st_size}"


def timezone_label(timezone: ZoneInfo | None) -> str:
    if timezone is not None:
        return timezone.key
    return local_timezone_name()


def local_timezone_name() -> str:
    """Return the IANA name of the system timezone.

    Checks ``TZ`` first, then the zoneinfo file that ``/etc/localtime`` links to.
    Falls back to the abbreviation reported by the C library.
    """
    tz_value = os.environ.get("TZ", "").lstrip(":")
    if tz_value and _is_zone_key(tz_value):
        return tz_value

    try:
        target = LOCALTIME_PATH.resolve(strict=True)
    except OSError:
        target = None
    if target is not None and "zoneinfo" in target.parts:
        parts = target.parts
        key = "/".join(parts[len(parts) - parts[::-1].index("zoneinfo") :])
        if key:
            return key

    LOGGER.debug("Could not resolve an IANA name for the local timezone")
    return datetime.now().astimezone().tzname() or "local"


def _is_zone_key(value: str) -> bool:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def _build_record_for_file(
    path: Path,
    timezone: ZoneInfo | None,
    now: datetime | None,
) -> tuple[ParsedSession, SessionStatsRecord]:
    parsed = parse_session_file(path)
    record = build_session_stats_record(
        parsed,
        timezone=timezone,
        revision=file_revision(path),
        archived=ARCHIVED_SESSIONS_DIR in path.parts,
        now=now,
    )
    return parsed, record


def _reasoning_effort_breakdown(
    models: dict[tuple[str, str], ModelBreakdown],
    model_sessions: dict[tuple[str, str], set[str]],
) -> list[ReasoningEffortBreakdown]:
    breakdowns: dict[str, ReasoningEffortBreakdown] = {}
    sessions: dict[str, set[str]] = {}
    for model_key, model in models.items():
        breakdown = breakdowns.setdefault(
            model.reasoning_effort, ReasoningEffortBreakdown(reasoning_effort=model.reasoning_effort)
        )
        breakdown.add(model)
        breakdown.estimated_cost_usd += model.estimated_cost_usd
        sessions.setdefault(model.reasoning_effort, set()).update(model_sessions[model_key])

    for effort, breakdown in breakdowns.items():
        breakdown.session_count = len(sessions[effort])
        breakdown.estimated_cost_usd = round(breakdown.estimated_cost_usd, COST_DECIMALS)
    return sorted(breakdowns.values(), key=lambda breakdown: -breakdown.total_tokens)


def _top_points(points: list[DailyPoint] | list[HourlyPoint]) -> list:
    """Select the busiest points by event count, then total tokens."""
    ranked = sorted(points, key=lambda point: (-point.event_count, -point.total_tokens))
    return ranked[:TOP_ENTRY_LIMIT]


def _daily_bucket(buckets: dict[str, SessionDailyBucket], local_time: datetime) -> SessionDailyBucket:
    date_key = local_time.date().isoformat()
    if date_key not in buckets:
        buckets[date_key] = SessionDailyBucket(date=date_key)
    return buckets[date_key]


def _local_time(timestamp: str, timezone: ZoneInfo | None) -> datetime | None:
    """Resolve a timestamp in the selected timezone (or local system timezone)."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return None
    return parsed.astimezone(timezone)


def _iso_timestamp(now: datetime | None) -> str:
    moment = now if now is not None else datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _normalize_model(model: str | None) -> str:
    value = model.strip() if model else ""
    return value or UNKNOWN_MODEL


def _normalize_effort(effort: str | None) -> str:
    value = effort.strip() if effort else ""
    return value or UNKNOWN_EFFORT
