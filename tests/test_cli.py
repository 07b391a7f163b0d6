"""Tests for Typer CLI entrypoints."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
from typer.testing import CliRunner

from codex_rollout.cli import TYPER_APP


def test_session_command_prints_summary(tmp_path: Path) -> None:
    """CLI session should print metadata and reconciled token metrics."""
    session_file = tmp_path / "session-1.jsonl"
    _write_jsonl(session_file, _session_rows())

    runner = CliRunner()
    result = runner.invoke(TYPER_APP, ["session", str(session_file)])

    assert result.exit_code == 0
    assert "id=sess-1" in result.stdout
    assert "model=gpt-5" in result.stdout
    assert "total_tokens=16" in result.stdout
    assert "turn_count=1" in result.stdout
    assert "model_usage=gpt-5:high" in result.stdout


def test_session_command_json_output(tmp_path: Path) -> None:
    session_file = tmp_path / "session-1.jsonl"
    _write_jsonl(session_file, _session_rows())

    runner = CliRunner()
    result = runner.invoke(TYPER_APP, ["session", str(session_file), "--json"])

    assert result.exit_code == 0
    payload = orjson.loads(result.stdout)
    assert payload["session"]["id"] == "sess-1"
    assert payload["metrics"]["totalTokens"] == 16
    assert payload["entries"][0]["type"] == "session_meta"


def test_session_command_rejects_missing_file(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(TYPER_APP, ["session", str(tmp_path / "missing.jsonl")])

    assert result.exit_code == 2


def test_chunks_command_lists_chunks(tmp_path: Path) -> None:
    """CLI chunks should print one line per reconstructed chunk."""
    session_file = tmp_path / "session-1.jsonl"
    _write_jsonl(session_file, _session_rows())

    runner = CliRunner()
    result = runner.invoke(TYPER_APP, ["chunks", str(session_file)])

    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines[0] == "[2026-02-15T00:00:02Z] user Run tests"
    assert lines[1].startswith("[2026-02-15T00:00:03Z] ai ")
    assert "total_tokens=16" in lines[1]

    json_result = runner.invoke(TYPER_APP, ["chunks", str(session_file), "--json"])
    assert [chunk["type"] for chunk in orjson.loads(json_result.stdout)] == ["user", "ai"]


def test_stats_command_prints_tables(tmp_path: Path) -> None:
    """CLI stats should render rich tables for the scanned sessions."""
    sessions_root = tmp_path / "sessions"
    _write_jsonl(sessions_root / "session-1.jsonl", _session_rows())

    runner = CliRunner()
    result = runner.invoke(
        TYPER_APP,
        ["stats", str(sessions_root), "--timezone", "UTC"],
        env={"COLUMNS": "220"},
        terminal_width=220,
    )

    assert result.exit_code == 0
    assert "Daily Token Usage" in result.stdout
    assert "2026-02-15" in result.stdout
    assert "gpt-5" in result.stdout


def test_stats_command_json_with_project_scope(tmp_path: Path) -> None:
    sessions_root = tmp_path / "sessions"
    _write_jsonl(sessions_root / "session-1.jsonl", _session_rows())
    rows = _session_rows()
    rows[0]["payload"] = {"id": "sess-2", "cwd": "/elsewhere"}
    _write_jsonl(sessions_root / "session-2.jsonl", rows)

    runner = CliRunner()
    result = runner.invoke(
        TYPER_APP,
        ["stats", str(sessions_root), "--timezone", "UTC", "--scope", "project:/workspace", "--json"],
    )

    assert result.exit_code == 0
    payload = orjson.loads(result.stdout)
    assert payload["scope"] == {"type": "project", "cwd": "/workspace"}
    assert payload["totals"]["sessions"] == 1
    assert payload["totals"]["totalTokens"] == 16
    assert payload["timezone"] == "UTC"
    assert payload["rates"]["source"] == "bundled-defaults"


def test_stats_command_rejects_invalid_options(tmp_path: Path) -> None:
    runner = CliRunner()

    bad_scope = runner.invoke(TYPER_APP, ["stats", str(tmp_path), "--scope", "everything"])
    bad_timezone = runner.invoke(TYPER_APP, ["stats", str(tmp_path), "--timezone", "Mars/Olympus"])

    assert bad_scope.exit_code == 2
    assert bad_timezone.exit_code == 2


def _write_jsonl(path: Path, rows: list[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        for row in rows:
            handle.write(orjson.dumps(row))
            handle.write(b"\n")


def _session_rows() -> list[dict[str, Any]]:
    usage = {
        "input_tokens": 10,
        "cached_input_tokens": 0,
        "output_tokens": 6,
        "reasoning_output_tokens": 0,
        "total_tokens": 16,
    }
    info = {"total_token_usage": usage, "last_token_usage": usage, "model_context_window": 258400}
    return [
        {
            "timestamp": "2026-02-15T00:00:00Z",
            "type": "session_meta",
            "payload": {"id": "sess-1", "cwd": "/workspace"},
        },
        {
            "timestamp": "2026-02-15T00:00:01Z",
            "type": "turn_context",
            "payload": {"cwd": "/workspace", "model": "gpt-5", "effort": "high"},
        },
        {
            "timestamp": "2026-02-15T00:00:02Z",
            "type": "event_msg",
            "payload": {"type": "user_message", "message": "Run tests"},
        },
        {
            "timestamp": "2026-02-15T00:00:03Z",
            "type": "event_msg",
            "payload": {"type": "agent_message", "message": "All green."},
        },
        {
            "timestamp": "2026-02-15T00:00:04Z",
            "type": "event_msg",
            "payload": {"type": "token_count", "info": info},
        },
    ]
