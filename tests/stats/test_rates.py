"""Unit tests for rate card loading."""

from __future__ import annotations

import logging
from pathlib import Path

import orjson
import pytest

from codex_rollout.parsing.errors import RateCardError
from codex_rollout.stats.rates import (
    BUNDLED_SOURCE,
    default_rate_card,
    load_rate_card,
    normalize_rate_key,
    parse_rate_card,
)


def test_default_rate_card_lookup_is_case_insensitive() -> None:
    card = load_rate_card(None)

    assert card == default_rate_card()
    assert card.source == BUNDLED_SOURCE
    assert card.warnings
    rate = card.lookup()[normalize_rate_key("  GPT-5-Codex ")]
    assert rate.input_usd_per_1m == 1.25
    assert rate.reasoning_output_usd_per_1m == rate.output_usd_per_1m


def test_load_rate_card_document(tmp_path: Path) -> None:
    rates_path = tmp_path / "rates.json"
    rates_path.write_bytes(
        orjson.dumps(
            {
                "version": 1,
                "updatedAt": "2026-02-01T00:00:00Z",
                "source": "internal",
                "models": [
                    {
                        "model": "gpt-5",
                        "inputUsdPer1M": 1,
                        "cachedInputUsdPer1M": 0.1,
                        "outputUsdPer1M": 8,
                        "reasoningOutputUsdPer1M": 12,
                    }
                ],
                "warnings": ["custom rates"],
            }
        )
    )

    card = load_rate_card(rates_path, strict=True)

    assert card.source == "internal"
    assert card.updated_at == "2026-02-01T00:00:00Z"
    assert card.warnings == ("custom rates",)
    assert card.lookup()["gpt-5"].reasoning_output_usd_per_1m == 12.0


def test_load_litellm_price_map(tmp_path: Path) -> None:
    """Per-token prices are scaled to per-million rates; unpriced entries are skipped."""
    rates_path = tmp_path / "model_prices.json"
    rates_path.write_bytes(
        orjson.dumps(
            {
                "sample_spec": {"input_cost_per_token": "varies"},
                "gpt-5": {
                    "input_cost_per_token": 1.25e-06,
                    "output_cost_per_token": 1e-05,
                    "cache_read_input_token_cost": 1.25e-07,
                },
                "gpt-5-nano": {"input_cost_per_token": 5e-08, "output_cost_per_token": 4e-07},
            }
        )
    )

    card = load_rate_card(rates_path)
    rates = card.lookup()

    assert set(rates) == {"gpt-5", "gpt-5-nano"}
    assert rates["gpt-5"].input_usd_per_1m == pytest.approx(1.25)
    assert rates["gpt-5"].cached_input_usd_per_1m == pytest.approx(0.125)
    assert rates["gpt-5"].output_usd_per_1m == pytest.approx(10.0)
    assert rates["gpt-5-nano"].cached_input_usd_per_1m == pytest.approx(0.05)
    assert card.source == str(rates_path)


def test_unusable_rate_file_falls_back_with_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    rates_path = tmp_path / "rates.json"
    rates_path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="codex_rollout.stats.rates"):
        card = load_rate_card(rates_path)

    assert card.source == BUNDLED_SOURCE
    assert card.warnings[-1] == f"Failed to load rates from {rates_path}."
    assert "falling back to bundled defaults" in caplog.text


def test_strict_loading_raises(tmp_path: Path) -> None:
    with pytest.raises(RateCardError):
        load_rate_card(tmp_path / "missing.json", strict=True)


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"version": 2, "models": []},
        {"version": 1, "models": [{"model": "gpt-5", "inputUsdPer1M": 1}]},
        {"version": 1, "models": [], "warnings": "none"},
        {"gpt-5": {"input_cost_per_token": None}},
    ],
)
def test_parse_rate_card_rejects_invalid_documents(document: object) -> None:
    with pytest.raises(RateCardError):
        parse_rate_card(document)
