"""Model rate card model, bundled defaults, and file loading."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import orjson

from ..parsing.errors import RateCardError

LOGGER = logging.getLogger(__name__)

RATES_VERSION = 1
BUNDLED_SOURCE = "bundled-defaults"
BUNDLED_WARNING = "Bundled rates may be outdated. Pricing refresh is currently disabled."
TOKENS_PER_MILLION = 1_000_000


@dataclass(frozen=True)
class ModelRate:
    """USD prices per one million tokens for one model."""

    model: str
    input_usd_per_1m: float
    cached_input_usd_per_1m: float
    output_usd_per_1m: float
    reasoning_output_usd_per_1m: float


@dataclass(frozen=True)
class RateCard:
    models: tuple[ModelRate, ...]
    updated_at: str | None = None
    source: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def lookup(self) -> dict[str, ModelRate]:
        """Return rates keyed by normalized model name; later duplicates win."""
        return {normalize_rate_key(rate.model): rate for rate in self.models}


def normalize_rate_key(model: str) -> str:
    return model.strip().lower()


def _rate(model: str, input_rate: float, cached_rate: float, output_rate: float) -> ModelRate:
    return ModelRate(
        model=model,
        input_usd_per_1m=input_rate,
        cached_input_usd_per_1m=cached_rate,
        output_usd_per_1m=output_rate,
        reasoning_output_usd_per_1m=output_rate,
    )


BUNDLED_DEFAULT_RATES: tuple[ModelRate, ...] = (
    _rate("gpt-5.2", 1.75, 0.175, 14),
    _rate("gpt-5.1", 1.25, 0.125, 10),
    _rate("gpt-5", 1.25, 0.125, 10),
    _rate("gpt-5-mini", 0.25, 0.025, 2),
    _rate("gpt-5-nano", 0.05, 0.005, 0.4),
    _rate("gpt-5.2-codex", 1.75, 0.175, 14),
    _rate("gpt-5.1-codex-max", 1.25, 0.125, 10),
    _rate("gpt-5.1-codex", 1.25, 0.125, 10),
    _rate("gpt-5-codex", 1.25, 0.125, 10),
    _rate("gpt-5.1-codex-mini", 0.25, 0.025, 2),
    _rate("codex-mini-latest", 1.5, 0.375, 6),
)


def default_rate_card() -> RateCard:
    return RateCard(
        models=BUNDLED_DEFAULT_RATES,
        updated_at=None,
        source=BUNDLED_SOURCE,
        warnings=(BUNDLED_WARNING,),
    )


def load_rate_card(path: Path | None, *, strict: bool = False) -> RateCard:
    """Load a rate card file, falling back to the bundled defaults.

    Two shapes are accepted: the rate card document
    ``{version, updatedAt, source, models: [...], warnings}`` and a LiteLLM
    style map of model name to per-token prices.

    Args:
        path: Rate card file, or None to use the bundled defaults.
        strict: Raise instead of falling back when the file is unusable.

    Raises:
        RateCardError: If ``strict`` is set and the file cannot be read or parsed.
    """
    if path is None:
        return default_rate_card()

    try:
        document = orjson.loads(path.read_bytes())
        return parse_rate_card(document, source=str(path))
    except (OSError, orjson.JSONDecodeError, RateCardError) as exc:
        if strict:
            if isinstance(exc, RateCardError):
                raise
            raise RateCardError(f"Failed to load rate card from {path}: {exc}") from exc
        LOGGER.warning("Failed to load model rates from %s, falling back to bundled defaults: %s", path, exc)
        fallback = default_rate_card()
        return replace(fallback, warnings=fallback.warnings + (f"Failed to load rates from {path}.",))


def parse_rate_card(document: Any, source: str | None = None) -> RateCard:
    """Build a rate card from decoded JSON.

    Raises:
        RateCardError: If the document matches neither accepted shape.
    """
    if not isinstance(document, dict):
        raise RateCardError("Rate card must be a JSON object.")
    if "models" in document and "version" in document:
        return _parse_rates_document(document)
    return _parse_litellm_price_map(document, source)


def _parse_rates_document(document: dict[str, Any]) -> RateCard:
    version = document.get("version")
    if not _is_finite_number(version) or version != RATES_VERSION:
        raise RateCardError(f"Unsupported rate card version: {version!r}.")

    updated_at = document.get("updatedAt")
    source = document.get("source")
    if updated_at is not None and not isinstance(updated_at, str):
        raise RateCardError("Rate card updatedAt must be a string or null.")
    if source is not None and not isinstance(source, str):
        raise RateCardError("Rate card source must be a string or null.")

    warnings = document.get("warnings", [])
    if not isinstance(warnings, list) or not all(isinstance(item, str) for item in warnings):
        raise RateCardError("Rate card warnings must be a list of strings.")

    raw_models = document.get("models")
    if not isinstance(raw_models, list):
        raise RateCardError("Rate card models must be a list.")

    models: list[ModelRate] = []
    for raw_model in raw_models:
        rate = _parse_model_rate(raw_model)
        if rate is None:
            raise RateCardError(f"Invalid model rate entry: {raw_model!r}.")
        models.append(rate)

    return RateCard(models=tuple(models), updated_at=updated_at, source=source, warnings=tuple(warnings))


def _parse_model_rate(value: Any) -> ModelRate | None:
    if not isinstance(value, dict) or not isinstance(value.get("model"), str):
        return None
    keys = ("inputUsdPer1M", "cachedInputUsdPer1M", "outputUsdPer1M", "reasoningOutputUsdPer1M")
    if not all(_is_finite_number(value.get(key)) for key in keys):
        return None
    return ModelRate(
        model=value["model"],
        input_usd_per_1m=float(value["inputUsdPer1M"]),
        cached_input_usd_per_1m=float(value["cachedInputUsdPer1M"]),
        output_usd_per_1m=float(value["outputUsdPer1M"]),
        reasoning_output_usd_per_1m=float(value["reasoningOutputUsdPer1M"]),
    )


def _parse_litellm_price_map(price_spec: dict[str, Any], source: str | None) -> RateCard:
    """Convert per-token LiteLLM prices to per-million rates; entries without prices are skipped."""
    models: list[ModelRate] = []
    for model_name, model_price_spec in price_spec.items():
        if not isinstance(model_price_spec, dict):
            continue
        input_cost = model_price_spec.get("input_cost_per_token")
        output_cost = model_price_spec.get("output_cost_per_token")
        if not (_is_finite_number(input_cost) and _is_finite_number(output_cost)):
            continue
        cached_cost = model_price_spec.get("cache_read_input_token_cost", input_cost)
        if not _is_finite_number(cached_cost):
            cached_cost = input_cost
        models.append(
            _rate(
                model_name,
                input_cost * TOKENS_PER_MILLION,
                cached_cost * TOKENS_PER_MILLION,
                output_cost * TOKENS_PER_MILLION,
            )
        )

    if not models:
        raise RateCardError("Price map contains no priced models.")
    return RateCard(models=tuple(models), updated_at=None, source=source, warnings=())


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
