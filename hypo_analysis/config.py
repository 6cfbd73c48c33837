"""Threshold configuration: defaults, validation, file and environment loading."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from models.reading_models import ThresholdsPayload

from .models import GlucoseThresholds

DEFAULT_THRESHOLDS = GlucoseThresholds()

THRESHOLD_ENV_VARS: dict[str, str] = {
    "very_low": "HYPO_THRESHOLD_VERY_LOW",
    "low": "HYPO_THRESHOLD_LOW",
    "high": "HYPO_THRESHOLD_HIGH",
    "very_high": "HYPO_THRESHOLD_VERY_HIGH",
}


def validate_thresholds(thresholds: GlucoseThresholds) -> GlucoseThresholds:
    """Raise ``ValueError`` unless ``0 < very_low < low < high < very_high``."""

    return thresholds.validate()


def thresholds_from_mapping(data: Mapping[str, Any]) -> GlucoseThresholds:
    """Accept camelCase (``veryLow``) or snake_case (``very_low``) keys."""

    payload = ThresholdsPayload.model_validate(dict(data))
    return GlucoseThresholds(
        very_low=payload.veryLow,
        low=payload.low,
        high=payload.high,
        very_high=payload.veryHigh,
    ).validate()


def thresholds_from_env(environ: Optional[Mapping[str, str]] = None) -> GlucoseThresholds:
    env = os.environ if environ is None else environ
    values: dict[str, float] = {}
    for field_name, var in THRESHOLD_ENV_VARS.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        try:
            values[field_name] = float(raw)
        except ValueError as exc:
            raise ValueError(f"{var} must be a number, got {raw!r}") from exc
    return GlucoseThresholds(**values).validate()


def load_thresholds(path: Optional[Path | str] = None) -> GlucoseThresholds:
    """Read thresholds from a JSON file, or from the environment when no path is given."""

    if path is None:
        return thresholds_from_env()
    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Threshold file {path} must contain a JSON object")
    return thresholds_from_mapping(data)
