"""Blood glucose risk indices (Kovatchev LBGI/HBGI)."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final, Optional, Sequence

import numpy as np

from .models import GlucoseReading
from .utils import MMOL_TO_MGDL

LBGI_MODERATE_RISK: Final[float] = 2.5
LBGI_HIGH_RISK: Final[float] = 5.0


@dataclass(frozen=True)
class BGRIResult:
    """Low, high and combined risk indices for a reading set."""

    lbgi: float
    hbgi: float
    bgri: float


def risk_value(glucose_mgdl: float) -> float:
    """Symmetric risk transform; negative below ~112.5 mg/dL, positive above."""

    return (math.log(glucose_mgdl) ** 1.084 - 5.381) * 1.509


def calculate_bgri(readings: Sequence[GlucoseReading]) -> Optional[BGRIResult]:
    """Average the per-reading risk contributions; ``None`` with no valid readings."""

    if len(readings) == 0:
        return None

    values = np.fromiter((reading.value for reading in readings), dtype=float, count=len(readings))
    values = values * MMOL_TO_MGDL
    values = values[values > 0]
    with np.errstate(invalid="ignore", divide="ignore"):
        risk = (np.log(values) ** 1.084 - 5.381) * 1.509
    risk = risk[np.isfinite(risk)]
    if risk.size == 0:
        return None

    weighted = 10.0 * np.square(risk)
    lbgi = float(weighted[risk < 0].sum() / risk.size)
    hbgi = float(weighted[risk >= 0].sum() / risk.size)
    return BGRIResult(lbgi=lbgi, hbgi=hbgi, bgri=lbgi + hbgi)


def calculate_lbgi(readings: Sequence[GlucoseReading]) -> float:
    """Low Blood Glucose Index; 0.0 when nothing can be scored."""

    result = calculate_bgri(readings)
    return result.lbgi if result is not None else 0.0


def calculate_hbgi(readings: Sequence[GlucoseReading]) -> float:
    result = calculate_bgri(readings)
    return result.hbgi if result is not None else 0.0


def lbgi_risk_band(lbgi: float) -> str:
    if lbgi < LBGI_MODERATE_RISK:
        return "low"
    if lbgi <= LBGI_HIGH_RISK:
        return "moderate"
    return "high"
