"""Shared helpers for hypoglycemia computations."""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from operator import attrgetter
from typing import Final, Iterable, Optional, Sequence, TypeVar

from zoneinfo import ZoneInfo

import pandas as pd

from .models import GlucoseReading, InsulinReading

MMOL_TO_MGDL: Final[float] = 18.018
DEFAULT_MATCH_TOLERANCE: Final[timedelta] = timedelta(minutes=5)

_T = TypeVar("_T", GlucoseReading, InsulinReading)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like ``Math.round`` does: halves go towards positive infinity."""

    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def mmol_to_mgdl(value: float) -> int:
    """Convert mmol/L to whole mg/dL."""

    return int(round_half_up(value * MMOL_TO_MGDL))


def minutes_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def coerce_date(value: date | str) -> date:
    """Accept a date, datetime or ISO ``YYYY-MM-DD`` string."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def to_local_time(timestamp: datetime, local_timezone: Optional[str] = None) -> datetime:
    """Convert aware timestamps to ``local_timezone``; naive ones are already local."""

    if local_timezone and timestamp.tzinfo is not None:
        return timestamp.astimezone(ZoneInfo(local_timezone))
    return timestamp


def local_date(timestamp: datetime, local_timezone: Optional[str] = None) -> date:
    return to_local_time(timestamp, local_timezone).date()


def sort_readings(readings: Iterable[_T]) -> list[_T]:
    """Return a chronologically sorted copy; equal timestamps keep input order."""

    return sorted(readings, key=attrgetter("timestamp"))


def find_closest_reading(
    readings: Sequence[GlucoseReading],
    target: datetime,
    tolerance: timedelta = DEFAULT_MATCH_TOLERANCE,
) -> Optional[GlucoseReading]:
    """Return the reading nearest to ``target`` within ``tolerance``.

    Ties keep the first reading encountered.
    """

    closest: Optional[GlucoseReading] = None
    best_diff: Optional[timedelta] = None
    for reading in readings:
        diff = abs(reading.timestamp - target)
        if diff > tolerance:
            continue
        if best_diff is None or diff < best_diff:
            best_diff = diff
            closest = reading
    return closest


def readings_from_frame(
    frame: pd.DataFrame,
    *,
    timestamp_column: str = "timestamp",
    value_column: str = "value",
    unit: str = "mmol/L",
    utc: bool = False,
) -> list[GlucoseReading]:
    """Build sorted glucose readings from a dataframe.

    Rows with unparseable timestamps or values are dropped. ``unit`` may be
    ``"mmol/L"`` or ``"mg/dL"``; mg/dL values are converted without rounding.
    """

    if frame.empty:
        return []
    if timestamp_column not in frame or value_column not in frame:
        raise ValueError(
            f"Glucose readings must include '{timestamp_column}' and '{value_column}' columns"
        )
    if unit not in ("mmol/L", "mg/dL"):
        raise ValueError(f"Unsupported glucose unit: {unit!r}")

    df = pd.DataFrame(
        {
            "timestamp": pd.to_datetime(frame[timestamp_column], errors="coerce", utc=utc),
            "value": pd.to_numeric(frame[value_column], errors="coerce"),
        }
    )
    df = df.dropna(subset=["timestamp", "value"])
    df = df.sort_values("timestamp", kind="mergesort")
    if df.empty:
        return []
    if unit == "mg/dL":
        df["value"] = df["value"] / MMOL_TO_MGDL

    return [
        GlucoseReading(timestamp=ts.to_pydatetime(), value=float(value))
        for ts, value in zip(df["timestamp"], df["value"])
    ]


