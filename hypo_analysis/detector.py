"""Hysteresis-based hypoglycemia episode detection.

An episode starts after three consecutive readings below the threshold and is
anchored at the first of them. It ends after three consecutive readings that
are at or above both the threshold and the running nadir plus 0.6 mmol/L; the
end is anchored at the first of those recovery readings. An episode still
open when the readings run out is closed at the last reading.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import Final, Iterable, Sequence

from .models import GlucoseReading, GlucoseThresholds, HypoPeriod, HypoStats
from .utils import minutes_between, round_half_up, sort_readings

HYPO_RECOVERY_OFFSET: Final[float] = 0.6
CONSECUTIVE_READINGS_REQUIRED: Final[int] = 3


def _build_period(
    readings: Sequence[GlucoseReading],
    start_index: int,
    end_index: int,
    nadir_index: int,
    is_severe: bool,
) -> HypoPeriod:
    start_time = readings[start_index].timestamp
    end_time = readings[end_index].timestamp
    nadir = readings[nadir_index]
    return HypoPeriod(
        start_time=start_time,
        end_time=end_time,
        duration_minutes=minutes_between(end_time, start_time),
        nadir=nadir.value,
        nadir_time=nadir.timestamp,
        nadir_index=nadir_index,
        is_severe=is_severe,
    )


def detect_hypo_periods(
    readings: Sequence[GlucoseReading],
    threshold: float,
    is_severe: bool = False,
) -> list[HypoPeriod]:
    """Return the episodes found in chronologically sorted ``readings``."""

    if len(readings) < CONSECUTIVE_READINGS_REQUIRED:
        return []

    periods: list[HypoPeriod] = []
    in_hypo = False
    start_index = -1
    below_count = 0
    recovered_count = 0
    nadir = math.inf
    nadir_index = -1

    for index, reading in enumerate(readings):
        if not in_hypo:
            if reading.value < threshold:
                below_count += 1
                if below_count >= CONSECUTIVE_READINGS_REQUIRED:
                    in_hypo = True
                    start_index = index - (CONSECUTIVE_READINGS_REQUIRED - 1)
                    nadir = reading.value
                    nadir_index = index
                    for prior in range(start_index, index):
                        if readings[prior].value < nadir:
                            nadir = readings[prior].value
                            nadir_index = prior
                    recovered_count = 0
            else:
                below_count = 0
            continue

        if reading.value < nadir:
            nadir = reading.value
            nadir_index = index

        recovery_line = max(threshold, nadir + HYPO_RECOVERY_OFFSET)
        if reading.value >= recovery_line:
            recovered_count += 1
            if recovered_count >= CONSECUTIVE_READINGS_REQUIRED:
                end_index = index - (CONSECUTIVE_READINGS_REQUIRED - 1)
                periods.append(_build_period(readings, start_index, end_index, nadir_index, is_severe))
                in_hypo = False
                below_count = 0
                recovered_count = 0
                nadir = math.inf
                nadir_index = -1
        else:
            recovered_count = 0

    if in_hypo and start_index >= 0:
        periods.append(_build_period(readings, start_index, len(readings) - 1, nadir_index, is_severe))

    return periods


def classify_severity(periods: Iterable[HypoPeriod], very_low: float) -> list[HypoPeriod]:
    """Mark each episode severe when its nadir falls below ``very_low``."""

    return [replace(period, is_severe=period.nadir < very_low) for period in periods]


def calculate_hypo_stats(
    readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
) -> HypoStats:
    """Detect at the low threshold and summarise, reclassifying severity."""

    thresholds.validate()
    ordered = sort_readings(readings)
    periods = classify_severity(detect_hypo_periods(ordered, thresholds.low), thresholds.very_low)

    severe_count = sum(1 for period in periods if period.is_severe)
    durations = [period.duration_minutes for period in periods]
    return HypoStats(
        severe_count=severe_count,
        non_severe_count=len(periods) - severe_count,
        total_count=len(periods),
        lowest_value=min((period.nadir for period in periods), default=None),
        longest_duration_minutes=max(durations, default=0.0),
        total_duration_minutes=float(sum(durations)),
        hypo_periods=tuple(periods),
    )


def format_hypo_duration(minutes: float) -> str:
    """Render a duration as ``"45m"``, ``"2h"`` or ``"1h 30m"``."""

    if minutes < 1:
        return "< 1m"
    hours, mins = divmod(int(round_half_up(minutes)), 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
