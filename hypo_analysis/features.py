"""Per-episode feature extraction: dynamics, insulin context and CGM snapshots."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Final, Optional, Sequence

import numpy as np

from .detector import calculate_hypo_stats
from .models import DetailedHypoEvent, GlucoseReading, GlucoseThresholds, HypoPeriod, InsulinReading
from .utils import (
    DEFAULT_MATCH_TOLERANCE,
    MMOL_TO_MGDL,
    coerce_date,
    find_closest_reading,
    local_date,
    minutes_between,
    mmol_to_mgdl,
    round_half_up,
    sort_readings,
    to_local_time,
)

_MAX_ROC_WINDOW: Final[timedelta] = timedelta(minutes=60)
_ROC_PAIR_MIN_MINUTES: Final[float] = 4.0
_ROC_PAIR_MAX_MINUTES: Final[float] = 6.0
_INITIAL_ROC_FROM: Final[timedelta] = timedelta(minutes=15)
_INITIAL_ROC_TO: Final[timedelta] = timedelta(minutes=5)
_BOLUS_LOOKBACK_HOURS: Final[int] = 6
_BASAL_HOURS_PRIOR: Final[tuple[int, ...]] = (1, 3, 5)


def format_event_id(number: int) -> str:
    return f"E-{number:03d}"


def calculate_max_rate_of_change(
    readings: Sequence[GlucoseReading],
    start_time: datetime,
) -> Optional[float]:
    """Steepest drop (mg/dL/min) over reading pairs 4-6 minutes apart in the hour before onset.

    Returns ``None`` when fewer than two readings fall in the window and
    ``0.0`` when no qualifying pair shows a drop.
    """

    window_start = start_time - _MAX_ROC_WINDOW
    window = sort_readings(r for r in readings if window_start <= r.timestamp <= start_time)
    if len(window) < 2:
        return None

    offsets = np.array([minutes_between(r.timestamp, window_start) for r in window], dtype=float)
    values = np.array([r.value for r in window], dtype=float)
    gaps = offsets[np.newaxis, :] - offsets[:, np.newaxis]
    drops = values[:, np.newaxis] - values[np.newaxis, :]
    pairs = (gaps >= _ROC_PAIR_MIN_MINUTES) & (gaps <= _ROC_PAIR_MAX_MINUTES)
    if not pairs.any():
        return 0.0

    rates = drops[pairs] / gaps[pairs] * MMOL_TO_MGDL
    steepest = max(0.0, float(rates.max()))
    return round_half_up(steepest, 2)


def calculate_initial_rate_of_change(
    readings: Sequence[GlucoseReading],
    start_time: datetime,
) -> Optional[float]:
    """Rate of drop (mg/dL/min) between ~15 and ~5 minutes before onset."""

    earlier = find_closest_reading(readings, start_time - _INITIAL_ROC_FROM, DEFAULT_MATCH_TOLERANCE)
    later = find_closest_reading(readings, start_time - _INITIAL_ROC_TO, DEFAULT_MATCH_TOLERANCE)
    if earlier is None or later is None:
        return None

    elapsed = minutes_between(later.timestamp, earlier.timestamp)
    if elapsed == 0:
        return None
    return round_half_up((earlier.value - later.value) / elapsed * MMOL_TO_MGDL, 2)


def find_boluses_before(
    boluses: Sequence[InsulinReading],
    start_time: datetime,
    max_hours_before: int = _BOLUS_LOOKBACK_HOURS,
) -> list[tuple[InsulinReading, int]]:
    """Boluses strictly before onset within the lookback, most recent first."""

    window_start = start_time - timedelta(hours=max_hours_before)
    candidates = [bolus for bolus in boluses if window_start <= bolus.timestamp < start_time]
    candidates.sort(key=lambda bolus: start_time - bolus.timestamp)
    return [
        (bolus, int(round_half_up(minutes_between(start_time, bolus.timestamp))))
        for bolus in candidates
    ]


def calculate_basal_in_hour(
    basals: Sequence[InsulinReading],
    start_time: datetime,
    hours_before: int,
) -> Optional[float]:
    """Total basal delivered in ``[onset - hours_before h, onset - (hours_before - 1) h)``."""

    hour_start = start_time - timedelta(hours=hours_before)
    hour_end = start_time - timedelta(hours=hours_before - 1)
    total = sum(basal.dose for basal in basals if hour_start <= basal.timestamp < hour_end)
    return round_half_up(total, 2) if total > 0 else None


def glucose_at_offset(
    readings: Sequence[GlucoseReading],
    reference_time: datetime,
    offset_minutes: float,
) -> Optional[int]:
    """Nearest reading (mg/dL) to ``reference_time + offset`` within five minutes."""

    target = reference_time + timedelta(minutes=offset_minutes)
    reading = find_closest_reading(readings, target, DEFAULT_MATCH_TOLERANCE)
    return mmol_to_mgdl(reading.value) if reading is not None else None


def enrich_hypo_period(
    period: HypoPeriod,
    readings: Sequence[GlucoseReading],
    boluses: Sequence[InsulinReading] = (),
    basals: Sequence[InsulinReading] = (),
    *,
    event_id: str = "E-001",
    local_timezone: Optional[str] = None,
) -> DetailedHypoEvent:
    """Build the detailed record for one episode.

    The time-of-day code is the onset hour in ``local_timezone`` when the
    timestamps are aware.
    """

    start_time = period.start_time
    recent_boluses = find_boluses_before(boluses, start_time)
    last_bolus = recent_boluses[0] if recent_boluses else None
    second_bolus = recent_boluses[1] if len(recent_boluses) > 1 else None
    basal_h1, basal_h3, basal_h5 = (
        calculate_basal_in_hour(basals, start_time, hours) for hours in _BASAL_HOURS_PRIOR
    )

    return DetailedHypoEvent(
        event_id=event_id,
        start_time=start_time,
        end_time=period.end_time,
        nadir_time=period.nadir_time,
        nadir_mgdl=mmol_to_mgdl(period.nadir),
        duration_minutes=int(round_half_up(period.duration_minutes)),
        is_severe=period.is_severe,
        max_rate_of_change=calculate_max_rate_of_change(readings, start_time),
        time_to_nadir_minutes=int(round_half_up(minutes_between(period.nadir_time, start_time))),
        initial_rate_of_change=calculate_initial_rate_of_change(readings, start_time),
        last_bolus_units=round_half_up(last_bolus[0].dose, 1) if last_bolus else None,
        last_bolus_minutes_prior=last_bolus[1] if last_bolus else None,
        second_bolus_units=round_half_up(second_bolus[0].dose, 1) if second_bolus else None,
        second_bolus_minutes_prior=second_bolus[1] if second_bolus else None,
        # the 1-hour-prior total stands in for the scheduled rate
        programmed_basal_u_hr=basal_h1,
        basal_units_h5_prior=basal_h5,
        basal_units_h3_prior=basal_h3,
        basal_units_h1_prior=basal_h1,
        time_of_day_code=to_local_time(start_time, local_timezone).hour,
        glucose_minus_60=glucose_at_offset(readings, start_time, -60),
        glucose_minus_30=glucose_at_offset(readings, start_time, -30),
        glucose_minus_10=glucose_at_offset(readings, start_time, -10),
        glucose_nadir_plus_15=glucose_at_offset(readings, period.nadir_time, 15),
    )


def enrich_hypo_periods(
    periods: Sequence[HypoPeriod],
    readings: Sequence[GlucoseReading],
    boluses: Sequence[InsulinReading] = (),
    basals: Sequence[InsulinReading] = (),
    *,
    date_filter: date | str | None = None,
    local_timezone: Optional[str] = None,
) -> list[DetailedHypoEvent]:
    """Enrich already detected episodes, numbering them after date filtering.

    ``readings`` must be the sorted stream the episodes were detected on.
    """

    if date_filter is not None:
        day = coerce_date(date_filter)
        periods = [period for period in periods if local_date(period.start_time, local_timezone) == day]

    return [
        enrich_hypo_period(
            period,
            readings,
            boluses,
            basals,
            event_id=format_event_id(number),
            local_timezone=local_timezone,
        )
        for number, period in enumerate(periods, start=1)
    ]


def extract_detailed_hypo_events(
    glucose_readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
    bolus_readings: Sequence[InsulinReading] = (),
    basal_readings: Sequence[InsulinReading] = (),
    date_filter: date | str | None = None,
    *,
    local_timezone: Optional[str] = None,
) -> list[DetailedHypoEvent]:
    """Detect episodes over the full stream and enrich each one.

    With ``date_filter`` only episodes starting on that date (in
    ``local_timezone`` for aware timestamps) are kept; event ids are numbered
    after filtering.
    """

    thresholds.validate()
    ordered = sort_readings(glucose_readings)
    periods = calculate_hypo_stats(ordered, thresholds).hypo_periods
    return enrich_hypo_periods(
        periods,
        ordered,
        bolus_readings,
        basal_readings,
        date_filter=date_filter,
        local_timezone=local_timezone,
    )
