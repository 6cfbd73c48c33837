"""Daily and overall hypoglycemia aggregation."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Final, Optional, Sequence

from .detector import calculate_hypo_stats
from .models import (
    DailyHypoSummary,
    GlucoseReading,
    GlucoseThresholds,
    HypoAnalysisDatasets,
    HypoEventReading,
    HypoEventWindow,
    HypoPeriod,
    HypoStats,
    OverallHypoStats,
)
from .risk import LBGI_HIGH_RISK, LBGI_MODERATE_RISK, calculate_lbgi
from .utils import coerce_date, local_date, minutes_between, round_half_up, sort_readings

_DAY_NAMES: Final[tuple[str, ...]] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
_EVENT_WINDOW: Final[timedelta] = timedelta(hours=1)
_NADIR_MATCH: Final[timedelta] = timedelta(minutes=1)


def group_readings_by_date(
    readings: Sequence[GlucoseReading],
    local_timezone: Optional[str] = None,
) -> dict[date, list[GlucoseReading]]:
    """Bucket sorted readings by calendar date.

    Naive timestamps use their own date. Aware timestamps are converted to
    ``local_timezone`` first when one is given.
    """

    grouped: dict[date, list[GlucoseReading]] = defaultdict(list)
    for reading in sort_readings(readings):
        grouped[local_date(reading.timestamp, local_timezone)].append(reading)
    return {day: grouped[day] for day in sorted(grouped)}


def summarize_daily(
    readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
    *,
    local_timezone: Optional[str] = None,
) -> list[DailyHypoSummary]:
    """One summary per date present in ``readings``.

    Detection restarts for each day, so an episode crossing midnight is
    counted on both sides of it.
    """

    thresholds.validate()
    if not readings:
        return []

    summaries: list[DailyHypoSummary] = []
    for day, day_readings in group_readings_by_date(readings, local_timezone).items():
        stats = calculate_hypo_stats(day_readings, thresholds)
        summaries.append(
            DailyHypoSummary(
                date=day,
                day_of_week=_DAY_NAMES[day.weekday()],
                severe_count=stats.severe_count,
                non_severe_count=stats.non_severe_count,
                total_count=stats.total_count,
                lowest_value=stats.lowest_value,
                longest_duration_minutes=stats.longest_duration_minutes,
                total_duration_minutes=stats.total_duration_minutes,
                lbgi=calculate_lbgi(day_readings),
            )
        )
    return summaries


def summarize_overall(daily_summaries: Sequence[DailyHypoSummary]) -> OverallHypoStats:
    if not daily_summaries:
        return OverallHypoStats()

    total_days = len(daily_summaries)
    average_lbgi = sum(summary.lbgi for summary in daily_summaries) / total_days
    return OverallHypoStats(
        total_days=total_days,
        days_with_hypos=sum(1 for summary in daily_summaries if summary.total_count > 0),
        total_hypo_events=sum(summary.total_count for summary in daily_summaries),
        total_severe_events=sum(summary.severe_count for summary in daily_summaries),
        average_lbgi=round_half_up(average_lbgi, 2),
        days_with_lbgi_above_2_5=sum(1 for summary in daily_summaries if summary.lbgi > LBGI_MODERATE_RISK),
        days_with_lbgi_above_5_0=sum(1 for summary in daily_summaries if summary.lbgi > LBGI_HIGH_RISK),
    )


def extract_hypo_event_windows(
    readings: Sequence[GlucoseReading],
    hypo_periods: Sequence[HypoPeriod],
) -> list[HypoEventWindow]:
    """Readings from an hour before each episode to an hour after it."""

    if not readings or not hypo_periods:
        return []

    ordered = sort_readings(readings)
    windows: list[HypoEventWindow] = []
    for event_id, period in enumerate(hypo_periods, start=1):
        window_start = period.start_time - _EVENT_WINDOW
        window_end = period.end_time + _EVENT_WINDOW
        event_readings = tuple(
            HypoEventReading(
                event_id=event_id,
                timestamp=reading.timestamp,
                value=reading.value,
                is_nadir=abs(reading.timestamp - period.nadir_time) < _NADIR_MATCH,
                minutes_from_nadir=int(round_half_up(minutes_between(reading.timestamp, period.nadir_time))),
            )
            for reading in ordered
            if window_start <= reading.timestamp <= window_end
        )
        windows.append(HypoEventWindow(event_id=event_id, hypo_period=period, readings=event_readings))
    return windows


def extract_hypo_analysis_datasets(
    readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
    *,
    local_timezone: Optional[str] = None,
    hypo_stats: Optional[HypoStats] = None,
) -> HypoAnalysisDatasets:
    """Event windows over the whole stream plus daily and overall statistics.

    Pass ``hypo_stats`` when detection over ``readings`` has already run.
    """

    ordered = sort_readings(readings)
    stats = hypo_stats if hypo_stats is not None else calculate_hypo_stats(ordered, thresholds)
    daily = summarize_daily(ordered, thresholds, local_timezone=local_timezone)
    return HypoAnalysisDatasets(
        hypo_events=tuple(extract_hypo_event_windows(ordered, stats.hypo_periods)),
        daily_summaries=tuple(daily),
        overall_stats=summarize_overall(daily),
    )


def count_hypo_events_for_date(
    readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
    day: date | str,
    *,
    local_timezone: Optional[str] = None,
) -> int:
    """Episodes detected over the full stream that start on ``day``.

    Aware onsets are compared by their date in ``local_timezone``.
    """

    target = coerce_date(day)
    stats = calculate_hypo_stats(readings, thresholds)
    return sum(1 for period in stats.hypo_periods if local_date(period.start_time, local_timezone) == target)


def has_hypo_events_for_date(
    readings: Sequence[GlucoseReading],
    thresholds: GlucoseThresholds,
    day: date | str,
    *,
    local_timezone: Optional[str] = None,
) -> bool:
    return count_hypo_events_for_date(readings, thresholds, day, local_timezone=local_timezone) > 0
