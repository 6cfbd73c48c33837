from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from hypo_analysis.aggregate import (
    count_hypo_events_for_date,
    extract_hypo_analysis_datasets,
    extract_hypo_event_windows,
    group_readings_by_date,
    has_hypo_events_for_date,
    summarize_daily,
    summarize_overall,
)
from hypo_analysis.detector import calculate_hypo_stats
from hypo_analysis.models import DailyHypoSummary, GlucoseReading, GlucoseThresholds, OverallHypoStats

SCENARIO_A = [5.0, 5.0, 3.5, 3.4, 3.3, 4.5, 4.6, 4.7]


def _series(values, start: datetime = datetime(2024, 1, 1, 8, 0), step_minutes: int = 5) -> list[GlucoseReading]:
    return [
        GlucoseReading(timestamp=start + timedelta(minutes=step_minutes * idx), value=value)
        for idx, value in enumerate(values)
    ]


def _summary(day: date, lbgi: float, total: int = 0, severe: int = 0) -> DailyHypoSummary:
    return DailyHypoSummary(
        date=day,
        day_of_week="Monday",
        severe_count=severe,
        non_severe_count=total - severe,
        total_count=total,
        lowest_value=None,
        longest_duration_minutes=0.0,
        total_duration_minutes=0.0,
        lbgi=lbgi,
    )


def test_summarize_daily_groups_by_calendar_date():
    readings = _series(SCENARIO_A) + _series([7.0, 7.5, 8.0], start=datetime(2024, 1, 2, 9, 0))

    summaries = summarize_daily(readings, GlucoseThresholds())

    assert [s.date for s in summaries] == [date(2024, 1, 1), date(2024, 1, 2)]
    monday, tuesday = summaries
    assert monday.day_of_week == "Monday"
    assert monday.total_count == 1
    assert monday.non_severe_count == 1
    assert monday.lowest_value == 3.3
    assert monday.longest_duration_minutes == 15
    assert monday.lbgi > 0
    assert tuesday.day_of_week == "Tuesday"
    assert tuesday.total_count == 0
    assert tuesday.lowest_value is None
    assert tuesday.lbgi == 0.0


def test_episode_crossing_midnight_is_split_between_days():
    values = [3.5, 3.4, 3.3, 3.2, 3.3, 3.4, 4.5, 4.6, 4.7]
    readings = _series(values, start=datetime(2024, 1, 1, 23, 45))
    thresholds = GlucoseThresholds()

    daily = summarize_daily(readings, thresholds)

    assert [s.total_count for s in daily] == [1, 1]
    assert calculate_hypo_stats(readings, thresholds).total_count == 1


def test_group_readings_by_date_converts_aware_timestamps():
    readings = [
        GlucoseReading(datetime(2024, 1, 2, 2, 0, tzinfo=timezone.utc), 5.0),
        GlucoseReading(datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc), 5.0),
    ]

    grouped = group_readings_by_date(readings, "America/New_York")

    assert list(grouped) == [date(2024, 1, 1), date(2024, 1, 2)]


def test_summarize_overall_rolls_up_days():
    daily = [
        _summary(date(2024, 1, 1), 1.0, total=2, severe=1),
        _summary(date(2024, 1, 2), 3.0),
        _summary(date(2024, 1, 3), 6.0, total=1),
        _summary(date(2024, 1, 4), 2.5),
    ]

    overall = summarize_overall(daily)

    assert overall.total_days == 4
    assert overall.days_with_hypos == 2
    assert overall.total_hypo_events == 3
    assert overall.total_severe_events == 1
    assert overall.average_lbgi == pytest.approx(3.13)
    assert overall.days_with_lbgi_above_2_5 == 2
    assert overall.days_with_lbgi_above_5_0 == 1


def test_summarize_overall_empty():
    assert summarize_overall([]) == OverallHypoStats()


def test_event_windows_cover_an_hour_either_side():
    readings = _series(
        [6.0] * 14 + SCENARIO_A + [6.0] * 14,
        start=datetime(2024, 1, 1, 7, 0),
    )
    periods = calculate_hypo_stats(readings, GlucoseThresholds()).hypo_periods

    windows = extract_hypo_event_windows(readings, periods)

    assert len(windows) == 1
    window = windows[0]
    period = periods[0]
    assert window.event_id == 1
    assert window.readings[0].timestamp == period.start_time - timedelta(hours=1)
    assert window.readings[-1].timestamp == period.end_time + timedelta(hours=1)
    nadirs = [r for r in window.readings if r.is_nadir]
    assert len(nadirs) == 1
    assert nadirs[0].value == 3.3
    assert nadirs[0].minutes_from_nadir == 0
    assert window.readings[0].minutes_from_nadir == -70


def test_event_windows_empty_inputs():
    assert extract_hypo_event_windows([], []) == []
    assert extract_hypo_event_windows(_series(SCENARIO_A), []) == []


def test_analysis_datasets_bundle_windows_and_summaries():
    values = [5.0] * 3 + [3.5, 3.4, 3.3] + [5.0] * 6 + [3.6, 3.5, 3.4] + [5.0] * 3

    datasets = extract_hypo_analysis_datasets(_series(values), GlucoseThresholds())

    assert [w.event_id for w in datasets.hypo_events] == [1, 2]
    assert len(datasets.daily_summaries) == 1
    assert datasets.overall_stats.total_hypo_events == 2
    assert datasets.overall_stats.days_with_hypos == 1


def test_analysis_datasets_empty():
    datasets = extract_hypo_analysis_datasets([], GlucoseThresholds())

    assert datasets.hypo_events == ()
    assert datasets.daily_summaries == ()
    assert datasets.overall_stats == OverallHypoStats()


def test_per_date_queries():
    readings = _series(SCENARIO_A)
    thresholds = GlucoseThresholds()

    assert count_hypo_events_for_date(readings, thresholds, date(2024, 1, 1)) == 1
    assert count_hypo_events_for_date(readings, thresholds, "2024-01-02") == 0
    assert has_hypo_events_for_date(readings, thresholds, "2024-01-01") is True
    assert has_hypo_events_for_date([], thresholds, "2024-01-01") is False


def test_per_date_queries_use_local_timezone():
    # onset 02:10 UTC on 2 January is 21:10 on 1 January in New York
    readings = _series(SCENARIO_A, start=datetime(2024, 1, 2, 2, 0, tzinfo=timezone.utc))
    thresholds = GlucoseThresholds()

    assert count_hypo_events_for_date(readings, thresholds, "2024-01-01", local_timezone="America/New_York") == 1
    assert count_hypo_events_for_date(readings, thresholds, "2024-01-02", local_timezone="America/New_York") == 0
    assert count_hypo_events_for_date(readings, thresholds, "2024-01-02") == 1
    assert has_hypo_events_for_date(readings, thresholds, "2024-01-01", local_timezone="America/New_York") is True


def test_analysis_datasets_reuse_precomputed_stats():
    readings = _series(SCENARIO_A)
    thresholds = GlucoseThresholds()
    stats = calculate_hypo_stats(readings, thresholds)

    datasets = extract_hypo_analysis_datasets(readings, thresholds, hypo_stats=stats)

    assert [window.hypo_period for window in datasets.hypo_events] == list(stats.hypo_periods)
