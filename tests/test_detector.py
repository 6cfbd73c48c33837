from __future__ import annotations

from datetime import datetime, timedelta

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from hypo_analysis.aggregate import summarize_daily, summarize_overall
from hypo_analysis.detector import (
    calculate_hypo_stats,
    classify_severity,
    detect_hypo_periods,
    format_hypo_duration,
)
from hypo_analysis.models import GlucoseReading, GlucoseThresholds


def _series(values, start: datetime = datetime(2024, 1, 1, 8, 0), step_minutes: int = 5) -> list[GlucoseReading]:
    return [
        GlucoseReading(timestamp=start + timedelta(minutes=step_minutes * idx), value=value)
        for idx, value in enumerate(values)
    ]


SCENARIO_A = [5.0, 5.0, 3.5, 3.4, 3.3, 4.5, 4.6, 4.7]


def test_single_episode_is_anchored_at_first_low_and_first_recovery_reading():
    readings = _series(SCENARIO_A)

    periods = detect_hypo_periods(readings, 3.9)

    assert len(periods) == 1
    period = periods[0]
    assert period.start_time == readings[2].timestamp
    assert period.end_time == readings[5].timestamp
    assert period.duration_minutes == 15
    assert period.nadir == 3.3
    assert period.nadir_time == readings[4].timestamp
    assert period.nadir_index == 4
    assert period.is_severe is False


def test_two_low_readings_do_not_start_an_episode():
    readings = _series([5.0, 5.0, 3.5, 3.6, 5.0, 5.0, 5.0])

    assert detect_hypo_periods(readings, 3.9) == []


def test_episode_open_at_end_of_stream_closes_at_last_reading():
    readings = _series([5.0, 3.5, 3.4, 3.3, 3.2])

    periods = detect_hypo_periods(readings, 3.9)

    assert len(periods) == 1
    assert periods[0].start_time == readings[1].timestamp
    assert periods[0].end_time == readings[-1].timestamp
    assert periods[0].nadir == 3.2
    assert periods[0].duration_minutes == 15


def test_two_separate_excursions_produce_two_episodes():
    values = [5.0] * 3 + [3.5, 3.4, 3.3] + [5.0] * 6 + [3.6, 3.5, 3.4] + [5.0] * 3
    readings = _series(values)
    thresholds = GlucoseThresholds()

    periods = detect_hypo_periods(readings, thresholds.low)
    overall = summarize_overall(summarize_daily(readings, thresholds))

    assert len(periods) == 2
    assert periods[0].end_time < periods[1].start_time
    assert overall.total_hypo_events == 2


def test_empty_input_yields_empty_outputs():
    thresholds = GlucoseThresholds()

    assert detect_hypo_periods([], 3.9) == []
    stats = calculate_hypo_stats([], thresholds)
    assert stats.total_count == 0
    assert stats.lowest_value is None
    assert stats.longest_duration_minutes == 0
    assert stats.total_duration_minutes == 0
    assert summarize_daily([], thresholds) == []
    assert summarize_overall([]).total_days == 0


def test_fewer_than_three_readings_never_detect():
    assert detect_hypo_periods(_series([2.0, 2.0]), 3.9) == []


def test_recovery_requires_clearing_nadir_margin():
    # nadir 3.5 puts the recovery line at 4.1, above the 3.9 threshold
    readings = _series([5.0, 3.8, 3.6, 3.5, 4.0, 4.0, 4.0, 4.2, 4.2, 4.2])

    periods = detect_hypo_periods(readings, 3.9)

    assert len(periods) == 1
    assert periods[0].end_time == readings[7].timestamp
    assert periods[0].duration_minutes == 30


def test_single_recovery_blip_does_not_end_episode():
    readings = _series([5.0, 3.5, 3.4, 3.3, 4.5, 3.6, 4.5, 4.6, 4.7])

    periods = detect_hypo_periods(readings, 3.9)

    assert len(periods) == 1
    assert periods[0].end_time == readings[6].timestamp


def test_nadir_matches_minimum_inside_each_episode():
    values = [6.0, 3.8, 3.1, 3.7, 3.0, 3.4, 4.8, 5.0, 5.2, 6.0, 3.2, 3.3, 2.9, 4.9, 5.0, 5.1]
    readings = _series(values)

    periods = detect_hypo_periods(readings, 3.9)

    assert len(periods) == 2
    for period in periods:
        inside = [r.value for r in readings if period.start_time <= r.timestamp <= period.end_time]
        assert period.nadir == min(inside)
        assert period.start_time <= period.nadir_time <= period.end_time
    assert periods[0].end_time <= periods[1].start_time


def test_detection_is_idempotent():
    readings = _series(SCENARIO_A)

    assert detect_hypo_periods(readings, 3.9) == detect_hypo_periods(list(readings), 3.9)


def test_stats_resort_unsorted_input():
    readings = _series(SCENARIO_A)
    thresholds = GlucoseThresholds()

    assert calculate_hypo_stats(list(reversed(readings)), thresholds) == calculate_hypo_stats(readings, thresholds)


def test_severity_depends_only_on_very_low():
    readings = _series(SCENARIO_A)

    mild = calculate_hypo_stats(readings, GlucoseThresholds(very_low=3.0))
    severe = calculate_hypo_stats(readings, GlucoseThresholds(very_low=3.35))

    assert mild.severe_count == 0 and mild.non_severe_count == 1
    assert severe.severe_count == 1 and severe.non_severe_count == 0
    assert mild.hypo_periods[0].start_time == severe.hypo_periods[0].start_time
    assert mild.hypo_periods[0].end_time == severe.hypo_periods[0].end_time


def test_classify_severity_uses_strict_comparison():
    periods = detect_hypo_periods(_series([5.0, 3.2, 3.1, 3.0, 4.5, 4.5, 4.5]), 3.9)

    assert classify_severity(periods, 3.0)[0].is_severe is False
    assert classify_severity(periods, 3.05)[0].is_severe is True


def test_stats_summarise_durations_and_lowest_value():
    values = [5.0] * 3 + [3.5, 3.4, 3.3] + [5.0] * 6 + [3.6, 2.8, 3.4, 3.5] + [5.0] * 3
    stats = calculate_hypo_stats(_series(values), GlucoseThresholds())

    assert stats.total_count == 2
    assert stats.severe_count == 1
    assert stats.lowest_value == 2.8
    assert stats.longest_duration_minutes == 20
    assert stats.total_duration_minutes == 35


def test_invalid_thresholds_raise():
    with pytest.raises(ValueError):
        calculate_hypo_stats(_series(SCENARIO_A), GlucoseThresholds(very_low=4.0, low=3.9))


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (0.5, "< 1m"),
        (45, "45m"),
        (120, "2h"),
        (90, "1h 30m"),
        (61, "1h 1m"),
        (119.7, "2h"),
        (59.6, "1h"),
        (89.4, "1h 29m"),
    ],
)
def test_format_hypo_duration(minutes, expected):
    assert format_hypo_duration(minutes) == expected
