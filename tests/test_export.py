from datetime import date, datetime
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from hypo_analysis.export import (
    DAILY_SUMMARY_HEADERS,
    DETAILED_EVENT_HEADERS,
    EVENT_WINDOW_HEADERS,
    daily_summaries_to_csv,
    detailed_events_to_csv,
    event_windows_to_csv,
    format_cell,
    to_delimited,
)
from hypo_analysis.models import (
    DailyHypoSummary,
    DetailedHypoEvent,
    HypoEventReading,
    HypoEventWindow,
    HypoPeriod,
)


def _event(**overrides) -> DetailedHypoEvent:
    fields = dict(
        event_id="E-001",
        start_time=datetime(2024, 3, 1, 7, 10),
        end_time=datetime(2024, 3, 1, 7, 35),
        nadir_time=datetime(2024, 3, 1, 7, 25),
        nadir_mgdl=58,
        duration_minutes=25,
        is_severe=False,
        max_rate_of_change=1.8,
        time_to_nadir_minutes=15,
        initial_rate_of_change=None,
        last_bolus_units=2.3,
        last_bolus_minutes_prior=30,
        second_bolus_units=None,
        second_bolus_minutes_prior=None,
        programmed_basal_u_hr=1.0,
        basal_units_h5_prior=None,
        basal_units_h3_prior=0.8,
        basal_units_h1_prior=1.0,
        time_of_day_code=7,
        glucose_minus_60=126,
        glucose_minus_30=117,
        glucose_minus_10=81,
        glucose_nadir_plus_15=None,
    )
    fields.update(overrides)
    return DetailedHypoEvent(**fields)


def test_to_delimited_empty_rows():
    assert to_delimited([]) == ""
    assert to_delimited([], "tsv") == ""


def test_to_delimited_rejects_unknown_format():
    with pytest.raises(ValueError):
        to_delimited([["a"]], "xlsx")


def test_csv_quotes_special_fields():
    text = to_delimited([["a,b", 'say "hi"', "x"], ["line\nbreak", 1, 2.5]])

    assert text == '"a,b","say ""hi""",x\n"line\nbreak",1,2.5'


def test_tsv_replaces_tabs_and_newlines():
    assert to_delimited([["a\tb", "c\nd", "e,f"]], "tsv") == "a  b\tc d\te,f"


def test_tsv_leaves_quotes_unescaped():
    assert to_delimited([['say "hi"', "x"], ["y", ""]], "tsv") == 'say "hi"\tx\ny\t'


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        (True, "true"),
        (False, "false"),
        (2.0, "2"),
        (1.25, "1.25"),
        (7, "7"),
        (date(2024, 1, 1), "2024-01-01"),
        (datetime(2024, 1, 1, 7, 5), "2024-01-01T07:05:00"),
    ],
)
def test_format_cell(value, expected):
    assert format_cell(value) == expected


def test_detailed_events_csv_uses_fixed_columns_and_placeholders():
    text = detailed_events_to_csv([_event(), _event(event_id="E-002", max_rate_of_change=None)])

    lines = text.split("\n")
    assert lines[0] == ",".join(DETAILED_EVENT_HEADERS)
    assert len(DETAILED_EVENT_HEADERS) == 20
    assert lines[1] == (
        "E-001,2024-03-01T07:10:00,58,25,1.8,15,N/A,2.3,30,N/A,N/A,1,N/A,0.8,1,7,126,117,81,N/A"
    )
    assert lines[2].split(",")[4] == "N/A"
    assert all(len(line.split(",")) == 20 for line in lines)


def test_detailed_events_start_time_round_trips():
    text = detailed_events_to_csv([_event()])

    start = text.split("\n")[1].split(",")[1]
    assert datetime.fromisoformat(start) == datetime(2024, 3, 1, 7, 10)


def test_detailed_events_empty():
    assert detailed_events_to_csv([]) == ""


def test_daily_summaries_csv_formats_values():
    summaries = [
        DailyHypoSummary(
            date=date(2024, 1, 1),
            day_of_week="Monday",
            severe_count=0,
            non_severe_count=1,
            total_count=1,
            lowest_value=3.3,
            longest_duration_minutes=15.0,
            total_duration_minutes=15.0,
            lbgi=1.234,
        ),
        DailyHypoSummary(
            date=date(2024, 1, 2),
            day_of_week="Tuesday",
            severe_count=0,
            non_severe_count=0,
            total_count=0,
            lowest_value=None,
            longest_duration_minutes=0.0,
            total_duration_minutes=0.0,
            lbgi=0.0,
        ),
    ]

    lines = daily_summaries_to_csv(summaries).split("\n")

    assert lines[0] == ",".join(DAILY_SUMMARY_HEADERS)
    assert lines[1] == "2024-01-01,Monday,0,1,1,3.3,15,15,1.23"
    assert lines[2] == "2024-01-02,Tuesday,0,0,0,N/A,0,0,0.00"


def test_event_windows_csv_flattens_readings():
    period = HypoPeriod(
        start_time=datetime(2024, 1, 1, 8, 10),
        end_time=datetime(2024, 1, 1, 8, 25),
        duration_minutes=15.0,
        nadir=3.3,
        nadir_time=datetime(2024, 1, 1, 8, 20),
        nadir_index=4,
    )
    window = HypoEventWindow(
        event_id=1,
        hypo_period=period,
        readings=(
            HypoEventReading(1, datetime(2024, 1, 1, 8, 15), 3.4, False, -5),
            HypoEventReading(1, datetime(2024, 1, 1, 8, 20), 3.3, True, 0),
        ),
    )

    text = event_windows_to_csv([window], "tsv")

    assert text.split("\n") == [
        "\t".join(EVENT_WINDOW_HEADERS),
        "1\t2024-01-01T08:15:00\t3.4\tfalse\t-5",
        "1\t2024-01-01T08:20:00\t3.3\ttrue\t0",
    ]
    assert event_windows_to_csv([]) == ""
