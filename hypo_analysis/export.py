"""Delimited text projections of episodes, event windows and daily summaries.

Column order and the ``N/A`` placeholder are a fixed contract: downstream
consumers read these tables positionally or by header name.
"""
from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Final, Iterable, Optional, Sequence

from .models import DailyHypoSummary, DetailedHypoEvent, HypoEventWindow
from .utils import round_half_up

NOT_AVAILABLE: Final[str] = "N/A"
SUPPORTED_FORMATS: Final[tuple[str, ...]] = ("csv", "tsv")

DETAILED_EVENT_HEADERS: Final[tuple[str, ...]] = (
    "Event_ID",
    "Start_Time",
    "Nadir_Value_mg_dL",
    "Duration_Mins",
    "Max_RoC_mg_dL_min",
    "Time_To_Nadir_Mins",
    "Initial_RoC_mg_dL_min",
    "Last_Bolus_Units",
    "Last_Bolus_Mins_Prior",
    "Second_Bolus_Units",
    "Second_Bolus_Mins_Prior",
    "Programmed_Basal_U_hr",
    "Basal_Units_H5_Prior",
    "Basal_Units_H3_Prior",
    "Basal_Units_H1_Prior",
    "Time_of_Day_Code",
    "G_T_Minus_60",
    "G_T_Minus_30",
    "G_T_Minus_10",
    "G_Nadir_Plus_15",
)

DAILY_SUMMARY_HEADERS: Final[tuple[str, ...]] = (
    "Date",
    "Day Of Week",
    "Severe Count",
    "Non-Severe Count",
    "Total Count",
    "Lowest Value (mmol/L)",
    "Longest Duration (min)",
    "Total Duration (min)",
    "LBGI",
)

EVENT_WINDOW_HEADERS: Final[tuple[str, ...]] = (
    "Event ID",
    "Timestamp",
    "CGM Glucose Value (mmol/L)",
    "Is Nadir",
    "Minutes From Nadir",
)


def _fixed(value: float, digits: int) -> str:
    return format(round_half_up(value, digits), f".{digits}f")


def _or_na(value: Any) -> Any:
    return NOT_AVAILABLE if value is None else value


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _sanitize_tsv(text: str) -> str:
    return text.replace("\t", "  ").replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def to_delimited(rows: Sequence[Sequence[Any]], fmt: str = "csv") -> str:
    """Join rows into CSV or TSV text; rows are separated by ``\\n`` with no trailing newline."""

    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported delimited format: {fmt!r}")
    if not rows:
        return ""

    buffer = io.StringIO()
    if fmt == "csv":
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerows([format_cell(cell) for cell in row] for row in rows)
    else:
        writer = csv.writer(buffer, delimiter="\t", quoting=csv.QUOTE_NONE, quotechar=None, lineterminator="\n")
        writer.writerows([_sanitize_tsv(format_cell(cell)) for cell in row] for row in rows)
    return buffer.getvalue()[:-1]


def detailed_event_row(event: DetailedHypoEvent) -> list[Any]:
    return [
        event.event_id,
        event.start_time,
        event.nadir_mgdl,
        event.duration_minutes,
        _or_na(event.max_rate_of_change),
        _or_na(event.time_to_nadir_minutes),
        _or_na(event.initial_rate_of_change),
        _or_na(event.last_bolus_units),
        _or_na(event.last_bolus_minutes_prior),
        _or_na(event.second_bolus_units),
        _or_na(event.second_bolus_minutes_prior),
        _or_na(event.programmed_basal_u_hr),
        _or_na(event.basal_units_h5_prior),
        _or_na(event.basal_units_h3_prior),
        _or_na(event.basal_units_h1_prior),
        event.time_of_day_code,
        _or_na(event.glucose_minus_60),
        _or_na(event.glucose_minus_30),
        _or_na(event.glucose_minus_10),
        _or_na(event.glucose_nadir_plus_15),
    ]


def daily_summary_row(summary: DailyHypoSummary) -> list[Any]:
    lowest: Optional[str] = None
    if summary.lowest_value is not None:
        lowest = _fixed(summary.lowest_value, 1)
    return [
        summary.date,
        summary.day_of_week,
        summary.severe_count,
        summary.non_severe_count,
        summary.total_count,
        _or_na(lowest),
        int(round_half_up(summary.longest_duration_minutes)),
        int(round_half_up(summary.total_duration_minutes)),
        _fixed(summary.lbgi, 2),
    ]


def event_window_rows(windows: Iterable[HypoEventWindow]) -> list[list[Any]]:
    rows: list[list[Any]] = []
    for window in windows:
        for reading in window.readings:
            rows.append(
                [
                    reading.event_id,
                    reading.timestamp,
                    _fixed(reading.value, 1),
                    reading.is_nadir,
                    reading.minutes_from_nadir,
                ]
            )
    return rows


def detailed_events_to_csv(events: Sequence[DetailedHypoEvent], fmt: str = "csv") -> str:
    """Header plus one row per event; empty text when there are no events."""

    if not events:
        return ""
    rows: list[Sequence[Any]] = [DETAILED_EVENT_HEADERS]
    rows.extend(detailed_event_row(event) for event in events)
    return to_delimited(rows, fmt)


def daily_summaries_to_csv(summaries: Sequence[DailyHypoSummary], fmt: str = "csv") -> str:
    if not summaries:
        return ""
    rows: list[Sequence[Any]] = [DAILY_SUMMARY_HEADERS]
    rows.extend(daily_summary_row(summary) for summary in summaries)
    return to_delimited(rows, fmt)


def event_windows_to_csv(windows: Sequence[HypoEventWindow], fmt: str = "csv") -> str:
    body = event_window_rows(windows)
    if not body:
        return ""
    return to_delimited([EVENT_WINDOW_HEADERS, *body], fmt)
