"""Hypoglycemia detection and analysis library."""

from .aggregate import (
    count_hypo_events_for_date,
    extract_hypo_analysis_datasets,
    extract_hypo_event_windows,
    has_hypo_events_for_date,
    summarize_daily,
    summarize_overall,
)
from .detector import calculate_hypo_stats, detect_hypo_periods, format_hypo_duration
from .engine import HypoAnalysisEngine, HypoAnalysisReport, ReadingSource, analyze_batch
from .features import enrich_hypo_period, enrich_hypo_periods, extract_detailed_hypo_events
from .models import (
    DailyHypoSummary,
    DetailedHypoEvent,
    GlucoseReading,
    GlucoseThresholds,
    HypoAnalysisDatasets,
    HypoEventReading,
    HypoEventWindow,
    HypoPeriod,
    HypoStats,
    InsulinReading,
    InsulinType,
    OverallHypoStats,
    ReadingBatch,
)
from .risk import calculate_bgri, calculate_lbgi

__all__ = [
    "DailyHypoSummary",
    "DetailedHypoEvent",
    "GlucoseReading",
    "GlucoseThresholds",
    "HypoAnalysisDatasets",
    "HypoAnalysisEngine",
    "HypoAnalysisReport",
    "HypoEventReading",
    "HypoEventWindow",
    "HypoPeriod",
    "HypoStats",
    "InsulinReading",
    "InsulinType",
    "OverallHypoStats",
    "ReadingBatch",
    "ReadingSource",
    "analyze_batch",
    "calculate_bgri",
    "calculate_hypo_stats",
    "calculate_lbgi",
    "count_hypo_events_for_date",
    "detect_hypo_periods",
    "enrich_hypo_period",
    "enrich_hypo_periods",
    "extract_detailed_hypo_events",
    "extract_hypo_analysis_datasets",
    "extract_hypo_event_windows",
    "format_hypo_duration",
    "has_hypo_events_for_date",
    "summarize_daily",
    "summarize_overall",
]
