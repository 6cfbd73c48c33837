"""Core data models for hypoglycemia detection and analysis."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Sequence


class InsulinType(str, Enum):
    """Insulin delivery kind"""

    BOLUS = "bolus"
    BASAL = "basal"


@dataclass(frozen=True)
class GlucoseReading:
    """Single CGM sample, value in mmol/L."""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class InsulinReading:
    """Single insulin delivery event, dose in units."""

    timestamp: datetime
    dose: float
    insulin_type: InsulinType


@dataclass(frozen=True)
class GlucoseThresholds:
    """Glucose range boundaries in mmol/L."""

    very_low: float = 3.0
    low: float = 3.9
    high: float = 10.0
    very_high: float = 13.9

    def validation_error(self) -> Optional[str]:
        """Return a description of the first ordering violation, if any."""

        if self.very_low <= 0:
            return "Very low threshold must be greater than zero"
        if self.low <= self.very_low:
            return "Low threshold must be greater than very low threshold"
        if self.high <= self.low:
            return "High threshold must be greater than low threshold"
        if self.very_high <= self.high:
            return "Very high threshold must be greater than high threshold"
        return None

    def validate(self) -> "GlucoseThresholds":
        error = self.validation_error()
        if error is not None:
            raise ValueError(error)
        return self

    def cache_key(self) -> str:
        return f"{self.very_low:g}/{self.low:g}/{self.high:g}/{self.very_high:g}"


@dataclass(frozen=True)
class HypoPeriod:
    """A detected hypoglycemia episode.

    ``nadir`` is in mmol/L. ``nadir_index`` points into the sorted reading
    sequence the detector was given.
    """

    start_time: datetime
    end_time: datetime
    duration_minutes: float
    nadir: float
    nadir_time: datetime
    nadir_index: int
    is_severe: bool = False


@dataclass(frozen=True)
class HypoStats:
    """Episode statistics for one reading set."""

    severe_count: int
    non_severe_count: int
    total_count: int
    lowest_value: Optional[float]
    longest_duration_minutes: float
    total_duration_minutes: float
    hypo_periods: Sequence[HypoPeriod] = field(default_factory=tuple)


@dataclass(frozen=True)
class DetailedHypoEvent:
    """Per-episode record enriched with dynamics, insulin and CGM context."""

    # core
    event_id: str
    start_time: datetime
    end_time: datetime
    nadir_time: datetime
    nadir_mgdl: int
    duration_minutes: int
    is_severe: bool

    # dynamics (mg/dL per minute, positive when falling)
    max_rate_of_change: Optional[float]
    time_to_nadir_minutes: int
    initial_rate_of_change: Optional[float]

    # bolus
    last_bolus_units: Optional[float]
    last_bolus_minutes_prior: Optional[int]
    second_bolus_units: Optional[float]
    second_bolus_minutes_prior: Optional[int]

    # basal
    programmed_basal_u_hr: Optional[float]
    basal_units_h5_prior: Optional[float]
    basal_units_h3_prior: Optional[float]
    basal_units_h1_prior: Optional[float]

    time_of_day_code: int

    # CGM curve snapshots, mg/dL
    glucose_minus_60: Optional[int]
    glucose_minus_30: Optional[int]
    glucose_minus_10: Optional[int]
    glucose_nadir_plus_15: Optional[int]


@dataclass(frozen=True)
class HypoEventReading:
    """CGM sample around an episode, positioned relative to its nadir."""

    event_id: int
    timestamp: datetime
    value: float
    is_nadir: bool
    minutes_from_nadir: int


@dataclass(frozen=True)
class HypoEventWindow:
    """Readings from one hour before to one hour after an episode."""

    event_id: int
    hypo_period: HypoPeriod
    readings: Sequence[HypoEventReading] = field(default_factory=tuple)


@dataclass(frozen=True)
class DailyHypoSummary:
    """Episode statistics for one calendar day."""

    date: date
    day_of_week: str
    severe_count: int
    non_severe_count: int
    total_count: int
    lowest_value: Optional[float]
    longest_duration_minutes: float
    total_duration_minutes: float
    lbgi: float


@dataclass(frozen=True)
class OverallHypoStats:
    """Rollup across daily summaries."""

    total_days: int = 0
    days_with_hypos: int = 0
    total_hypo_events: int = 0
    total_severe_events: int = 0
    average_lbgi: float = 0.0
    days_with_lbgi_above_2_5: int = 0
    days_with_lbgi_above_5_0: int = 0


@dataclass(frozen=True)
class HypoAnalysisDatasets:
    """Event windows, daily summaries and the overall rollup for one batch."""

    hypo_events: Sequence[HypoEventWindow]
    daily_summaries: Sequence[DailyHypoSummary]
    overall_stats: OverallHypoStats


@dataclass(frozen=True)
class ReadingBatch:
    """Decoded readings for one dataset as supplied by a reading provider."""

    dataset_id: str
    glucose_readings: Sequence[GlucoseReading] = field(default_factory=tuple)
    insulin_readings: Sequence[InsulinReading] = field(default_factory=tuple)
    local_timezone: Optional[str] = None

    @property
    def boluses(self) -> list[InsulinReading]:
        return [r for r in self.insulin_readings if r.insulin_type is InsulinType.BOLUS]

    @property
    def basals(self) -> list[InsulinReading]:
        return [r for r in self.insulin_readings if r.insulin_type is InsulinType.BASAL]
