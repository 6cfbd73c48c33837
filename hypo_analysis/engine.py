"""Batch engine running hypoglycemia analysis over reading datasets."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Protocol, Sequence

from .aggregate import extract_hypo_analysis_datasets
from .cache import HypoReportCache
from .config import DEFAULT_THRESHOLDS
from .detector import calculate_hypo_stats
from .export import daily_summaries_to_csv, detailed_events_to_csv, event_windows_to_csv
from .features import enrich_hypo_periods
from .models import (
    DetailedHypoEvent,
    GlucoseThresholds,
    HypoAnalysisDatasets,
    HypoStats,
    ReadingBatch,
)
from .risk import BGRIResult, calculate_bgri
from .utils import coerce_date, sort_readings


class ReadingSource(Protocol):
    """Protocol for providing decoded readings per dataset."""

    def load_batch(self, dataset_id: str) -> ReadingBatch:
        ...


@dataclass(frozen=True)
class HypoAnalysisReport:
    """Everything computed for one dataset under one threshold set."""

    dataset_id: str
    thresholds: GlucoseThresholds
    stats: HypoStats
    datasets: HypoAnalysisDatasets
    detailed_events: Sequence[DetailedHypoEvent] = field(default_factory=tuple)
    bgri: Optional[BGRIResult] = None
    date_filter: Optional[date] = None
    detailed_events_csv: str = ""
    daily_summaries_csv: str = ""
    event_windows_csv: str = ""


def analyze_batch(
    batch: ReadingBatch,
    thresholds: GlucoseThresholds = DEFAULT_THRESHOLDS,
    *,
    date_filter: date | str | None = None,
) -> HypoAnalysisReport:
    """Run detection, enrichment, aggregation and projection for one batch."""

    thresholds.validate()
    day = coerce_date(date_filter) if date_filter is not None else None
    glucose = sort_readings(batch.glucose_readings)
    boluses = sort_readings(batch.boluses)
    basals = sort_readings(batch.basals)

    stats = calculate_hypo_stats(glucose, thresholds)
    datasets = extract_hypo_analysis_datasets(
        glucose, thresholds, local_timezone=batch.local_timezone, hypo_stats=stats
    )
    events = enrich_hypo_periods(
        stats.hypo_periods,
        glucose,
        boluses,
        basals,
        date_filter=day,
        local_timezone=batch.local_timezone,
    )
    return HypoAnalysisReport(
        dataset_id=batch.dataset_id,
        thresholds=thresholds,
        stats=stats,
        datasets=datasets,
        detailed_events=tuple(events),
        bgri=calculate_bgri(glucose),
        date_filter=day,
        detailed_events_csv=detailed_events_to_csv(events),
        daily_summaries_csv=daily_summaries_to_csv(datasets.daily_summaries),
        event_windows_csv=event_windows_to_csv(datasets.hypo_events),
    )


class HypoAnalysisEngine:
    """Loads datasets from a source and memoises their reports.

    Each engine owns its cache unless one is passed in; share a cache only
    between engines reading the same source.
    """

    def __init__(
        self,
        source: ReadingSource,
        thresholds: GlucoseThresholds | None = None,
        *,
        report_cache: HypoReportCache | None = None,
        date_filter: date | str | None = None,
    ) -> None:
        self._source = source
        self._thresholds = (thresholds or DEFAULT_THRESHOLDS).validate()
        self._report_cache = report_cache if report_cache is not None else HypoReportCache()
        self._date_filter = coerce_date(date_filter) if date_filter is not None else None

    @property
    def thresholds(self) -> GlucoseThresholds:
        return self._thresholds

    def variant_key(self) -> str:
        day = self._date_filter.isoformat() if self._date_filter else "*"
        return f"{self._thresholds.cache_key()}|{day}"

    def run_dataset(self, dataset_id: str) -> HypoAnalysisReport:
        key = self.variant_key()
        cached = self._report_cache.get(dataset_id, key)
        if cached is not None:
            logging.debug(f"Report cache hit for dataset {dataset_id} ({key})")
            return cached

        batch = self._source.load_batch(dataset_id)
        logging.info(
            f"Analysing dataset {dataset_id}: {len(batch.glucose_readings)} glucose, "
            f"{len(batch.insulin_readings)} insulin readings"
        )
        report = analyze_batch(batch, self._thresholds, date_filter=self._date_filter)
        logging.info(
            f"Dataset {dataset_id}: {report.stats.total_count} hypo events "
            f"({report.stats.severe_count} severe) across {report.datasets.overall_stats.total_days} day(s)"
        )
        self._report_cache.set(dataset_id, key, report)
        return report

    def run_many(self, dataset_ids: Sequence[str], *, workers: int = 1) -> dict[str, HypoAnalysisReport]:
        """Process datasets, optionally across a thread pool; results keep input order."""

        worker_count = max(1, workers)
        if worker_count == 1 or len(dataset_ids) <= 1:
            return {dataset_id: self.run_dataset(dataset_id) for dataset_id in dataset_ids}

        reports: dict[str, HypoAnalysisReport] = {}
        with ThreadPoolExecutor(max_workers=worker_count) as executor:
            future_map = {executor.submit(self.run_dataset, dataset_id): dataset_id for dataset_id in dataset_ids}
            for future in as_completed(future_map):
                dataset_id = future_map[future]
                try:
                    reports[dataset_id] = future.result()
                except Exception:
                    logging.error(f"Hypo analysis failed for dataset {dataset_id}")
                    raise
        return {dataset_id: reports[dataset_id] for dataset_id in dataset_ids}
