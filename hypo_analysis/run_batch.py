"""Command-line utility for running hypoglycemia analysis across datasets.

Readings come from one of three sources:

* ``--data-dir``: one ``<dataset_id>.json`` file per dataset, shaped like the
  reading provider payload::

      {
          "localTimezone": "Europe/London",
          "glucoseUnit": "mmol/L",
          "glucose": [{"timestamp": "2025-01-01T00:00:00", "value": 5.4}, ...],
          "insulin": [{"timestamp": "2025-01-01T07:55:00", "dose": 4.0, "insulinType": "bolus"}, ...]
      }

* ``--fetcher module:function``: a callable returning a ``ReadingBatch``, a
  payload mapping as above, or a dataframe of ``timestamp``/``value`` glucose
  readings.
* ``--api``: the HTTP reading provider configured through
  ``HYPO_READINGS_API_BASE_URL`` and ``HYPO_READINGS_API_TOKEN``.

Use ``--dataset`` repeatedly or provide a newline-delimited ``--dataset-file``.
JSON results go to stdout or ``--output``; with ``--format csv`` the tables
are printed, or written as ``<dataset_id>_<table>.csv`` files into the
``--output`` directory.
"""
from __future__ import annotations

import argparse
import csv
import json
import logging
from importlib import import_module
from pathlib import Path
from typing import Any, Callable, Mapping

import pandas as pd

from api_clients.readings_client import ReadingsClient, convert_reading_batch
from models.reading_models import ReadingBatchPayload

from .cache import HypoReportCache
from .config import load_thresholds
from .detector import format_hypo_duration
from .engine import HypoAnalysisEngine, HypoAnalysisReport
from .models import ReadingBatch
from .risk import lbgi_risk_band
from .utils import readings_from_frame


def _load_dataset_ids(args: argparse.Namespace) -> list[str]:
    dataset_ids: list[str] = []
    if args.dataset:
        dataset_ids.extend(args.dataset)
    if args.dataset_file:
        for path in args.dataset_file:
            file_path = Path(path)
            if file_path.suffix.lower() == ".csv":
                with file_path.open(newline="") as handle:
                    reader = csv.reader(handle)
                    for idx, row in enumerate(reader):
                        if not row or not row[0].strip():
                            continue
                        value = row[0].strip()
                        if idx == 0 and value.lower() in {"dataset_id", "id"}:
                            continue
                        dataset_ids.append(value)
            else:
                with file_path.open() as handle:
                    dataset_ids.extend(line.strip() for line in handle if line.strip())
    if not dataset_ids:
        raise SystemExit("No dataset IDs provided. Use --dataset or --dataset-file.")
    return dataset_ids


class JsonDirectorySource:
    """Reading source backed by per-dataset JSON payload files."""

    def __init__(self, root: Path) -> None:
        if not root.is_dir():
            raise ValueError(f"Reading data directory not found: {root}")
        self._root = root

    def load_batch(self, dataset_id: str) -> ReadingBatch:
        file_path = self._root / f"{dataset_id}.json"
        if not file_path.exists():
            raise FileNotFoundError(f"Missing reading file for dataset {dataset_id}: {file_path}")
        with file_path.open() as handle:
            record = json.load(handle)
        return _record_to_batch(dataset_id, record)


class CallableSource:
    """Wraps a Python callable that fetches readings on demand."""

    def __init__(self, fetcher: Callable[[str], Any]) -> None:
        self._fetcher = fetcher

    def load_batch(self, dataset_id: str) -> ReadingBatch:
        return _record_to_batch(dataset_id, self._fetcher(dataset_id))


class ApiReadingSource:
    """Reading source backed by the HTTP reading provider."""

    def __init__(self, client: ReadingsClient | None = None) -> None:
        self._client = client or ReadingsClient()

    def load_batch(self, dataset_id: str) -> ReadingBatch:
        payload = self._client.get_reading_batch_sync(dataset_id)
        return convert_reading_batch(payload, dataset_id)


def _record_to_batch(dataset_id: str, record: Any) -> ReadingBatch:
    """Convert a record returned by a source into a ``ReadingBatch``."""

    if isinstance(record, ReadingBatch):
        return record
    if isinstance(record, pd.DataFrame):
        return ReadingBatch(dataset_id=dataset_id, glucose_readings=tuple(readings_from_frame(record)))
    if isinstance(record, Mapping):
        if record.get("datasetId") not in (None, dataset_id):
            raise ValueError("Record datasetId does not match requested dataset")
        payload = ReadingBatchPayload.model_validate(dict(record))
        return convert_reading_batch(payload, dataset_id)
    raise TypeError("Unsupported record type returned by reading fetcher")


def _report_to_dict(report: HypoAnalysisReport) -> dict:
    stats = report.stats
    overall = report.datasets.overall_stats
    return {
        "thresholds": {
            "very_low": report.thresholds.very_low,
            "low": report.thresholds.low,
            "high": report.thresholds.high,
            "very_high": report.thresholds.very_high,
        },
        "summary": {
            "total_count": stats.total_count,
            "severe_count": stats.severe_count,
            "non_severe_count": stats.non_severe_count,
            "lowest_value": stats.lowest_value,
            "longest_duration": format_hypo_duration(stats.longest_duration_minutes),
            "total_duration_minutes": stats.total_duration_minutes,
        },
        "risk": {
            "lbgi": report.bgri.lbgi if report.bgri else 0.0,
            "hbgi": report.bgri.hbgi if report.bgri else 0.0,
            "band": lbgi_risk_band(report.bgri.lbgi if report.bgri else 0.0),
        },
        "overall": {
            "total_days": overall.total_days,
            "days_with_hypos": overall.days_with_hypos,
            "total_hypo_events": overall.total_hypo_events,
            "total_severe_events": overall.total_severe_events,
            "average_lbgi": overall.average_lbgi,
            "days_with_lbgi_above_2_5": overall.days_with_lbgi_above_2_5,
            "days_with_lbgi_above_5_0": overall.days_with_lbgi_above_5_0,
        },
        "daily": [
            {
                "date": day.date.isoformat(),
                "day_of_week": day.day_of_week,
                "severe_count": day.severe_count,
                "non_severe_count": day.non_severe_count,
                "total_count": day.total_count,
                "lowest_value": day.lowest_value,
                "longest_duration_minutes": day.longest_duration_minutes,
                "total_duration_minutes": day.total_duration_minutes,
                "lbgi": day.lbgi,
            }
            for day in report.datasets.daily_summaries
        ],
        "events": [
            {
                "event_id": event.event_id,
                "start_time": event.start_time.isoformat(),
                "end_time": event.end_time.isoformat(),
                "nadir_time": event.nadir_time.isoformat(),
                "nadir_mg_dl": event.nadir_mgdl,
                "duration_minutes": event.duration_minutes,
                "is_severe": event.is_severe,
                "max_rate_of_change": event.max_rate_of_change,
                "initial_rate_of_change": event.initial_rate_of_change,
                "time_to_nadir_minutes": event.time_to_nadir_minutes,
                "time_of_day_code": event.time_of_day_code,
            }
            for event in report.detailed_events
        ],
        "date_filter": report.date_filter.isoformat() if report.date_filter else None,
    }


_CSV_TABLES = (
    ("events", "detailed_events_csv"),
    ("daily", "daily_summaries_csv"),
    ("windows", "event_windows_csv"),
)


def _write_csv_reports(reports: Mapping[str, HypoAnalysisReport], output: Path | None) -> None:
    if output is not None:
        output.mkdir(parents=True, exist_ok=True)
        for dataset_id, report in reports.items():
            for table, attr in _CSV_TABLES:
                path = output / f"{dataset_id}_{table}.csv"
                path.write_text(getattr(report, attr))
                logging.info(f"Wrote {path}")
        return
    for dataset_id, report in reports.items():
        for table, attr in _CSV_TABLES:
            print(f"# {dataset_id} {table}")
            print(getattr(report, attr))
            print()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run hypoglycemia analysis in batch")
    parser.add_argument("--data-dir", type=Path, help="Directory containing <dataset_id>.json files")
    parser.add_argument(
        "--fetcher",
        help="Python callable (module:function) that returns readings for a dataset ID",
    )
    parser.add_argument("--api", action="store_true", help="Fetch readings from the HTTP reading provider")
    parser.add_argument("--dataset", action="append", help="Dataset ID to process (may be repeated)")
    parser.add_argument(
        "--dataset-file",
        action="append",
        help="Path to file with newline-delimited dataset IDs",
    )
    parser.add_argument("--thresholds", type=Path, help="JSON file with veryLow/low/high/veryHigh thresholds")
    parser.add_argument("--date", help="Only report detailed events starting on this date (YYYY-MM-DD)")
    parser.add_argument("--format", choices=("json", "csv"), default="json", help="Output format")
    parser.add_argument("--workers", type=int, default=1, help="Number of concurrent worker threads")
    parser.add_argument("--output", type=Path, help="Optional output JSON file (directory for csv)")
    parser.add_argument("--indent", type=int, default=None, help="Pretty-print JSON with the given indent")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    return parser.parse_args(argv)


def _resolve_callable(path: str) -> Callable[[str], Any]:
    try:
        module_name, func_name = path.rsplit(":", 1)
    except ValueError as exc:
        raise ValueError("Fetcher must be in 'module:function' format") from exc
    module = import_module(module_name)
    func = getattr(module, func_name, None)
    if not callable(func):
        raise TypeError(f"{path!r} is not callable")
    return func


def _build_source(args: argparse.Namespace):
    if args.fetcher:
        return CallableSource(_resolve_callable(args.fetcher))
    if args.api:
        return ApiReadingSource()
    if not args.data_dir:
        raise SystemExit("One of --data-dir, --fetcher or --api must be provided")
    return JsonDirectorySource(args.data_dir)


def run(
    dataset_ids: list[str],
    source,  # ReadingSource-like object
    *,
    thresholds=None,
    date_filter: str | None = None,
    workers: int = 1,
) -> dict[str, HypoAnalysisReport]:
    engine = HypoAnalysisEngine(
        source,
        thresholds,
        report_cache=HypoReportCache(),
        date_filter=date_filter,
    )
    return engine.run_many(dataset_ids, workers=workers)


def main(argv: list[str] | None = None) -> int:  # pragma: no cover - CLI entry point
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    dataset_ids = _load_dataset_ids(args)
    try:
        thresholds = load_thresholds(args.thresholds)
    except ValueError as exc:
        raise SystemExit(f"Invalid thresholds: {exc}") from exc
    source = _build_source(args)
    reports = run(dataset_ids, source, thresholds=thresholds, date_filter=args.date, workers=args.workers)

    if args.format == "csv":
        _write_csv_reports(reports, args.output)
        return 0

    output_text = json.dumps(
        {dataset_id: _report_to_dict(report) for dataset_id, report in reports.items()},
        indent=args.indent,
    )
    if args.output:
        args.output.write_text(output_text)
    else:
        print(output_text)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
