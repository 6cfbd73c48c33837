"""Cache for computed hypoglycemia reports."""
from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Dict, Tuple

if TYPE_CHECKING:
    from .engine import HypoAnalysisReport


@dataclass
class HypoReportCache:
    """In-memory cache keyed by dataset/variant.

    The variant key encodes everything besides the readings that changes a
    report, e.g. thresholds and the event date filter.
    """

    _store: Dict[Tuple[str, str], "HypoAnalysisReport"] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def get(self, dataset_id: str, variant_key: str) -> "HypoAnalysisReport | None":
        with self._lock:
            return self._store.get((dataset_id, variant_key))

    def set(self, dataset_id: str, variant_key: str, report: "HypoAnalysisReport") -> None:
        with self._lock:
            self._store[(dataset_id, variant_key)] = report

    def prune(self, dataset_id: str, keep_keys: set[str]) -> None:
        """Remove cached variants for a dataset that are no longer needed."""

        with self._lock:
            to_remove = [key for key in self._store if key[0] == dataset_id and key[1] not in keep_keys]
            for key in to_remove:
                del self._store[key]

    def invalidate(self, dataset_id: str) -> None:
        self.prune(dataset_id, set())

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
