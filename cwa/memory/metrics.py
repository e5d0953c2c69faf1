"""In-process counters for memory writes, searches and lifecycle passes."""

from __future__ import annotations

import statistics
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, Optional

from cwa.core.exceptions import VectorUpsertFailure

LATENCY_WINDOW = 256


@dataclass(slots=True)
class WriteMetrics:
    attempts: int = 0
    stored: int = 0
    orphaned: int = 0
    failures: Counter = field(default_factory=Counter)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "stored": self.stored,
            "failed": sum(self.failures.values()),
            "orphaned": self.orphaned,
            "failures": dict(self.failures),
        }


@dataclass(slots=True)
class SearchMetrics:
    requests: int = 0
    empty: int = 0
    degraded: int = 0
    operations: Counter = field(default_factory=Counter)
    collection_failures: Counter = field(default_factory=Counter)
    latencies_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=LATENCY_WINDOW))

    def as_dict(self) -> Dict[str, Any]:
        latencies = list(self.latencies_ms)
        return {
            "requests": self.requests,
            "empty": self.empty,
            "degraded": self.degraded,
            "operations": dict(self.operations),
            "collection_failures": dict(self.collection_failures),
            "p50_latency_ms": round(statistics.median(latencies), 2) if latencies else 0.0,
            "max_latency_ms": round(max(latencies), 2) if latencies else 0.0,
        }


@dataclass(slots=True)
class LifecycleMetrics:
    boosts: int = 0
    decayed_rows: int = 0
    compacted_rows: int = 0
    failed_vector_deletions: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "boosts": self.boosts,
            "decayed_rows": self.decayed_rows,
            "compacted_rows": self.compacted_rows,
            "failed_vector_deletions": self.failed_vector_deletions,
        }


@dataclass
class MemoryMetrics:
    """Thread-safe aggregate fed by the tool layer."""

    writes: WriteMetrics = field(default_factory=WriteMetrics)
    searches: SearchMetrics = field(default_factory=SearchMetrics)
    lifecycle: LifecycleMetrics = field(default_factory=LifecycleMetrics)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_write(self, error: Optional[BaseException] = None) -> None:
        with self._lock:
            self.writes.attempts += 1
            if error is None:
                self.writes.stored += 1
                return
            if isinstance(error, VectorUpsertFailure):
                self.writes.orphaned += 1
            self.writes.failures[error.__class__.__name__] += 1

    def record_read(
        self,
        operation: str,
        *,
        match_count: int,
        latency_ms: float,
        failed_collections: Iterable[str] = (),
    ) -> None:
        failed = list(failed_collections)
        with self._lock:
            self.searches.requests += 1
            self.searches.operations[operation] += 1
            if match_count == 0:
                self.searches.empty += 1
            if failed:
                self.searches.degraded += 1
                self.searches.collection_failures.update(failed)
            self.searches.latencies_ms.append(max(latency_ms, 0.0))

    def record_lifecycle(
        self,
        *,
        boosts: int = 0,
        decayed: int = 0,
        compacted: int = 0,
        failed_deletions: int = 0,
    ) -> None:
        with self._lock:
            self.lifecycle.boosts += boosts
            self.lifecycle.decayed_rows += decayed
            self.lifecycle.compacted_rows += compacted
            self.lifecycle.failed_vector_deletions += failed_deletions

    def as_dict(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                "writes": self.writes.as_dict(),
                "searches": self.searches.as_dict(),
                "lifecycle": self.lifecycle.as_dict(),
            }


__all__ = ["LifecycleMetrics", "MemoryMetrics", "SearchMetrics", "WriteMetrics"]
