"""Lightweight in-process observability helpers.

Two kinds of signal are kept:

* latency aggregates for store operations (module-level recorder, shared
  by every store instance in the process);
* named failure/drop counters owned by one pipeline instance.

Both use a closed vocabulary so a misspelt name fails loudly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Store latency
# ---------------------------------------------------------------------------

LATENCY_OPERATIONS: tuple[str, ...] = (
    "store.append_batch",
    "store.delete_expired",
)


@dataclass
class LatencySummary:
    """Running aggregate of one store operation's durations."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0

    def add(self, duration_ms: float, ok: bool) -> None:
        self.min_ms = duration_ms if not self.count else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        self.count += 1
        if not ok:
            self.error_count += 1
        self.total_ms += duration_ms
        self.last_ms = duration_ms

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def as_dict(self) -> dict[str, float | int]:
        return {
            "count": self.count,
            "error_count": self.error_count,
            "total_ms": round(self.total_ms, 3),
            "avg_ms": round(self.avg_ms, 3),
            "min_ms": round(self.min_ms, 3),
            "max_ms": round(self.max_ms, 3),
            "last_ms": round(self.last_ms, 3),
        }


class _StoreLatency:
    def __init__(self) -> None:
        self._lock = Lock()
        self._stats = {name: LatencySummary() for name in LATENCY_OPERATIONS}

    def record(self, operation: str, duration_ms: float, ok: bool) -> None:
        clamped = max(float(duration_ms), 0.0)
        with self._lock:
            try:
                summary = self._stats[operation]
            except KeyError:
                raise KeyError(f"unknown store operation: {operation}") from None
            summary.add(clamped, ok)
        logger.debug("store latency op=%s duration_ms=%.3f ok=%s", operation, clamped, ok)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        # Operations never exercised are left out
        with self._lock:
            return {
                name: summary.as_dict()
                for name, summary in self._stats.items()
                if summary.count
            }

    def reset(self) -> None:
        with self._lock:
            self._stats = {name: LatencySummary() for name in LATENCY_OPERATIONS}


_STORE_LATENCY = _StoreLatency()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample for a store operation.

    Raises ``KeyError`` for names outside ``LATENCY_OPERATIONS``.
    """
    _STORE_LATENCY.record(operation, duration_ms, ok)


@contextmanager
def timed_operation(operation: str) -> Iterator[None]:
    """Time the enclosed block; an exception marks the sample as failed."""
    start = perf_counter()
    ok = False
    try:
        yield
        ok = True
    finally:
        record_latency(
            operation=operation,
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


def latency_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    """Return aggregates for every store operation recorded so far."""
    return _STORE_LATENCY.snapshot()


def reset_latency_metrics() -> None:
    _STORE_LATENCY.reset()


# ---------------------------------------------------------------------------
# Pipeline counters
# ---------------------------------------------------------------------------

# Names the pipeline components increment.  Kept as a closed set so a typo
# surfaces as a KeyError in tests rather than a silently new counter.
COUNTER_NAMES: tuple[str, ...] = (
    "accepted",
    "rejected",
    "filtered",
    "config_unavailable",
    "not_running",
    "queue_full_dropped",
    "events_persisted",
    "batches_persisted",
    "batch_retries",
    "batches_failed",
    "events_lost",
    "shutdown_dropped",
    "sync_writes",
    "sync_write_timeouts",
    "sync_write_failures",
    "events_reaped",
    "reap_cycles",
    "reap_failures",
)


class PipelineCounters:
    """Thread-safe monotonically increasing counters for one pipeline."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._values: dict[str, int] = dict.fromkeys(COUNTER_NAMES, 0)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            if name not in self._values:
                raise KeyError(f"unknown counter: {name}")
            self._values[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._values[name]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._values)
