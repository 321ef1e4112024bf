"""Retention reaper — periodic chunked deletion of expired events."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from passkeymetrics.observability import PipelineCounters
from passkeymetrics.snapshot import MetricsSnapshot
from passkeymetrics.snapshot import read_snapshot
from passkeymetrics.snapshot import SnapshotProvider
from passkeymetrics.store import MetricStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400

_DEFAULT_INTERVAL = MetricsSnapshot().clean_service_interval_seconds


def retention_cutoff(now: float, retention_days: int) -> float:
    """Events captured strictly before the returned epoch are expired."""
    return now - retention_days * SECONDS_PER_DAY


class RetentionReaper:
    """Deletes events older than the configured retention window.

    Each cycle re-reads the snapshot for the retention window, the cycle
    interval and the chunk size.  Deletion is issued in chunks and stops
    once a chunk comes back short.
    """

    def __init__(
        self,
        store: MetricStore,
        snapshots: SnapshotProvider,
        *,
        counters: PipelineCounters | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._counters = counters or PipelineCounters()
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._wakeup = asyncio.Event()
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("retention reaper already started")
        self._stopping = False
        self._wakeup.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="passkeymetrics-reaper"
        )

    async def stop(self) -> None:
        """Stop scheduling cycles; an in-flight chunk completes first."""
        task = self._task
        if task is None:
            return
        self._stopping = True
        self._wakeup.set()
        try:
            await task
        finally:
            self._task = None

    async def _run(self) -> None:
        logger.info("retention reaper started")
        while not self._stopping:
            snapshot = read_snapshot(self._snapshots)
            interval = (
                snapshot.clean_service_interval_seconds
                if snapshot is not None
                else _DEFAULT_INTERVAL
            )
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except TimeoutError:
                pass
            if self._stopping:
                break
            await self.reap_once()
        logger.info("retention reaper stopped")

    async def reap_once(self, now: float | None = None) -> int:
        """Run one retention cycle and return the number of events deleted.

        Store failures end the cycle early; whatever is left is picked up
        by the next cycle.
        """
        snapshot = read_snapshot(self._snapshots)
        if snapshot is None:
            logger.warning("retention reap skipped: metrics config unavailable")
            return 0

        current = self._clock() if now is None else now
        cutoff = retention_cutoff(current, snapshot.retention_days)
        chunk_size = snapshot.clean_service_batch_chunk_size
        deleted = 0
        chunks = 0
        try:
            while True:
                removed = await self._store.delete_expired(cutoff, limit=chunk_size)
                deleted += removed
                chunks += 1
                if removed < chunk_size or self._stopping:
                    break
        except Exception:
            self._counters.increment("reap_failures")
            logger.exception(
                "retention reap failed cutoff=%.3f deleted_so_far=%d", cutoff, deleted
            )
        finally:
            self._counters.increment("reap_cycles")
            if deleted:
                self._counters.increment("events_reaped", deleted)

        logger.info(
            "retention reap cutoff=%.3f retention_days=%d chunks=%d deleted=%d",
            cutoff,
            snapshot.retention_days,
            chunks,
            deleted,
        )
        return deleted
