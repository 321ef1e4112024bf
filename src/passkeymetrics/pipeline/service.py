"""MetricsPipeline — owns the queue, writer and reaper for one process.

The pipeline is an explicit object with a ``start()``/``stop()``
lifecycle (or ``async with``).  ``submit()`` is the only call the
authentication flow makes; it is synchronous, never touches storage and
never raises.
"""

from __future__ import annotations

import asyncio
import logging

from passkeymetrics.config import PipelineConfig
from passkeymetrics.config import RedisStoreConfig
from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.observability import PipelineCounters
from passkeymetrics.pipeline.queue import IngestionQueue
from passkeymetrics.pipeline.queue import SubmitOutcome
from passkeymetrics.pipeline.reaper import RetentionReaper
from passkeymetrics.pipeline.writer import BatchWriter
from passkeymetrics.policy import enrich
from passkeymetrics.policy import should_record
from passkeymetrics.snapshot import InMemorySnapshotProvider
from passkeymetrics.snapshot import read_snapshot
from passkeymetrics.snapshot import SnapshotProvider
from passkeymetrics.store import MetricStore
from passkeymetrics.store import RedisMetricStore

logger = logging.getLogger(__name__)


class MetricsPipeline:
    """Asynchronous, batching passkey event recorder."""

    def __init__(
        self,
        store: MetricStore,
        snapshots: SnapshotProvider,
        *,
        config: PipelineConfig | None = None,
        enable_reaper: bool = True,
    ) -> None:
        self.config = config or PipelineConfig()
        self.counters = PipelineCounters()
        self._store = store
        self._snapshots = snapshots
        self._queue = IngestionQueue(self.config.queue_capacity, counters=self.counters)
        self._writer = BatchWriter(
            self._queue,
            store,
            snapshots,
            config=self.config,
            counters=self.counters,
        )
        self._reaper = RetentionReaper(store, snapshots, counters=self.counters)
        self._enable_reaper = enable_reaper
        self._running = False

    @property
    def store(self) -> MetricStore:
        return self._store

    @property
    def reaper(self) -> RetentionReaper:
        return self._reaper

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background writer (and reaper) on the running loop."""
        if self._running:
            return
        self._queue.bind(asyncio.get_running_loop())
        self._writer.start()
        if self._enable_reaper:
            self._reaper.start()
        self._running = True
        logger.info(
            "metrics pipeline started queue_capacity=%d reaper=%s",
            self.config.queue_capacity,
            self._enable_reaper,
        )

    async def stop(self, timeout: float | None = None) -> None:
        """Stop accepting events, flush within *timeout*, stop the tasks."""
        if not self._running:
            return
        self._running = False
        try:
            await self._writer.stop(timeout)
        finally:
            await self._reaper.stop()
        logger.info("metrics pipeline stopped stats=%s", self.counters.snapshot())

    async def close(self) -> None:
        """Stop the pipeline and release the store."""
        await self.stop()
        await self._store.close()

    async def __aenter__(self) -> MetricsPipeline:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Producer path
    # ------------------------------------------------------------------

    def submit(self, event: PasskeyEvent) -> SubmitOutcome:
        """Record *event* if the live configuration allows it.

        Never blocks on storage and never raises.
        """
        try:
            outcome = self._submit(event)
        except Exception:
            logger.exception("metrics submit failed; event dropped")
            return SubmitOutcome.DROPPED
        if outcome is SubmitOutcome.ACCEPTED:
            self.counters.increment("accepted")
        return outcome

    def _submit(self, event: PasskeyEvent) -> SubmitOutcome:
        if not isinstance(event, PasskeyEvent) or not isinstance(event.kind, EventKind):
            self.counters.increment("rejected")
            logger.debug("rejected malformed metrics event type=%s", type(event).__name__)
            return SubmitOutcome.DROPPED
        if not self._running:
            self.counters.increment("not_running")
            return SubmitOutcome.DROPPED

        snapshot = read_snapshot(self._snapshots)
        if snapshot is None:
            self.counters.increment("config_unavailable")
            return SubmitOutcome.DROPPED
        if not should_record(event.kind, snapshot):
            self.counters.increment("filtered")
            return SubmitOutcome.DROPPED

        event = enrich(event, snapshot)
        if snapshot.async_storage_enabled:
            return self._queue.offer(event)
        return self._writer.write_direct(event)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def flush(self) -> int:
        """Drain the queue now instead of waiting for the flush timer.

        Takes turns with the background writer, so batches never interleave.
        """
        return await self._writer.flush()

    async def reap(self, now: float | None = None) -> int:
        """Run one retention cycle now."""
        return await self._reaper.reap_once(now)

    def stats(self) -> dict[str, int]:
        """Counter snapshot plus the current queue depth."""
        stats = self.counters.snapshot()
        stats["queue_depth"] = len(self._queue)
        return stats


def build_redis_pipeline(
    store_config: RedisStoreConfig | None = None,
    *,
    snapshots: SnapshotProvider | None = None,
    config: PipelineConfig | None = None,
    enable_reaper: bool = True,
) -> MetricsPipeline:
    """Wire a ``MetricsPipeline`` to a Redis store.

    Without *snapshots*, an ``InMemorySnapshotProvider`` with default
    settings is used.
    """
    store = RedisMetricStore.from_config(store_config or RedisStoreConfig())
    return MetricsPipeline(
        store,
        snapshots or InMemorySnapshotProvider(),
        config=config,
        enable_reaper=enable_reaper,
    )
