"""Background batch writer.

One long-lived task per pipeline drains the ingestion queue into batches
and appends each batch to the store.  Store failures are retried with
exponential backoff and then given up on; nothing raised by the store
ever escapes the task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable

from passkeymetrics.config import PipelineConfig
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.observability import PipelineCounters
from passkeymetrics.pipeline.queue import IngestionQueue
from passkeymetrics.pipeline.queue import SubmitOutcome
from passkeymetrics.snapshot import MetricsSnapshot
from passkeymetrics.snapshot import read_snapshot
from passkeymetrics.snapshot import SnapshotProvider
from passkeymetrics.store import MetricStore

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE = MetricsSnapshot().batch_size


class BatchWriter:
    """Drains an ``IngestionQueue`` into a ``MetricStore``."""

    def __init__(
        self,
        queue: IngestionQueue,
        store: MetricStore,
        snapshots: SnapshotProvider,
        *,
        config: PipelineConfig | None = None,
        counters: PipelineCounters | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._queue = queue
        self._store = store
        self._snapshots = snapshots
        self._config = config or PipelineConfig()
        self._counters = counters or PipelineCounters()
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopping = False
        self._direct_writes: set[asyncio.Task] = set()
        # Single consumer: the timer loop and on-demand flushes take turns
        self._flush_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the writer task on the running event loop."""
        if self._task is not None:
            raise RuntimeError("batch writer already started")
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        self._task = self._loop.create_task(self._run(), name="passkeymetrics-writer")

    async def stop(self, timeout: float | None = None) -> None:
        """Flush what is queued within *timeout* seconds, then stop.

        Events still queued when the deadline passes are dropped.
        """
        task = self._task
        if task is None:
            return
        budget = self._config.shutdown_timeout_seconds if timeout is None else timeout
        self._stopping = True
        self._queue.wake()
        try:
            await asyncio.wait_for(task, timeout=budget)
        except TimeoutError:
            logger.warning("batch writer final flush exceeded %.3fs; cancelled", budget)
        finally:
            self._task = None
            leftover = self._queue.discard()
            if leftover:
                self._counters.increment("shutdown_dropped", leftover)
                logger.warning("dropped %d queued events on shutdown", leftover)

        # Each direct write is already bounded by its own timeout.  Writes
        # handed over from other threads may register while we wait.
        while self._direct_writes:
            await asyncio.gather(*list(self._direct_writes), return_exceptions=True)
        self._loop = None

    async def _run(self) -> None:
        logger.info("batch writer started")
        while not self._stopping:
            await self._queue.wait(self._config.flush_interval_seconds)
            if self._stopping:
                break
            await self._flush_guarded()
        await self._flush_guarded()
        logger.info("batch writer stopped")

    async def _flush_guarded(self) -> None:
        try:
            await self.flush()
        except Exception:
            logger.exception("batch writer cycle failed")

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    async def flush(self) -> int:
        """Drain the queue batch by batch until empty.

        The batch size is re-read from the current snapshot before every
        drain.  Returns the number of events persisted.
        """
        persisted = 0
        async with self._flush_lock:
            while True:
                batch = self._queue.drain(self._batch_size())
                if not batch:
                    return persisted
                if await self._persist(batch):
                    persisted += len(batch)

    def _batch_size(self) -> int:
        snapshot = read_snapshot(self._snapshots)
        return snapshot.batch_size if snapshot is not None else _DEFAULT_BATCH_SIZE

    async def _persist(self, batch: list[PasskeyEvent]) -> bool:
        try:
            return await self._persist_with_retry(batch)
        except asyncio.CancelledError:
            # Shutdown deadline hit mid-batch
            self._counters.increment("shutdown_dropped", len(batch))
            raise

    async def _persist_with_retry(self, batch: list[PasskeyEvent]) -> bool:
        attempts = self._config.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._store.append_batch(batch)
            except Exception as exc:
                if attempt == attempts:
                    logger.error(
                        "batch discarded after %d attempts size=%d error=%s",
                        attempts,
                        len(batch),
                        exc,
                    )
                    break
                delay = min(
                    self._config.retry_base_delay_seconds * 2 ** (attempt - 1),
                    self._config.retry_max_delay_seconds,
                )
                self._counters.increment("batch_retries")
                logger.warning(
                    "batch append failed attempt=%d/%d size=%d error=%s; retry in %.3fs",
                    attempt,
                    attempts,
                    len(batch),
                    exc,
                    delay,
                )
                await self._sleep(delay)
            else:
                self._counters.increment("batches_persisted")
                self._counters.increment("events_persisted", len(batch))
                logger.debug("batch persisted size=%d attempt=%d", len(batch), attempt)
                return True

        self._counters.increment("batches_failed")
        self._counters.increment("events_lost", len(batch))
        return False

    # ------------------------------------------------------------------
    # Direct writes (async storage disabled)
    # ------------------------------------------------------------------

    def write_direct(self, event: PasskeyEvent) -> SubmitOutcome:
        """Schedule an immediate single-event append, bypassing the queue.

        The caller never waits on it; the append is abandoned after
        ``sync_write_timeout_seconds``.
        """
        loop = self._loop
        if loop is None or self._stopping:
            return SubmitOutcome.DROPPED
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._spawn_direct_write(event)
        else:
            try:
                loop.call_soon_threadsafe(self._spawn_direct_write, event)
            except RuntimeError:
                logger.warning("metrics loop closed; direct write dropped")
                return SubmitOutcome.DROPPED
        return SubmitOutcome.ACCEPTED

    def _spawn_direct_write(self, event: PasskeyEvent) -> None:
        # Runs on the pipeline loop so stop() can await every write
        if self._loop is None:
            # Handed over from a thread after stop() finished
            self._counters.increment("shutdown_dropped")
            return
        task = asyncio.get_running_loop().create_task(self._write_direct(event))
        self._direct_writes.add(task)
        task.add_done_callback(self._direct_writes.discard)

    async def _write_direct(self, event: PasskeyEvent) -> None:
        timeout = self._config.sync_write_timeout_seconds
        try:
            await asyncio.wait_for(self._store.append_batch([event]), timeout=timeout)
        except TimeoutError:
            self._counters.increment("sync_write_timeouts")
            logger.warning("direct metric write exceeded %.3fs; event dropped", timeout)
        except Exception as exc:
            self._counters.increment("sync_write_failures")
            logger.warning("direct metric write failed error=%s; event dropped", exc)
        else:
            self._counters.increment("sync_writes")
            self._counters.increment("events_persisted")
