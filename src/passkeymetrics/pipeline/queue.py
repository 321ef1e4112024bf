"""Bounded, non-blocking intake between producers and the batch writer."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from threading import Lock

from passkeymetrics.events import PasskeyEvent
from passkeymetrics.observability import PipelineCounters

logger = logging.getLogger(__name__)


class SubmitOutcome(str, Enum):
    """What happened to one submitted event."""

    ACCEPTED = "accepted"
    DROPPED = "dropped"


class IngestionQueue:
    """Fixed-capacity FIFO with multi-producer offer and single-consumer drain.

    Producers may be coroutines on the writer's event loop or plain
    threads.  ``offer`` only holds a ``threading.Lock`` for an append, so it
    never waits on the consumer.  When the buffer is full the *newest*
    event is dropped.
    """

    def __init__(
        self, capacity: int, *, counters: PipelineCounters | None = None
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._counters = counters or PipelineCounters()
        self._lock = Lock()
        self._items: deque[PasskeyEvent] = deque()
        self._dropped = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready: asyncio.Event | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped(self) -> int:
        """Events dropped because the buffer was full."""
        return self._dropped

    def __len__(self) -> int:
        return len(self._items)

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the consumer's event loop for wakeups."""
        self._loop = loop
        self._ready = asyncio.Event()

    # -- producer side --

    def offer(self, event: PasskeyEvent) -> SubmitOutcome:
        with self._lock:
            full = len(self._items) >= self._capacity
            if full:
                self._dropped += 1
            else:
                self._items.append(event)

        if full:
            self._counters.increment("queue_full_dropped")
            logger.debug("metrics queue full capacity=%d; event dropped", self._capacity)
            return SubmitOutcome.DROPPED

        self._notify()
        return SubmitOutcome.ACCEPTED

    def _notify(self) -> None:
        ready = self._ready
        loop = self._loop
        if ready is None or loop is None or ready.is_set():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            ready.set()
            return
        try:
            loop.call_soon_threadsafe(ready.set)
        except RuntimeError:
            # Loop already closed; the event stays queued until discard().
            logger.debug("metrics writer loop closed; wakeup skipped")

    # -- consumer side --

    def drain(self, max_items: int) -> list[PasskeyEvent]:
        """Remove and return up to *max_items* events in arrival order."""
        with self._lock:
            count = min(max_items, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    async def wait(self, timeout: float) -> bool:
        """Wait until events are queued, ``wake()`` is called, or *timeout*.

        Returns ``True`` when events are available.
        """
        if self._items:
            return True
        ready = self._ready
        if ready is None:
            await asyncio.sleep(timeout)
            return bool(self._items)
        ready.clear()
        # Re-check after clearing so an offer() racing the clear is not missed
        if self._items:
            return True
        try:
            await asyncio.wait_for(ready.wait(), timeout=timeout)
        except TimeoutError:
            pass
        return bool(self._items)

    def wake(self) -> None:
        """Release a pending ``wait()`` (used on shutdown)."""
        if self._ready is not None:
            self._ready.set()

    def discard(self) -> int:
        """Drop everything still queued and return how many were dropped."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
        return count
