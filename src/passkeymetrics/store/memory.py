"""In-process metric store for development and tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent


class InMemoryMetricStore:
    """Dict-backed store keyed by event id."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._events: dict[str, PasskeyEvent] = {}

    async def append_batch(self, events: Sequence[PasskeyEvent]) -> None:
        async with self._lock:
            for event in events:
                self._events[event.id] = event

    async def delete_expired(self, cutoff: float, *, limit: int) -> int:
        async with self._lock:
            expired = sorted(
                (e for e in self._events.values() if e.occurred_at < cutoff),
                key=lambda e: e.occurred_at,
            )[:limit]
            for event in expired:
                del self._events[event.id]
            return len(expired)

    async def query(
        self,
        *,
        since: float | None = None,
        until: float | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[PasskeyEvent]:
        async with self._lock:
            events = sorted(self._events.values(), key=lambda e: e.occurred_at)
        results = [
            e
            for e in events
            if (since is None or e.occurred_at >= since)
            and (until is None or e.occurred_at < until)
            and (kind is None or e.kind == kind)
        ]
        return results if limit is None else results[:limit]

    async def count(self) -> int:
        async with self._lock:
            return len(self._events)

    async def close(self) -> None:
        return None
