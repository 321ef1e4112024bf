"""Unit test fixtures — instrumented in-memory store and snapshot providers."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from passkeymetrics.errors import StoreError
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.snapshot import InMemorySnapshotProvider
from passkeymetrics.store import InMemoryMetricStore


class SpyStore(InMemoryMetricStore):
    """In-memory store that records every call and can inject failures."""

    def __init__(self) -> None:
        super().__init__()
        self.append_attempts = 0
        self.append_calls: list[list[str]] = []
        self.delete_results: list[int] = []
        self.fail_appends = 0
        self.always_fail = False
        self.append_delay = 0.0
        self.fail_deletes = False

    async def append_batch(self, events: Sequence[PasskeyEvent]) -> None:
        self.append_attempts += 1
        if self.append_delay:
            await asyncio.sleep(self.append_delay)
        if self.always_fail or self.fail_appends > 0:
            if self.fail_appends > 0:
                self.fail_appends -= 1
            raise StoreError("simulated append failure")
        self.append_calls.append([event.id for event in events])
        await super().append_batch(events)

    async def delete_expired(self, cutoff: float, *, limit: int) -> int:
        if self.fail_deletes:
            raise StoreError("simulated delete failure")
        removed = await super().delete_expired(cutoff, limit=limit)
        self.delete_results.append(removed)
        return removed

    @property
    def appended_ids(self) -> list[str]:
        return [event_id for call in self.append_calls for event_id in call]

    @property
    def batch_sizes(self) -> list[int]:
        return [len(call) for call in self.append_calls]


@pytest.fixture()
def spy_store() -> SpyStore:
    return SpyStore()


@pytest.fixture()
def snapshots() -> InMemorySnapshotProvider:
    return InMemorySnapshotProvider()
