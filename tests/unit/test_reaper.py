"""Unit tests for the retention reaper."""

from __future__ import annotations

import asyncio

from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.observability import PipelineCounters
from passkeymetrics.pipeline import retention_cutoff
from passkeymetrics.pipeline import RetentionReaper
from passkeymetrics.snapshot import MetricsSnapshot
from passkeymetrics.snapshot import StaticSnapshotProvider
from passkeymetrics.store import InMemoryMetricStore

NOW = 1_800_000_000.0
DAY = 86_400


def _aged(days: float, n: int = 0) -> PasskeyEvent:
    return PasskeyEvent(
        kind=EventKind.AUTHENTICATION_SUCCESS,
        subject_id=f"user-{n}",
        occurred_at=NOW - days * DAY,
    )


def _reaper(store, **snapshot_fields) -> tuple[RetentionReaper, PipelineCounters]:
    counters = PipelineCounters()
    reaper = RetentionReaper(
        store,
        StaticSnapshotProvider(MetricsSnapshot(**snapshot_fields)),
        counters=counters,
        clock=lambda: NOW,
    )
    return reaper, counters


class _GatedDeleteStore(InMemoryMetricStore):
    """Holds every delete_expired call until released; reports full chunks."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.completed = 0

    async def delete_expired(self, cutoff: float, *, limit: int) -> int:
        self.entered.set()
        await self.release.wait()
        self.completed += 1
        return limit


class _BrokenProvider:
    def current_snapshot(self) -> MetricsSnapshot:
        raise RuntimeError("config service down")


class TestRetentionCutoff:
    def test_cutoff(self):
        assert retention_cutoff(NOW, 90) == NOW - 90 * DAY

    def test_zero_days_is_now(self):
        assert retention_cutoff(NOW, 0) == NOW


class TestReapOnce:
    async def test_90_day_window(self, spy_store):
        old = _aged(91)
        recent = _aged(89)
        await spy_store.append_batch([old, recent])
        reaper, counters = _reaper(spy_store, retention_days=90)

        assert await reaper.reap_once() == 1
        remaining = await spy_store.query()
        assert [e.id for e in remaining] == [recent.id]
        assert counters.get("events_reaped") == 1

    async def test_second_run_deletes_nothing(self, spy_store):
        await spy_store.append_batch([_aged(100, i) for i in range(5)] + [_aged(1)])
        reaper, counters = _reaper(spy_store, retention_days=90)

        assert await reaper.reap_once() == 5
        assert await reaper.reap_once() == 0
        assert await spy_store.count() == 1
        assert counters.get("events_reaped") == 5
        assert counters.get("reap_cycles") == 2

    async def test_deletes_in_chunks_until_short_chunk(self, spy_store):
        await spy_store.append_batch([_aged(200, i) for i in range(250)])
        reaper, _ = _reaper(
            spy_store, retention_days=90, clean_service_batch_chunk_size=100
        )

        assert await reaper.reap_once() == 250
        assert spy_store.delete_results == [100, 100, 50]

    async def test_exact_multiple_needs_one_empty_pass(self, spy_store):
        await spy_store.append_batch([_aged(200, i) for i in range(200)])
        reaper, _ = _reaper(
            spy_store, retention_days=90, clean_service_batch_chunk_size=100
        )

        assert await reaper.reap_once() == 200
        assert spy_store.delete_results == [100, 100, 0]

    async def test_zero_retention_expires_everything_before_now(self, spy_store):
        await spy_store.append_batch([_aged(0.001), _aged(-0.001)])
        reaper, _ = _reaper(spy_store, retention_days=0)
        assert await reaper.reap_once() == 1
        assert await spy_store.count() == 1

    async def test_explicit_now_overrides_clock(self, spy_store):
        event = _aged(10)
        await spy_store.append_batch([event])
        reaper, _ = _reaper(spy_store, retention_days=30)
        assert await reaper.reap_once(now=NOW) == 0
        assert await reaper.reap_once(now=NOW + 25 * DAY) == 1

    async def test_store_failure_is_counted_not_raised(self, spy_store):
        await spy_store.append_batch([_aged(100)])
        spy_store.fail_deletes = True
        reaper, counters = _reaper(spy_store, retention_days=90)

        assert await reaper.reap_once() == 0
        assert counters.get("reap_failures") == 1

        # Picked up on the next cycle
        spy_store.fail_deletes = False
        assert await reaper.reap_once() == 1

    async def test_unreadable_config_skips_cycle(self, spy_store):
        await spy_store.append_batch([_aged(1000)])
        reaper = RetentionReaper(spy_store, _BrokenProvider(), clock=lambda: NOW)
        assert await reaper.reap_once() == 0
        assert await spy_store.count() == 1


class TestSchedule:
    async def test_runs_on_interval_and_stops(self, spy_store):
        await spy_store.append_batch([_aged(100)])
        reaper, counters = _reaper(
            spy_store, retention_days=90, clean_service_interval_seconds=0.01
        )
        reaper.start()
        try:
            for _ in range(200):
                if counters.get("events_reaped"):
                    break
                await asyncio.sleep(0.01)
        finally:
            await reaper.stop()

        assert counters.get("events_reaped") == 1
        assert not reaper.running

    async def test_stop_before_first_cycle(self, spy_store):
        reaper, counters = _reaper(spy_store, clean_service_interval_seconds=60)
        reaper.start()
        await asyncio.wait_for(reaper.stop(), timeout=1.0)
        assert counters.get("reap_cycles") == 0

    async def test_stop_lets_in_flight_chunk_finish_then_exits(self):
        store = _GatedDeleteStore()
        reaper, counters = _reaper(
            store, clean_service_interval_seconds=0.01, clean_service_batch_chunk_size=10
        )
        reaper.start()
        await asyncio.wait_for(store.entered.wait(), timeout=2.0)

        stopping = asyncio.create_task(reaper.stop())
        await asyncio.sleep(0)
        assert not stopping.done()

        store.release.set()
        await asyncio.wait_for(stopping, timeout=2.0)

        assert store.completed == 1
        assert counters.get("events_reaped") == 10
        assert not reaper.running

    async def test_restart_after_stop(self, spy_store):
        reaper, counters = _reaper(spy_store, clean_service_interval_seconds=60)
        reaper.start()
        await reaper.stop()
        reaper.start()
        assert reaper.running
        await asyncio.wait_for(reaper.stop(), timeout=1.0)
        assert not reaper.running
        assert counters.get("reap_cycles") == 0
