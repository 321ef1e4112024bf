"""End-to-end pipeline tests: recorder -> queue -> writer -> Redis -> reaper."""

from __future__ import annotations

import asyncio

import pytest

from passkeymetrics.config import PipelineConfig
from passkeymetrics.config import RedisStoreConfig
from passkeymetrics.events import EventKind
from passkeymetrics.pipeline import build_redis_pipeline
from passkeymetrics.pipeline import MetricsPipeline
from passkeymetrics.recorder import PasskeyMetricsRecorder
from passkeymetrics.snapshot import InMemorySnapshotProvider
from passkeymetrics.snapshot import MetricsSnapshot
from passkeymetrics.store import count_by_kind

DAY = 86_400


@pytest.fixture()
def snapshots() -> InMemorySnapshotProvider:
    return InMemorySnapshotProvider(MetricsSnapshot(batch_size=50))


@pytest.fixture()
async def pipeline(redis_store, snapshots):
    pipe = MetricsPipeline(
        redis_store,
        snapshots,
        config=PipelineConfig(flush_interval_seconds=0.05),
        enable_reaper=False,
    )
    await pipe.start()
    yield pipe
    await pipe.stop()


class TestRedisPipeline:
    async def test_recorded_events_reach_redis(self, pipeline, redis_store):
        recorder = PasskeyMetricsRecorder(pipeline)
        for i in range(120):
            recorder.record_authentication_success(f"user-{i}", "Chrome", 100 + i)
        recorder.record_authentication_failure("user-x", "Chrome", "timed out", 50)
        await pipeline.stop()

        stored = await redis_store.query()
        assert len(stored) == 121
        assert pipeline.counters.get("batches_persisted") == 3
        totals = count_by_kind(stored)
        assert totals[EventKind.AUTHENTICATION_SUCCESS.value] == {"ok": 120, "fail": 0}
        assert totals[EventKind.AUTHENTICATION_FAILURE.value] == {"ok": 0, "fail": 1}

    async def test_timer_flush_without_full_batch(self, pipeline, redis_store):
        PasskeyMetricsRecorder(pipeline).record_nudge_shown("user-1", "settings")
        for _ in range(100):
            if await redis_store.count():
                break
            await asyncio.sleep(0.02)
        assert await redis_store.count() == 1

    async def test_reaper_applies_retention(self, pipeline, redis_store, snapshots):
        recorder = PasskeyMetricsRecorder(pipeline)
        recorder.record_fallback("user-1", "password", "cancel")
        await pipeline.flush()
        [event] = await redis_store.query()

        snapshots.update(retention_days=90)
        assert await pipeline.reap(now=event.occurred_at + 89 * DAY) == 0
        assert await pipeline.reap(now=event.occurred_at + 91 * DAY) == 1
        assert await pipeline.reap(now=event.occurred_at + 91 * DAY) == 0
        assert await redis_store.count() == 0


class TestBuildRedisPipeline:
    async def test_factory_wires_redis_store(self, redis_container, redis_client):
        await redis_client.flushdb()
        pipe = build_redis_pipeline(
            RedisStoreConfig(url=redis_container, key_prefix="pkm-factory"),
            config=PipelineConfig(flush_interval_seconds=0.05),
            enable_reaper=False,
        )
        await pipe.start()
        try:
            PasskeyMetricsRecorder(pipe).record_nudge_accepted("user-1")
            await pipe.stop()
            assert await pipe.store.count() == 1
        finally:
            await pipe.close()
            await redis_client.flushdb()
