"""Integration fixtures — Redis-backed store, flushed around every test."""

from __future__ import annotations

import pytest

from passkeymetrics.store import RedisMetricStore


@pytest.fixture()
async def redis_store(redis_client):
    """Yield a RedisMetricStore on an isolated key prefix."""
    store = RedisMetricStore(redis_client, key_prefix="passkeymetrics-test")
    await redis_client.flushdb()
    yield store
    await redis_client.flushdb()
