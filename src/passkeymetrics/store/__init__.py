"""Store domain — persistence backends for passkey events."""

from passkeymetrics.store.base import count_by_kind
from passkeymetrics.store.base import MetricStore
from passkeymetrics.store.memory import InMemoryMetricStore
from passkeymetrics.store.redis_store import RedisMetricStore

__all__ = [
    "InMemoryMetricStore",
    "MetricStore",
    "RedisMetricStore",
    "count_by_kind",
]
