"""Redis-backed metric store.

Events are stored as JSON strings in the hash ``{prefix}:events`` keyed by
event id.  The sorted set ``{prefix}:timeline`` indexes them by capture
time (score = ``occurred_at``) for range queries and retention deletes.
Both structures are always written and trimmed in one MULTI/EXEC
transaction, so an event is either fully present or fully absent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from passkeymetrics.config import RedisStoreConfig
from passkeymetrics.errors import StoreError
from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.observability import timed_operation

logger = logging.getLogger(__name__)


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class RedisMetricStore:
    """Passkey event store on a Redis server."""

    def __init__(self, redis: Redis, *, key_prefix: str = "passkeymetrics") -> None:
        self._redis = redis
        self._events_key = f"{key_prefix}:events"
        self._timeline_key = f"{key_prefix}:timeline"

    @classmethod
    def from_config(cls, config: RedisStoreConfig) -> RedisMetricStore:
        return cls(Redis.from_url(config.url), key_prefix=config.key_prefix)

    # -- write --

    async def append_batch(self, events: Sequence[PasskeyEvent]) -> None:
        """Persist *events* atomically; re-appending an id overwrites it."""
        if not events:
            return
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(
            self._events_key,
            mapping={event.id: event.model_dump_json() for event in events},
        )
        pipe.zadd(
            self._timeline_key,
            {event.id: event.occurred_at for event in events},
        )
        with timed_operation("store.append_batch"):
            try:
                await pipe.execute()
            except RedisError as exc:
                raise StoreError(
                    f"append of {len(events)} events failed: {exc}"
                ) from exc

    async def delete_expired(self, cutoff: float, *, limit: int) -> int:
        """Delete up to *limit* of the oldest events captured before *cutoff*."""
        with timed_operation("store.delete_expired"):
            try:
                ids = await self._redis.zrangebyscore(
                    self._timeline_key, "-inf", f"({cutoff}", start=0, num=limit
                )
                if not ids:
                    return 0
                pipe = self._redis.pipeline(transaction=True)
                pipe.zrem(self._timeline_key, *ids)
                pipe.hdel(self._events_key, *ids)
                removed, _ = await pipe.execute()
            except RedisError as exc:
                raise StoreError(f"retention delete failed: {exc}") from exc
        return int(removed)

    # -- read --

    async def query(
        self,
        *,
        since: float | None = None,
        until: float | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[PasskeyEvent]:
        """Return events captured in ``[since, until)``, oldest first."""
        low = "-inf" if since is None else since
        high = "+inf" if until is None else f"({until}"
        # Kind filtering happens client-side, so only page in Redis without it
        page = {} if limit is None or kind is not None else {"start": 0, "num": limit}
        try:
            ids = await self._redis.zrangebyscore(self._timeline_key, low, high, **page)
            if not ids:
                return []
            raw_results = await self._redis.hmget(self._events_key, ids)
        except RedisError as exc:
            raise StoreError(f"query failed: {exc}") from exc

        results: list[PasskeyEvent] = []
        for event_id, raw in zip(ids, raw_results):
            if raw is None:
                # Reaped between the two reads
                continue
            try:
                event = PasskeyEvent.model_validate_json(raw)
            except ValidationError:
                logger.warning("Skipping malformed stored event id=%s", _decode(event_id))
                continue
            if kind is not None and event.kind != kind:
                continue
            results.append(event)
            if limit is not None and len(results) >= limit:
                break
        return results

    async def count(self) -> int:
        try:
            return await self._redis.zcard(self._timeline_key)
        except RedisError as exc:
            raise StoreError(f"count failed: {exc}") from exc

    async def clear(self) -> None:
        """Remove every stored event (test helper)."""
        await self._redis.delete(self._events_key, self._timeline_key)

    async def close(self) -> None:
        await self._redis.aclose()
