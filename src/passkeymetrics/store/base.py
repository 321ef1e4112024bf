"""Store interface the pipeline persists to."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable

from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent


@runtime_checkable
class MetricStore(Protocol):
    """Append/delete/query capability over persisted passkey events.

    ``append_batch`` and ``delete_expired`` must tolerate running
    concurrently with each other.  Both raise ``StoreError`` on failure.
    Appending an event whose ``id`` is already stored must not create a
    second entry.
    """

    async def append_batch(self, events: Sequence[PasskeyEvent]) -> None: ...

    async def delete_expired(self, cutoff: float, *, limit: int) -> int: ...

    async def query(
        self,
        *,
        since: float | None = None,
        until: float | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[PasskeyEvent]: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


def count_by_kind(events: Sequence[PasskeyEvent]) -> dict[str, dict[str, int]]:
    """Aggregate *events* into ``{kind: {"ok": n, "fail": m}}``."""
    totals: dict[str, dict[str, int]] = {}
    for event in events:
        bucket = totals.setdefault(event.kind.value, {"ok": 0, "fail": 0})
        bucket["ok" if event.outcome else "fail"] += 1
    return totals
