"""Live metrics configuration snapshots.

The operator-facing settings are owned by an external configuration
service.  The pipeline only ever asks a ``SnapshotProvider`` for the
latest committed ``MetricsSnapshot`` at each decision point and never
holds on to one beyond a single operation.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError

from passkeymetrics.errors import ConfigurationError

logger = logging.getLogger(__name__)


class MetricsSnapshot(BaseModel):
    """Immutable, versioned view of the passkey metrics settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    version: int = Field(default=0, ge=0)
    metrics_enabled: bool = True
    async_storage_enabled: bool = True
    batch_size: int = Field(default=100, ge=1)
    # 0 expires everything older than "now" on the next reap
    retention_days: int = Field(default=90, ge=0)
    registration_enabled: bool = True
    authentication_enabled: bool = True
    device_info_collection_enabled: bool = True
    error_categorization_enabled: bool = True
    clean_service_interval_seconds: float = Field(default=60.0, gt=0)
    clean_service_batch_chunk_size: int = Field(default=100, ge=1)


@runtime_checkable
class SnapshotProvider(Protocol):
    """Supplies the latest committed configuration."""

    def current_snapshot(self) -> MetricsSnapshot: ...


class StaticSnapshotProvider:
    """Provider that always returns the same snapshot."""

    def __init__(self, snapshot: MetricsSnapshot | None = None) -> None:
        self._snapshot = snapshot or MetricsSnapshot()

    def current_snapshot(self) -> MetricsSnapshot:
        return self._snapshot


class InMemorySnapshotProvider:
    """Mutable holder for the latest snapshot.

    ``update()`` applies a partial change on top of the current snapshot,
    validates the result and commits it as a new version.  Readers always
    see either the old or the new snapshot, never a mix.
    """

    def __init__(self, initial: MetricsSnapshot | None = None) -> None:
        self._lock = Lock()
        self._snapshot = initial or MetricsSnapshot()

    def current_snapshot(self) -> MetricsSnapshot:
        return self._snapshot

    def update(self, **changes: Any) -> MetricsSnapshot:
        """Commit *changes* and return the new snapshot.

        Raises ``ConfigurationError`` if the merged settings are invalid;
        the previous snapshot stays in effect.
        """
        if "version" in changes:
            raise ConfigurationError("version is assigned by the provider")
        with self._lock:
            merged = self._snapshot.model_dump()
            merged.update(changes)
            merged["version"] = self._snapshot.version + 1
            try:
                snapshot = MetricsSnapshot.model_validate(merged)
            except ValidationError as exc:
                raise ConfigurationError(str(exc)) from exc
            self._snapshot = snapshot
        logger.info(
            "metrics config updated version=%d fields=%s",
            snapshot.version,
            ",".join(sorted(changes)),
        )
        return snapshot


def read_snapshot(provider: SnapshotProvider) -> MetricsSnapshot | None:
    """Return the provider's snapshot, or ``None`` if it cannot be read."""
    try:
        snapshot = provider.current_snapshot()
    except Exception:
        logger.warning("metrics config unavailable", exc_info=True)
        return None
    if not isinstance(snapshot, MetricsSnapshot):
        logger.warning(
            "metrics config provider returned %s", type(snapshot).__name__
        )
        return None
    return snapshot
