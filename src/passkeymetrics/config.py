"""Static tuning configuration dataclasses.

Frozen dataclasses with sensible defaults for the process-local parts of
the pipeline.  Operator-facing settings that may change at runtime live in
:mod:`passkeymetrics.snapshot` instead.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    """Queue, writer and shutdown tuning for one ``MetricsPipeline``."""

    queue_capacity: int = 10_000
    # Writer flushes at least this often even when batches are not full
    flush_interval_seconds: float = 1.0
    # Retry policy for a failed batch append
    max_attempts: int = 3
    retry_base_delay_seconds: float = 0.1
    retry_max_delay_seconds: float = 2.0
    # Final drain budget on stop()
    shutdown_timeout_seconds: float = 5.0
    # Direct writes when async storage is disabled
    sync_write_timeout_seconds: float = 0.25

    def __post_init__(self) -> None:
        if self.queue_capacity < 1:
            raise ValueError("queue_capacity must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.flush_interval_seconds <= 0:
            raise ValueError("flush_interval_seconds must be > 0")


@dataclass(frozen=True)
class RedisStoreConfig:
    """Connection and key layout for the Redis metric store."""

    url: str = "redis://localhost:6379"
    key_prefix: str = "passkeymetrics"
