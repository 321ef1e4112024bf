"""passkeymetrics — non-blocking telemetry for passkey lifecycle events."""

from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.pipeline import build_redis_pipeline
from passkeymetrics.pipeline import MetricsPipeline
from passkeymetrics.pipeline import SubmitOutcome
from passkeymetrics.recorder import PasskeyMetricsRecorder
from passkeymetrics.snapshot import InMemorySnapshotProvider
from passkeymetrics.snapshot import MetricsSnapshot

__all__ = [
    "EventKind",
    "InMemorySnapshotProvider",
    "MetricsPipeline",
    "MetricsSnapshot",
    "PasskeyEvent",
    "PasskeyMetricsRecorder",
    "SubmitOutcome",
    "build_redis_pipeline",
]
