"""Pipeline domain — ingestion queue, batch writer and retention reaper."""

from passkeymetrics.pipeline.queue import IngestionQueue
from passkeymetrics.pipeline.queue import SubmitOutcome
from passkeymetrics.pipeline.reaper import retention_cutoff
from passkeymetrics.pipeline.reaper import RetentionReaper
from passkeymetrics.pipeline.service import build_redis_pipeline
from passkeymetrics.pipeline.service import MetricsPipeline
from passkeymetrics.pipeline.writer import BatchWriter

__all__ = [
    "BatchWriter",
    "IngestionQueue",
    "MetricsPipeline",
    "RetentionReaper",
    "SubmitOutcome",
    "build_redis_pipeline",
    "retention_cutoff",
]
