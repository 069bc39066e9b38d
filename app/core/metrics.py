from __future__ import annotations

"""Prometheus metrics for the media pipeline and playback delivery.

Thin helper functions keep call sites free of label plumbing.
"""

from prometheus_client import Counter, Histogram

pipeline_runs_total = Counter(
    "media_pipeline_runs_total",
    "Completed ingestion pipeline runs",
    labelnames=("kind", "result"),
)
pipeline_stage_seconds = Histogram(
    "media_pipeline_stage_seconds",
    "Wall-clock duration of each pipeline stage",
    labelnames=("stage", "result"),
    buckets=(0.5, 1, 5, 15, 30, 60, 120, 300, 600, 1200, 3600),
)
objects_uploaded_total = Counter(
    "media_objects_uploaded_total",
    "Manifest and segment objects written to object storage",
    labelnames=("kind",),
)
presigns_total = Counter(
    "playback_presigns_total",
    "Number of signed playback URLs issued",
    labelnames=("result",),
)
db_retries_total = Counter(
    "db_transient_retries_total",
    "Durable-store calls retried after a connection-level failure",
    labelnames=("result",),
)


def inc_pipeline_run(kind: str, result: str) -> None:
    pipeline_runs_total.labels(kind=kind, result=result).inc()


def observe_stage_seconds(stage: str, result: str, seconds: float) -> None:
    pipeline_stage_seconds.labels(stage=stage, result=result).observe(seconds)


def inc_object_uploaded(kind: str) -> None:
    objects_uploaded_total.labels(kind=kind).inc()


def inc_presign(result: str) -> None:
    presigns_total.labels(result=result).inc()


def inc_db_retry(result: str) -> None:
    db_retries_total.labels(result=result).inc()


__all__ = [
    "inc_pipeline_run",
    "observe_stage_seconds",
    "inc_object_uploaded",
    "inc_presign",
    "inc_db_retry",
]
