"""Health metric collection for VitalSync.

This package reads the day's metrics from the device-local health data
store, merges them into one HealthSnapshot and renders that snapshot into
the document uploaded to object storage.

Core modules:
    base       — MetricSource / HealthStore ABCs and sample models
    catalog    — Load/validate metric_catalog.yaml (identifiers, field names)
    sources    — Concrete metric sources per query style
    bridge     — HealthStore over the loopback health data bridge (httpx)
    sleep      — Sleep stage filtering, clipping and accumulation
    snapshot   — HealthSnapshot, NO_DATA marker, per-source diagnostics
    aggregator — Concurrent fan-out/fan-in over all sources
    formatter  — Deterministic document rendering and storage keys
"""

from vitalsync.health.aggregator import Aggregator
from vitalsync.health.base import (
    HealthStore,
    MetricKind,
    MetricSource,
    Sample,
    SleepSample,
    TimeWindow,
    Workout,
)
from vitalsync.health.catalog import MetricCatalog, get_metric_catalog
from vitalsync.health.formatter import SnapshotFormatter, UploadDocument
from vitalsync.health.snapshot import NO_DATA, HealthSnapshot

__all__ = [
    "Aggregator",
    "HealthStore",
    "MetricKind",
    "MetricSource",
    "Sample",
    "SleepSample",
    "TimeWindow",
    "Workout",
    "MetricCatalog",
    "get_metric_catalog",
    "SnapshotFormatter",
    "UploadDocument",
    "NO_DATA",
    "HealthSnapshot",
]
