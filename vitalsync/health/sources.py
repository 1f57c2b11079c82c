"""Concrete metric sources over a HealthStore.

One source class per query style in the metric catalog:

    CumulativeSource   — summed quantity (steps)
    SleepAnalysisSource — categorical sleep samples
    WorkoutSource      — workout records
    QuantitySeriesSource — quantity samples over a window
    LatestQuantitySource — most recent sample (height, weight)

``build_sources()`` instantiates one source per catalog entry.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from vitalsync.health.base import (
    HealthStore,
    MetricKind,
    MetricSource,
    Sample,
    SleepSample,
    TimeWindow,
    Workout,
)
from vitalsync.health.catalog import MetricCatalog, MetricSpec

logger = logging.getLogger("vitalsync.health.sources")


def _scaled(sample: Sample, scale: float) -> Sample:
    if scale == 1.0:
        return sample
    return replace(sample, value=sample.value * scale)


class CumulativeSource(MetricSource):
    """Sum of a quantity over the window, as a single window-spanning sample."""

    async def fetch(self, window: TimeWindow) -> list[Sample]:
        total = await self._store.query_cumulative_sum(
            self.spec.identifier, self.spec.unit, window
        )
        if total is None:
            return []
        return [Sample(start=window.start, end=window.end, value=total * self.spec.scale)]


class QuantitySeriesSource(MetricSource):
    """Every quantity sample in the window, converted to the catalog unit."""

    async def fetch(self, window: TimeWindow) -> list[Sample]:
        samples = await self._store.query_quantity(
            self.spec.identifier, self.spec.unit, window, ascending=self.spec.ascending
        )
        return [_scaled(s, self.spec.scale) for s in samples]


class SleepAnalysisSource(MetricSource):
    """Raw categorical sleep samples; accumulation happens in the aggregator."""

    async def fetch(self, window: TimeWindow) -> list[SleepSample]:
        return await self._store.query_category(self.spec.identifier, window)


class WorkoutSource(MetricSource):
    """Workouts in the window, with activity types mapped to display names."""

    def __init__(self, store: HealthStore, spec: MetricSpec, catalog: MetricCatalog) -> None:
        super().__init__(store, spec)
        self._catalog = catalog

    async def fetch(self, window: TimeWindow) -> list[Workout]:
        workouts = await self._store.query_workouts(window)
        return [
            replace(w, activity_type=self._catalog.workout_name(w.activity_type))
            for w in workouts
        ]


class LatestQuantitySource(MetricSource):
    """Most recent sample regardless of age (limit 1)."""

    LATEST_ONLY = True

    async def fetch_latest(self) -> Sample | None:
        sample = await self._store.query_latest(self.spec.identifier, self.spec.unit)
        if sample is None:
            return None
        return _scaled(sample, self.spec.scale)


# Registry: catalog query style → source class
SOURCE_REGISTRY: dict[str, type[MetricSource]] = {
    "cumulative": CumulativeSource,
    "series": QuantitySeriesSource,
    "category": SleepAnalysisSource,
    "workout": WorkoutSource,
    "latest": LatestQuantitySource,
}


def build_sources(store: HealthStore, catalog: MetricCatalog) -> dict[MetricKind, MetricSource]:
    """Instantiate one source per catalog metric, in document order.

    Raises:
        KeyError: If a catalog entry names an unregistered query style.
    """
    sources: dict[MetricKind, MetricSource] = {}
    for kind, spec in catalog.metrics.items():
        if spec.query not in SOURCE_REGISTRY:
            raise KeyError(
                f"No source registered for query '{spec.query}'. "
                f"Available: {list(SOURCE_REGISTRY)}"
            )
        if spec.query == "workout":
            sources[kind] = WorkoutSource(store, spec, catalog)
        else:
            sources[kind] = SOURCE_REGISTRY[spec.query](store, spec)
    logger.debug("Built %d metric sources", len(sources))
    return sources
