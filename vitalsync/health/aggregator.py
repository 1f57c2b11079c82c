"""Aggregator — concurrent fan-out over all metric sources into one snapshot.

All sources are queried at once and the aggregator waits for the last one
to settle.  A failing or slow source never aborts the collection: its slot
becomes NO_DATA and a SourceDiagnostic records why.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from vitalsync.errors import SourceUnavailable
from vitalsync.health.base import MetricKind, MetricSource, TimeWindow
from vitalsync.health.sleep import DEFAULT_SOURCE_ALLOW_LIST, accumulate_sleep
from vitalsync.health.snapshot import NO_DATA, HealthSnapshot, SourceDiagnostic

logger = logging.getLogger("vitalsync.health.aggregator")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class Aggregator:
    """Collect a HealthSnapshot from a set of metric sources.

    Usage::

        aggregator = Aggregator(build_sources(store, catalog), sleep_stages=catalog.sleep_stages)
        snapshot = await aggregator.collect("Jane Doe")
    """

    def __init__(
        self,
        sources: dict[MetricKind, MetricSource],
        sleep_stages: dict[str, str],
        *,
        sleep_allow_list: Iterable[str] = DEFAULT_SOURCE_ALLOW_LIST,
        sleep_cutoff_hour: int = 18,
        source_timeout: float = 20.0,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        """Initialize the aggregator.

        Args:
            sources:           One source per slot (missing slots stay NO_DATA).
            sleep_stages:      Sleep category value → stage label.
            sleep_allow_list:  Source-name tokens accepted for sleep samples.
            sleep_cutoff_hour: Local hour that separates one night from the next.
            source_timeout:    Seconds any single source may take.
            clock:             Returns the current timezone-aware local time.
        """
        self._sources = sources
        self._sleep_stages = sleep_stages
        self._sleep_allow_list = tuple(sleep_allow_list)
        self._sleep_cutoff_hour = sleep_cutoff_hour
        self._source_timeout = source_timeout
        self._clock = clock

    async def collect(
        self,
        user_name: str,
        window: TimeWindow | None = None,
        now: datetime | None = None,
    ) -> HealthSnapshot:
        """Fetch every source concurrently and merge the results.

        Args:
            user_name: Display name stored on the snapshot.
            window:    Explicit window for every source, sleep included.
                       Defaults to today for series and the 18:00→18:00
                       night for sleep.
            now:       Capture time (defaults to the clock).

        Returns:
            HealthSnapshot with every slot populated.
        """
        captured_at = now or self._clock()
        day_window = window or TimeWindow.today(captured_at)
        sleep_window = window or TimeWindow.sleep_night(captured_at, self._sleep_cutoff_hour)

        kinds = list(self._sources)
        results = await asyncio.gather(
            *(
                self._fetch_one(
                    self._sources[kind],
                    sleep_window if kind is MetricKind.SLEEP else day_window,
                )
                for kind in kinds
            ),
            return_exceptions=True,
        )

        snapshot = HealthSnapshot(user_name=user_name, captured_at=captured_at, window=day_window)
        for kind, result in zip(kinds, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                snapshot.diagnostics.append(self._diagnose(kind, result))
                continue
            snapshot.set_slot(kind, self._to_slot(kind, result, sleep_window))

        if snapshot.diagnostics:
            logger.warning(
                "Collected snapshot with %d failed source(s): %s",
                len(snapshot.diagnostics),
                ", ".join(d.metric.value for d in snapshot.diagnostics),
            )
        else:
            logger.info("Collected snapshot for %d sources", len(kinds))
        return snapshot

    async def _fetch_one(self, source: MetricSource, window: TimeWindow) -> Any:
        if source.LATEST_ONLY:
            coro = source.fetch_latest()
        else:
            coro = source.fetch(window)
        return await asyncio.wait_for(coro, timeout=self._source_timeout)

    def _to_slot(self, kind: MetricKind, result: Any, sleep_window: TimeWindow) -> Any:
        if kind is MetricKind.SLEEP:
            return accumulate_sleep(
                result, sleep_window, self._sleep_stages, self._sleep_allow_list
            )
        if kind is MetricKind.STEPS:
            return sum(s.value for s in result) if result else NO_DATA
        if kind in (MetricKind.HEIGHT, MetricKind.WEIGHT):
            return NO_DATA if result is None else result.value
        return tuple(result) if result else NO_DATA

    @staticmethod
    def _diagnose(kind: MetricKind, exc: Exception) -> SourceDiagnostic:
        if isinstance(exc, SourceUnavailable):
            logger.warning("Source %s unavailable: %s", kind.value, exc.reason)
            return SourceDiagnostic(metric=kind, kind="unavailable", message=exc.reason)
        if isinstance(exc, asyncio.TimeoutError):
            logger.warning("Source %s timed out", kind.value)
            return SourceDiagnostic(metric=kind, kind="timeout", message="source timed out")
        logger.warning("Source %s failed: %s", kind.value, exc)
        return SourceDiagnostic(metric=kind, kind="error", message=str(exc) or type(exc).__name__)
