"""Base classes and canonical data models for health metric collection.

Every metric source subclasses MetricSource and returns the immutable
Sample / SleepSample / Workout records defined here.  These types are the
single currency between the health data store, the aggregator and the
snapshot formatter.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from vitalsync.health.catalog import MetricSpec

logger = logging.getLogger("vitalsync.health")


class MetricKind(str, Enum):
    """One snapshot slot per member.  Declaration order is document order."""

    STEPS = "steps"
    SLEEP = "sleep"
    WORKOUTS = "workouts"
    HEART_RATE = "heart_rate"
    RESTING_HEART_RATE = "resting_heart_rate"
    ACTIVE_ENERGY = "active_energy"
    BASAL_ENERGY = "basal_energy"
    STAND_TIME = "stand_time"
    DISTANCE = "distance"
    EXERCISE_TIME = "exercise_time"
    FLIGHTS_CLIMBED = "flights_climbed"
    HEIGHT = "height"
    WEIGHT = "weight"


# ---------------------------------------------------------------------------
# Query window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    """Half-open ``[start, end)`` range a metric is queried over.

    Attributes:
        start: Inclusive lower bound (timezone-aware).
        end:   Exclusive upper bound (timezone-aware).
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"window end {self.end} is before start {self.start}")

    @classmethod
    def today(cls, now: datetime) -> "TimeWindow":
        """Start of the local calendar day through ``now``."""
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=midnight, end=now)

    @classmethod
    def sleep_night(cls, now: datetime, cutoff_hour: int = 18) -> "TimeWindow":
        """Yesterday at ``cutoff_hour`` through today at ``cutoff_hour``.

        A night that starts in the evening and ends the next morning falls
        entirely inside one window.
        """
        cutoff = now.replace(hour=cutoff_hour, minute=0, second=0, microsecond=0)
        return cls(start=cutoff - timedelta(days=1), end=cutoff)

    def clip(self, start: datetime, end: datetime) -> tuple[datetime, datetime] | None:
        """Clip ``[start, end)`` to this window.

        Returns None when nothing positive is left after clipping.
        """
        clipped_start = max(start, self.start)
        clipped_end = min(end, self.end)
        if clipped_start >= clipped_end:
            return None
        return clipped_start, clipped_end


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sample:
    """One time-stamped quantity reading.  The unit is implied by the metric."""

    start: datetime
    end: datetime
    value: float


@dataclass(frozen=True)
class SleepSample:
    """One categorical sleep-analysis sample.

    Attributes:
        start:       Sample start.
        end:         Sample end.
        category:    HKCategoryValueSleepAnalysis name (e.g. 'asleepCore').
        source_name: Name of the device/app that recorded the sample.
    """

    start: datetime
    end: datetime
    category: str
    source_name: str = ""


@dataclass(frozen=True)
class Workout:
    """One recorded workout.

    Attributes:
        activity_type:     Display name ('Running', 'Walking', ..., 'Other').
        start:             Workout start.
        end:               Workout end.
        duration_minutes:  Active duration in minutes.
        total_energy_kcal: Energy burned, 0.0 when not recorded.
        total_distance_m:  Distance covered, 0.0 when not recorded.
    """

    activity_type: str
    start: datetime
    end: datetime
    duration_minutes: float
    total_energy_kcal: float = 0.0
    total_distance_m: float = 0.0


# ---------------------------------------------------------------------------
# Health data store collaborator
# ---------------------------------------------------------------------------


class HealthStore(ABC):
    """Read API of the device-local health data store.

    Implementations must return empty results for "nothing in the window"
    and raise SourceUnavailable when a type cannot be read at all.
    """

    @abstractmethod
    async def request_authorization(self, identifiers: list[str]) -> bool:
        """Ask for read access to all ``identifiers``.  Returns True if granted."""

    @abstractmethod
    async def query_quantity(
        self, identifier: str, unit: str, window: TimeWindow, ascending: bool = False
    ) -> list[Sample]:
        """Return quantity samples whose start lies in ``window``."""

    @abstractmethod
    async def query_cumulative_sum(
        self, identifier: str, unit: str, window: TimeWindow
    ) -> float | None:
        """Return the summed quantity over ``window``, or None if nothing recorded."""

    @abstractmethod
    async def query_category(self, identifier: str, window: TimeWindow) -> list[SleepSample]:
        """Return categorical samples whose start lies in ``window``."""

    @abstractmethod
    async def query_workouts(self, window: TimeWindow) -> list[Workout]:
        """Return workouts whose start lies in ``window``."""

    @abstractmethod
    async def query_latest(self, identifier: str, unit: str) -> Sample | None:
        """Return the most recent sample regardless of age, or None."""

    #: Called with no arguments when the store reports new data.
    on_change: Callable[[], None] | None = None

    def notify_change(self) -> None:
        """Forward a change notification to ``on_change`` if one is set."""
        if self.on_change is not None:
            self.on_change()

    async def aclose(self) -> None:
        """Release any held resources.  Default is a no-op."""
        return None


# ---------------------------------------------------------------------------
# Abstract metric source
# ---------------------------------------------------------------------------


class MetricSource(ABC):
    """Typed accessor for one metric kind.

    Series sources implement ``fetch(window)``; latest-only sources set
    ``LATEST_ONLY`` and implement ``fetch_latest()``.  Neither may raise for
    an empty result; SourceUnavailable is the only expected failure.
    """

    #: Set by subclasses that read "most recent sample, limit 1".
    LATEST_ONLY: bool = False

    def __init__(self, store: HealthStore, spec: "MetricSpec") -> None:
        self._store = store
        self.spec = spec

    @property
    def kind(self) -> MetricKind:
        return self.spec.kind

    async def fetch(self, window: TimeWindow) -> list[Any]:
        """Fetch all samples in ``window``."""
        raise NotImplementedError(f"{type(self).__name__} does not support window queries")

    async def fetch_latest(self) -> Sample | None:
        """Fetch the most recent sample regardless of age."""
        raise NotImplementedError(f"{type(self).__name__} does not support latest queries")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value})"
