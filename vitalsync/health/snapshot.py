"""HealthSnapshot — the in-memory result of one collection cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from vitalsync.health.base import MetricKind, Sample, TimeWindow, Workout
from vitalsync.health.sleep import SleepStageAccumulator


class _NoData:
    """Marker for a slot whose fetch failed or returned nothing."""

    _instance: "_NoData | None" = None

    def __new__(cls) -> "_NoData":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA"


NO_DATA = _NoData()

SeriesSlot = Union[tuple[Sample, ...], _NoData]
WorkoutSlot = Union[tuple[Workout, ...], _NoData]
ScalarSlot = Union[float, _NoData]
SleepSlot = Union[SleepStageAccumulator, _NoData]

# MetricKind → HealthSnapshot attribute
SLOT_ATTRIBUTES: dict[MetricKind, str] = {
    MetricKind.STEPS: "step_count",
    MetricKind.SLEEP: "sleep",
    MetricKind.WORKOUTS: "workouts",
    MetricKind.HEART_RATE: "heart_rate",
    MetricKind.RESTING_HEART_RATE: "resting_heart_rate",
    MetricKind.ACTIVE_ENERGY: "active_energy",
    MetricKind.BASAL_ENERGY: "basal_energy",
    MetricKind.STAND_TIME: "stand_time",
    MetricKind.DISTANCE: "distance",
    MetricKind.EXERCISE_TIME: "exercise_time",
    MetricKind.FLIGHTS_CLIMBED: "flights_climbed",
    MetricKind.HEIGHT: "height",
    MetricKind.WEIGHT: "weight",
}


@dataclass(frozen=True)
class SourceDiagnostic:
    """Why one slot holds NO_DATA.

    Attributes:
        metric:  The failed slot.
        kind:    'unavailable', 'timeout' or 'error'.
        message: Human-readable detail.
    """

    metric: MetricKind
    kind: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"metric": self.metric.value, "kind": self.kind, "message": self.message}


@dataclass
class HealthSnapshot:
    """One complete collection of all tracked metrics.

    Every slot is always present.  A slot whose source failed or returned
    nothing holds NO_DATA; the sleep slot holds an accumulator with all five
    stages whenever the sleep source answered, even with zero samples.

    Attributes:
        user_name:   Display name of the user the snapshot belongs to.
        captured_at: Capture timestamp; also fixes the document's date.
        window:      Day window the series were queried over.
        diagnostics: One entry per failed source.
    """

    user_name: str
    captured_at: datetime
    window: TimeWindow
    step_count: ScalarSlot = NO_DATA
    sleep: SleepSlot = NO_DATA
    workouts: WorkoutSlot = NO_DATA
    heart_rate: SeriesSlot = NO_DATA
    resting_heart_rate: SeriesSlot = NO_DATA
    active_energy: SeriesSlot = NO_DATA
    basal_energy: SeriesSlot = NO_DATA
    stand_time: SeriesSlot = NO_DATA
    distance: SeriesSlot = NO_DATA
    exercise_time: SeriesSlot = NO_DATA
    flights_climbed: SeriesSlot = NO_DATA
    height: ScalarSlot = NO_DATA
    weight: ScalarSlot = NO_DATA
    diagnostics: list[SourceDiagnostic] = field(default_factory=list)

    def slot(self, kind: MetricKind) -> Any:
        return getattr(self, SLOT_ATTRIBUTES[kind])

    def set_slot(self, kind: MetricKind, value: Any) -> None:
        setattr(self, SLOT_ATTRIBUTES[kind], value)

    def missing_slots(self) -> list[MetricKind]:
        """Slots currently holding NO_DATA."""
        return [kind for kind in MetricKind if self.slot(kind) is NO_DATA]

    @property
    def failed_metrics(self) -> list[MetricKind]:
        return [d.metric for d in self.diagnostics]
