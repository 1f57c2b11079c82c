"""SnapshotFormatter — render a HealthSnapshot into the uploaded JSON document.

Rendering is a pure function of the snapshot: no I/O and no clock access.
The capture timestamp on the snapshot supplies both the "Upload Date" field
and the date part of the storage key.

Wire rules readers depend on:
    - an empty series renders as ``{"Message": "No ... data available"}``
      instead of an empty list;
    - sleep renders one record per stage with nonzero duration;
    - every exercise-time record carries ``"1.0"`` minute;
    - "Steps Data" is an integer, all other values keep source precision.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from vitalsync.health.base import MetricKind, Sample, Workout
from vitalsync.health.catalog import MetricCatalog, get_metric_catalog
from vitalsync.health.sleep import SleepStageAccumulator
from vitalsync.health.snapshot import NO_DATA, HealthSnapshot

logger = logging.getLogger("vitalsync.health.formatter")

MESSAGE_KEY = "Message"

# Exercise-time records carry one minute each regardless of the sample
EXERCISE_MINUTES_LITERAL = "1.0"

_SERIES_KINDS: tuple[MetricKind, ...] = (
    MetricKind.HEART_RATE,
    MetricKind.RESTING_HEART_RATE,
    MetricKind.ACTIVE_ENERGY,
    MetricKind.BASAL_ENERGY,
    MetricKind.STAND_TIME,
    MetricKind.DISTANCE,
    MetricKind.EXERCISE_TIME,
    MetricKind.FLIGHTS_CLIMBED,
)

_PATH_UNSAFE = re.compile(r"[/\\]+")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def format_short_datetime(value: datetime) -> str:
    """Short date + short time, e.g. ``10/19/26, 5:00 PM``."""
    hour12 = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.month}/{value.day}/{value:%y}, {hour12}:{value:%M} {meridiem}"


def format_duration(minutes: float) -> str:
    """Whole minutes as ``<h>h <m>m``, e.g. 75 → ``1h 15m``."""
    whole = int(minutes)
    return f"{whole // 60}h {whole % 60}m"


def format_value(value: float) -> str:
    """Render a numeric value at source precision (``72.0``, ``0.125``)."""
    return str(float(value))


def normalize_user_identity(user_name: str) -> str:
    """Lowercase the display name and make it safe as a key prefix.

    Surrounding whitespace is stripped, inner whitespace collapsed to one
    space and path separators replaced, so ``"  Jane   Doe "`` → ``"jane doe"``.

    Raises:
        ValueError: If nothing is left after normalization.
    """
    collapsed = " ".join(user_name.split())
    normalized = _PATH_UNSAFE.sub("_", collapsed).lower()
    if not normalized.strip("_"):
        raise ValueError(f"user name {user_name!r} is empty after normalization")
    return normalized


def storage_key(user_name: str, captured_at: datetime) -> str:
    """``{normalized-user}/{YYYY-MM-DD}.json`` — one object per user per day."""
    return f"{normalize_user_identity(user_name)}/{captured_at:%Y-%m-%d}.json"


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadDocument:
    """Rendered snapshot plus the key it is stored under.

    Attributes:
        key:  Storage key (``user/date.json``).
        body: JSON-serializable document with fixed field names.
    """

    key: str
    body: dict[str, Any]

    def to_bytes(self) -> bytes:
        """Serialize the body as pretty-printed UTF-8 JSON."""
        return json.dumps(self.body, indent=2, ensure_ascii=False).encode("utf-8")


class SnapshotFormatter:
    """Render HealthSnapshots using the field names from the metric catalog."""

    def __init__(
        self,
        catalog: MetricCatalog | None = None,
        *,
        exercise_minutes_from_samples: bool = False,
    ) -> None:
        """Initialize the formatter.

        Args:
            catalog:                       Metric catalog (bundled one by default).
            exercise_minutes_from_samples: Render each exercise-time record's
                                           real duration (hours × 60) instead
                                           of the fixed one-minute literal.
        """
        self._catalog = catalog or get_metric_catalog()
        self._exercise_from_samples = exercise_minutes_from_samples

    def render(self, snapshot: HealthSnapshot) -> UploadDocument:
        """Render ``snapshot`` into an UploadDocument.

        Raises:
            ValueError: If the snapshot's user name is empty.
        """
        spec = self._catalog.spec
        steps = snapshot.step_count
        body: dict[str, Any] = {
            "User Name": snapshot.user_name,
            spec(MetricKind.STEPS).document_field: 0 if steps is NO_DATA else int(steps),
            "Upload Date": format_short_datetime(snapshot.captured_at),
            spec(MetricKind.SLEEP).document_field: self._render_sleep(snapshot.sleep),
            spec(MetricKind.WORKOUTS).document_field: self._render_workouts(snapshot.workouts),
        }
        for kind in _SERIES_KINDS:
            body[spec(kind).document_field] = self._render_series(kind, snapshot.slot(kind))
        for kind in (MetricKind.HEIGHT, MetricKind.WEIGHT):
            body[spec(kind).document_field] = self._render_latest(kind, snapshot.slot(kind))

        return UploadDocument(
            key=storage_key(snapshot.user_name, snapshot.captured_at), body=body
        )

    # ------------------------------------------------------------------
    # Per-slot rendering
    # ------------------------------------------------------------------

    def _placeholder(self, kind: MetricKind) -> dict[str, str]:
        return {MESSAGE_KEY: self._catalog.spec(kind).placeholder}

    def _render_sleep(self, sleep: Any) -> Any:
        if not isinstance(sleep, SleepStageAccumulator):
            return self._placeholder(MetricKind.SLEEP)
        records = []
        for stage, totals in sleep.items():
            if totals.total_minutes <= 0 or totals.first_start is None or totals.last_end is None:
                continue
            records.append(
                {
                    "Stage": stage,
                    "Start Time": format_short_datetime(totals.first_start),
                    "End Time": format_short_datetime(totals.last_end),
                    "Duration": format_duration(totals.total_minutes),
                }
            )
        return records or self._placeholder(MetricKind.SLEEP)

    def _render_workouts(self, workouts: Any) -> Any:
        if workouts is NO_DATA or not workouts:
            return self._placeholder(MetricKind.WORKOUTS)
        return [self._workout_record(w) for w in workouts]

    @staticmethod
    def _workout_record(workout: Workout) -> dict[str, str]:
        return {
            "Type": workout.activity_type,
            "Start Time": format_short_datetime(workout.start),
            "End Time": format_short_datetime(workout.end),
            "Duration (minutes)": f"{int(workout.duration_minutes)} min",
            "Total Energy Burned (kcal)": f"{format_value(workout.total_energy_kcal)} kcal",
            "Total Distance (m)": f"{format_value(workout.total_distance_m)} m",
        }

    def _render_series(self, kind: MetricKind, samples: Any) -> Any:
        if samples is NO_DATA or not samples:
            return self._placeholder(kind)
        value_key = self._catalog.spec(kind).value_key
        return [
            {
                "Start Time": format_short_datetime(sample.start),
                "End Time": format_short_datetime(sample.end),
                value_key: self._series_value(kind, sample),
            }
            for sample in samples
        ]

    def _series_value(self, kind: MetricKind, sample: Sample) -> str:
        if kind is MetricKind.EXERCISE_TIME:
            if self._exercise_from_samples:
                return format_value(sample.value * 60)
            return EXERCISE_MINUTES_LITERAL
        return format_value(sample.value)

    def _render_latest(self, kind: MetricKind, value: Any) -> dict[str, str]:
        spec = self._catalog.spec(kind)
        rendered = spec.placeholder if value is NO_DATA or value is None else format_value(value)
        return {spec.value_key: rendered}
