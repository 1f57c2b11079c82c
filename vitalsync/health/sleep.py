"""Sleep stage accumulation.

Raw sleep-analysis samples arrive from every app and device that writes to
the health store.  Only samples recorded by a watch or health tracker are
kept (substring match on the source name), each is clipped to the night
window, and per-stage totals are merged into a SleepStageAccumulator.

The merge is commutative: feeding the same samples in any order yields the
same first start, last end and total duration per stage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from vitalsync.health.base import SleepSample, TimeWindow

logger = logging.getLogger("vitalsync.health.sleep")

SLEEP_STAGES: tuple[str, ...] = ("In Bed", "REM Sleep", "Core Sleep", "Deep Sleep", "Awake")

# Substrings of source names that identify a watch / health tracker
DEFAULT_SOURCE_ALLOW_LIST: tuple[str, ...] = ("Watch", "Health", "Connect")


@dataclass
class StageTotals:
    """Accumulated span and duration for one sleep stage.

    Attributes:
        first_start: Earliest clipped sample start (None if no samples).
        last_end:    Latest clipped sample end (None if no samples).
        total:       Sum of clipped sample durations.
    """

    first_start: datetime | None = None
    last_end: datetime | None = None
    total: timedelta = timedelta(0)

    @property
    def total_minutes(self) -> float:
        return self.total.total_seconds() / 60

    def add(self, start: datetime, end: datetime) -> None:
        self.first_start = start if self.first_start is None else min(self.first_start, start)
        self.last_end = end if self.last_end is None else max(self.last_end, end)
        # Exact sum; totals are independent of sample order
        self.total += end - start


class SleepStageAccumulator:
    """Mapping of stage label → StageTotals with a fixed key set.

    Every stage in ``stages`` is always present, with zero duration when no
    sample contributed to it.
    """

    def __init__(self, stages: Iterable[str] = SLEEP_STAGES) -> None:
        self._totals: dict[str, StageTotals] = {stage: StageTotals() for stage in stages}

    def add(self, stage: str, start: datetime, end: datetime) -> bool:
        """Add one already-clipped interval.  Returns False for unknown stages."""
        totals = self._totals.get(stage)
        if totals is None:
            return False
        totals.add(start, end)
        return True

    def __getitem__(self, stage: str) -> StageTotals:
        return self._totals[stage]

    def __iter__(self) -> Iterator[str]:
        return iter(self._totals)

    def __len__(self) -> int:
        return len(self._totals)

    def items(self) -> list[tuple[str, StageTotals]]:
        return list(self._totals.items())

    def total_minutes(self, stage: str) -> float:
        return self._totals[stage].total_minutes

    @property
    def is_empty(self) -> bool:
        return all(t.total_minutes <= 0 for t in self._totals.values())

    def __repr__(self) -> str:
        parts = ", ".join(f"{k}={v.total_minutes:.1f}m" for k, v in self._totals.items())
        return f"SleepStageAccumulator({parts})"


def is_tracker_source(source_name: str, allow_list: Iterable[str] = DEFAULT_SOURCE_ALLOW_LIST) -> bool:
    """Return True if ``source_name`` contains any allow-listed token."""
    return any(token in source_name for token in allow_list)


def accumulate_sleep(
    samples: Iterable[SleepSample],
    window: TimeWindow,
    stage_labels: dict[str, str],
    allow_list: Iterable[str] = DEFAULT_SOURCE_ALLOW_LIST,
) -> SleepStageAccumulator:
    """Filter, clip and merge raw sleep samples into per-stage totals.

    Args:
        samples:      Raw categorical samples from the store.
        window:       Night window every sample is clipped to.
        stage_labels: Sleep category value → stage label (the fixed stage set).
        allow_list:   Source-name tokens of accepted devices.

    Returns:
        SleepStageAccumulator holding exactly the stages in ``stage_labels``.
    """
    tokens = tuple(allow_list)
    accumulator = SleepStageAccumulator(stage_labels.values())
    skipped_source = skipped_category = skipped_empty = 0

    for sample in samples:
        if not is_tracker_source(sample.source_name, tokens):
            skipped_source += 1
            continue
        label = stage_labels.get(sample.category)
        if label is None:
            skipped_category += 1
            continue
        clipped = window.clip(sample.start, sample.end)
        if clipped is None:
            skipped_empty += 1
            continue
        accumulator.add(label, *clipped)

    if skipped_source or skipped_category or skipped_empty:
        logger.debug(
            "Sleep accumulation skipped %d non-tracker, %d unknown-stage, %d empty samples",
            skipped_source,
            skipped_category,
            skipped_empty,
        )
    return accumulator
