"""Upload cycle orchestration.

Core modules:
    pipeline  — SyncPipeline: token check → credentials → collect → render → put
    scheduler — Manual, daily foreground, app-background and background-window triggers
"""

from vitalsync.sync.pipeline import CycleResult, CycleState, CycleStatus, SyncPipeline, Trigger
from vitalsync.sync.scheduler import Scheduler, next_occurrence

__all__ = [
    "CycleResult",
    "CycleState",
    "CycleStatus",
    "SyncPipeline",
    "Trigger",
    "Scheduler",
    "next_occurrence",
]
