"""One upload cycle, from token check to put.

Every trigger (manual, foreground timer, background window, app entering
background) runs the same sequence:

1. Require a stored display name
2. AuthGate.ensure_fresh()  (refresh the identity token if it is expiring)
3. CredentialProvider.get_credentials()
4. Request read authorization from the health data store
5. Aggregator.collect()
6. SnapshotFormatter.render()
7. UploadClient.put()

A failure in steps 1-4 ends the cycle before any data is read or written.
Per-source failures in step 5 never end the cycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from vitalsync.auth.credentials import CredentialProvider
from vitalsync.auth.gate import AuthGate
from vitalsync.errors import HealthDataUnavailable, MissingUserName, VitalSyncError
from vitalsync.health.aggregator import Aggregator
from vitalsync.health.base import HealthStore
from vitalsync.health.formatter import SnapshotFormatter, normalize_user_identity
from vitalsync.services.s3 import UploadClient

logger = logging.getLogger("vitalsync.sync.pipeline")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Trigger(str, Enum):
    MANUAL = "manual"
    FOREGROUND_TIMER = "foreground_timer"
    BACKGROUND_WINDOW = "background_window"
    APP_BACKGROUND = "app_background"


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CycleResult:
    """Outcome of one cycle.

    Attributes:
        trigger:        What started the cycle.
        status:         COMPLETED, FAILED or CANCELLED.
        started_at:     UTC start time.
        finished_at:    UTC end time.
        key:            Storage key written (COMPLETED only).
        error:          Error message (FAILED only).
        error_type:     Exception class name (FAILED only).
        failed_metrics: Metric kinds whose source failed during collection.
    """

    trigger: Trigger
    status: CycleStatus
    started_at: datetime
    finished_at: datetime
    key: str | None = None
    error: str | None = None
    error_type: str | None = None
    failed_metrics: list[str] = field(default_factory=list)

    @classmethod
    def cancelled(cls, trigger: Trigger, started_at: datetime, finished_at: datetime) -> "CycleResult":
        return cls(
            trigger=trigger,
            status=CycleStatus.CANCELLED,
            started_at=started_at,
            finished_at=finished_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "key": self.key,
            "error": self.error,
            "error_type": self.error_type,
            "failed_metrics": list(self.failed_metrics),
        }


class SyncPipeline:
    """Run upload cycles.  Holds the last result and the current cycle state."""

    def __init__(
        self,
        *,
        auth_gate: AuthGate,
        credentials: CredentialProvider,
        store: HealthStore,
        read_identifiers: list[str],
        aggregator: Aggregator,
        formatter: SnapshotFormatter,
        uploader: UploadClient,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._gate = auth_gate
        self._credentials = credentials
        self._store = store
        self._read_identifiers = list(read_identifiers)
        self._aggregator = aggregator
        self._formatter = formatter
        self._uploader = uploader
        self._clock = clock
        self._running = 0
        self.last_result: CycleResult | None = None

    @property
    def state(self) -> CycleState:
        return CycleState.RUNNING if self._running else CycleState.IDLE

    async def run_cycle(self, trigger: Trigger) -> CycleResult:
        """Run one cycle and return its result.

        Every error is captured in a FAILED result; anything outside the
        domain error tree is also logged with its traceback.  Cancellation is
        recorded as a CANCELLED result and then propagated to the caller.
        """
        started_at = self._clock()
        self._running += 1
        logger.info("Cycle started (trigger=%s)", trigger.value)
        try:
            result = await self._run(trigger, started_at)
        except asyncio.CancelledError:
            self.last_result = CycleResult.cancelled(trigger, started_at, self._clock())
            logger.warning("Cycle cancelled (trigger=%s)", trigger.value)
            raise
        except VitalSyncError as exc:
            result = CycleResult(
                trigger=trigger,
                status=CycleStatus.FAILED,
                started_at=started_at,
                finished_at=self._clock(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            logger.warning("Cycle failed (trigger=%s): %s: %s", trigger.value, type(exc).__name__, exc)
        except Exception as exc:
            result = CycleResult(
                trigger=trigger,
                status=CycleStatus.FAILED,
                started_at=started_at,
                finished_at=self._clock(),
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
            logger.exception("Cycle failed unexpectedly (trigger=%s)", trigger.value)
        finally:
            self._running -= 1

        self.last_result = result
        return result

    async def _run(self, trigger: Trigger, started_at: datetime) -> CycleResult:
        user_name = self._gate.user_name
        if not user_name or not user_name.strip():
            raise MissingUserName("no user name stored; set one before uploading")
        try:
            normalize_user_identity(user_name)
        except ValueError as exc:
            raise MissingUserName(f"user name {user_name!r} cannot be used as a storage key") from exc

        await self._gate.ensure_fresh()
        await self._credentials.get_credentials()

        if not await self._store.request_authorization(self._read_identifiers):
            raise HealthDataUnavailable("read authorization for health data was not granted")

        snapshot = await self._aggregator.collect(user_name)
        document = self._formatter.render(snapshot)
        key = await self._uploader.put(document)

        result = CycleResult(
            trigger=trigger,
            status=CycleStatus.COMPLETED,
            started_at=started_at,
            finished_at=self._clock(),
            key=key,
            failed_metrics=[kind.value for kind in snapshot.failed_metrics],
        )
        logger.info("Cycle completed (trigger=%s) key=%s", trigger.value, key)
        return result
