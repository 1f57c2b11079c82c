"""Trigger model for upload cycles.

Four triggers funnel into SyncPipeline.run_cycle():

    Manual            — ``trigger_manual()``; runs immediately.
    Foreground timer  — daily at ``daily_time`` (17:00 local by default),
                        re-armed every time the host comes to the foreground.
    App background    — ``on_background()``; one cycle when the host leaves
                        the foreground, plus a request for the next window.
    Background window — ``on_background_window(duration)``; one cycle bounded
                        by the window the host was granted.  On expiry the
                        cycle is cancelled.  A new window is always requested
                        afterwards.

Manual and timer cycles are single-flight per trigger: a second request
while one is running awaits the running cycle and gets its result.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable

from vitalsync.sync.pipeline import CycleResult, CycleStatus, SyncPipeline, Trigger

logger = logging.getLogger("vitalsync.sync.scheduler")

DEFAULT_DAILY_TIME = time(17, 0)
DEFAULT_BACKGROUND_INTERVAL = timedelta(hours=24)

WindowRequester = Callable[[datetime], Awaitable[None]]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def next_occurrence(daily_time: time, now: datetime) -> datetime:
    """Return the next time ``daily_time`` occurs at or after ``now``.

    A time already passed today rolls over to tomorrow.
    """
    candidate = now.replace(
        hour=daily_time.hour,
        minute=daily_time.minute,
        second=daily_time.second,
        microsecond=0,
    )
    if candidate < now:
        candidate += timedelta(days=1)
    return candidate


class Scheduler:
    """Owns the timers and the background window for one SyncPipeline.

    Usage::

        scheduler = Scheduler(pipeline, request_background_window=host.request_background_window)
        scheduler.arm_foreground_timer()
        result = await scheduler.trigger_manual()
    """

    def __init__(
        self,
        pipeline: SyncPipeline,
        *,
        daily_time: time = DEFAULT_DAILY_TIME,
        background_interval: timedelta = DEFAULT_BACKGROUND_INTERVAL,
        request_background_window: WindowRequester | None = None,
        clock: Callable[[], datetime] = _local_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            pipeline:                  Runs the cycles.
            daily_time:                Local wall-clock time of the foreground upload.
            background_interval:       Earliest-begin offset for window requests (≤ 24 h).
            request_background_window: Async callback(earliest_begin) to the host.
            clock:                     Returns the current timezone-aware local time.
            sleep:                     Awaitable sleep used by the timer loop.
        """
        if background_interval > DEFAULT_BACKGROUND_INTERVAL:
            raise ValueError("background_interval must not exceed 24 hours")
        self._pipeline = pipeline
        self._daily_time = daily_time
        self._background_interval = background_interval
        self._request_window = request_background_window
        self._clock = clock
        self._sleep = sleep

        self._inflight: dict[Trigger, asyncio.Task[CycleResult]] = {}
        self._timer_task: asyncio.Task[None] | None = None
        self._window_task: asyncio.Task[CycleResult] | None = None
        self._window_expired = False
        self.next_fire_at: datetime | None = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def trigger_manual(self) -> CycleResult:
        """Run a cycle now, or join the manual cycle already running."""
        return await self._run_single_flight(Trigger.MANUAL)

    def arm_foreground_timer(self) -> None:
        """(Re)start the daily timer.  Any previous timer is cancelled first."""
        self.disarm_foreground_timer()
        self._timer_task = asyncio.create_task(self._timer_loop(), name="vitalsync-daily-timer")
        logger.info("Foreground timer armed for %s daily", self._daily_time.strftime("%H:%M"))

    def disarm_foreground_timer(self) -> None:
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None
        self.next_fire_at = None

    @property
    def timer_armed(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def on_foreground(self) -> None:
        self.arm_foreground_timer()

    async def on_background(self) -> CycleResult:
        """Host left the foreground: stop the timer, request a window, upload once."""
        self.disarm_foreground_timer()
        await self._request_next_window()
        return await self._run_single_flight(Trigger.APP_BACKGROUND)

    async def on_background_window(self, duration: float) -> CycleResult:
        """Run one cycle inside a background window of ``duration`` seconds.

        The cycle is cancelled if the window expires first, either by the
        duration elapsing or by ``expire_background_window()``.  A fresh
        window is requested whatever the outcome.

        CANCELLED does not mean nothing was written: a put already handed to
        the storage client's worker thread runs to completion, so the object
        may be committed in full even though the cycle reports CANCELLED.
        """
        if self._window_task is not None and not self._window_task.done():
            logger.warning("New background window granted while one is active; expiring the old one")
            self.expire_background_window()

        loop = asyncio.get_running_loop()
        task = asyncio.create_task(
            self._pipeline.run_cycle(Trigger.BACKGROUND_WINDOW), name="vitalsync-background-window"
        )
        self._window_task = task
        self._window_expired = False
        handle = loop.call_later(duration, self.expire_background_window)
        started_at = self._clock()
        try:
            return await task
        except asyncio.CancelledError:
            if not (self._window_expired and task.cancelled()):
                raise
            result = self._pipeline.last_result
            if result is None or result.status is not CycleStatus.CANCELLED:
                result = CycleResult.cancelled(Trigger.BACKGROUND_WINDOW, started_at, self._clock())
            logger.warning("Background window expired before the cycle finished")
            return result
        finally:
            handle.cancel()
            if self._window_task is task:
                self._window_task = None
            await self._request_next_window()

    def expire_background_window(self) -> bool:
        """Host expiration signal.  Returns True if a running cycle was cancelled."""
        task = self._window_task
        if task is None or task.done():
            return False
        self._window_expired = True
        task.cancel()
        logger.info("Background window expired; cancelling in-flight cycle")
        return True

    @property
    def window_active(self) -> bool:
        return self._window_task is not None and not self._window_task.done()

    async def shutdown(self) -> None:
        """Cancel the timer, the window cycle and any in-flight cycles."""
        self.disarm_foreground_timer()
        tasks = [t for t in (self._window_task, *self._inflight.values()) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        self._window_task = None
        logger.info("Scheduler shut down")

    def status(self) -> dict[str, Any]:
        last = self._pipeline.last_result
        return {
            "cycle_state": self._pipeline.state.value,
            "timer_armed": self.timer_armed,
            "next_fire_at": self.next_fire_at.isoformat() if self.next_fire_at else None,
            "background_window_active": self.window_active,
            "last_result": last.to_dict() if last else None,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_single_flight(self, trigger: Trigger) -> CycleResult:
        task = self._inflight.get(trigger)
        if task is None or task.done():
            task = asyncio.create_task(self._pipeline.run_cycle(trigger))
            self._inflight[trigger] = task
            task.add_done_callback(lambda t, key=trigger: self._forget(key, t))
        else:
            logger.info("Joining in-flight %s cycle", trigger.value)
        # Callers that go away do not cancel the shared cycle
        return await asyncio.shield(task)

    def _forget(self, trigger: Trigger, task: asyncio.Task[CycleResult]) -> None:
        if self._inflight.get(trigger) is task:
            del self._inflight[trigger]

    async def _timer_loop(self) -> None:
        last_fire: datetime | None = None
        while True:
            now = self._clock()
            reference = now if last_fire is None else max(now, last_fire + timedelta(seconds=1))
            fire_at = next_occurrence(self._daily_time, reference)
            self.next_fire_at = fire_at
            await self._sleep(max((fire_at - now).total_seconds(), 0.0))
            last_fire = fire_at
            try:
                await self._run_single_flight(Trigger.FOREGROUND_TIMER)
            except Exception:
                logger.exception("Foreground timer cycle raised unexpectedly")

    async def _request_next_window(self) -> None:
        earliest_begin = self._clock() + self._background_interval
        if self._request_window is None:
            logger.info("No host window requester; next window would begin at %s", earliest_begin)
            return
        await self._request_window(earliest_begin)
