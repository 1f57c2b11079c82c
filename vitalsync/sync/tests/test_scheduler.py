"""Tests for the Scheduler trigger model."""

from __future__ import annotations

import asyncio
from datetime import time, timedelta
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from vitalsync.sync.pipeline import CycleStatus, Trigger
from vitalsync.sync.scheduler import Scheduler, next_occurrence
from vitalsync.tests.fakes import (
    TEST_NOW,
    FakeHealthStore,
    RecordingUploader,
    at,
    make_pipeline,
)


class TestNextOccurrence:
    def test_later_today(self) -> None:
        assert next_occurrence(time(17, 0), at(9, 30)) == at(17)

    def test_already_passed_rolls_to_tomorrow(self) -> None:
        assert next_occurrence(time(17, 0), at(17, 1)) == at(17, day=20)

    def test_exactly_now_fires_now(self) -> None:
        assert next_occurrence(time(17, 0), at(17)) == at(17)

    def test_keeps_timezone(self) -> None:
        assert next_occurrence(time(17, 0), at(3)).tzinfo == at(3).tzinfo


class TestManualTrigger:
    @pytest.mark.asyncio
    async def test_runs_manual_cycle(self, store: FakeHealthStore, uploader: RecordingUploader) -> None:
        scheduler = Scheduler(make_pipeline(store, uploader), clock=lambda: TEST_NOW)
        result = await scheduler.trigger_manual()
        assert result.trigger is Trigger.MANUAL
        assert result.status is CycleStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_cycle(self, store: FakeHealthStore) -> None:
        uploader = RecordingUploader(blocked=True)
        scheduler = Scheduler(make_pipeline(store, uploader), clock=lambda: TEST_NOW)

        first = asyncio.create_task(scheduler.trigger_manual())
        await uploader.started.wait()
        second = asyncio.create_task(scheduler.trigger_manual())
        await asyncio.sleep(0)
        uploader.release()
        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert len(uploader.documents) == 1


class TestBackgroundWindow:
    @pytest.mark.asyncio
    async def test_expiry_cancels_cycle(self, store: FakeHealthStore) -> None:
        uploader = RecordingUploader(blocked=True)
        requester = AsyncMock()
        scheduler = Scheduler(
            make_pipeline(store, uploader),
            request_background_window=requester,
            clock=lambda: TEST_NOW,
        )

        result = await scheduler.on_background_window(0.05)

        assert result.status is CycleStatus.CANCELLED
        assert result.trigger is Trigger.BACKGROUND_WINDOW
        assert uploader.documents == []
        requester.assert_awaited_once_with(TEST_NOW + timedelta(hours=24))
        assert not scheduler.window_active

    @pytest.mark.asyncio
    async def test_explicit_expire(self, store: FakeHealthStore) -> None:
        uploader = RecordingUploader(blocked=True)
        scheduler = Scheduler(make_pipeline(store, uploader), clock=lambda: TEST_NOW)

        task = asyncio.create_task(scheduler.on_background_window(60))
        await uploader.started.wait()
        assert scheduler.window_active
        assert scheduler.expire_background_window() is True

        result = await task
        assert result.status is CycleStatus.CANCELLED
        assert scheduler.expire_background_window() is False

    @pytest.mark.asyncio
    async def test_completed_window_requests_next(
        self, store: FakeHealthStore, uploader: RecordingUploader
    ) -> None:
        requester = AsyncMock()
        scheduler = Scheduler(
            make_pipeline(store, uploader),
            background_interval=timedelta(hours=6),
            request_background_window=requester,
            clock=lambda: TEST_NOW,
        )

        result = await scheduler.on_background_window(30)

        assert result.status is CycleStatus.COMPLETED
        assert len(uploader.documents) == 1
        requester.assert_awaited_once_with(TEST_NOW + timedelta(hours=6))

    def test_interval_over_a_day_rejected(self) -> None:
        with pytest.raises(ValueError):
            Scheduler(MagicMock(), background_interval=timedelta(hours=25))


class TestAppBackground:
    @pytest.mark.asyncio
    async def test_disarms_requests_and_uploads(
        self, store: FakeHealthStore, uploader: RecordingUploader
    ) -> None:
        requester = AsyncMock()
        scheduler = Scheduler(
            make_pipeline(store, uploader),
            request_background_window=requester,
            clock=lambda: at(16),
        )
        scheduler.arm_foreground_timer()
        assert scheduler.timer_armed

        result = await scheduler.on_background()

        assert not scheduler.timer_armed
        requester.assert_awaited_once_with(at(16, day=20))
        assert result.trigger is Trigger.APP_BACKGROUND
        assert result.status is CycleStatus.COMPLETED


class TestForegroundTimer:
    @pytest.mark.asyncio
    async def test_fires_daily_and_rearms(self) -> None:
        pipeline = MagicMock()
        pipeline.run_cycle = AsyncMock()
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])
        scheduler = Scheduler(pipeline, clock=lambda: at(16), sleep=sleep)

        scheduler.arm_foreground_timer()
        task = scheduler._timer_task
        with pytest.raises(asyncio.CancelledError):
            await task

        assert sleep.await_args_list == [call(3600.0), call(90000.0)]
        pipeline.run_cycle.assert_awaited_once_with(Trigger.FOREGROUND_TIMER)
        assert scheduler.next_fire_at == at(17, day=20)

    @pytest.mark.asyncio
    async def test_rearm_cancels_previous_timer(self) -> None:
        scheduler = Scheduler(MagicMock(), clock=lambda: at(16))
        scheduler.arm_foreground_timer()
        first = scheduler._timer_task

        scheduler.on_foreground()

        with pytest.raises(asyncio.CancelledError):
            await first
        assert scheduler._timer_task is not first
        assert scheduler.timer_armed
        await scheduler.shutdown()
        assert not scheduler.timer_armed


class TestStatus:
    def test_idle_status(self, store: FakeHealthStore, uploader: RecordingUploader) -> None:
        scheduler = Scheduler(make_pipeline(store, uploader), clock=lambda: TEST_NOW)
        status = scheduler.status()

        assert status == {
            "cycle_state": "idle",
            "timer_armed": False,
            "next_fire_at": None,
            "background_window_active": False,
            "last_result": None,
        }

    @pytest.mark.asyncio
    async def test_last_result_reported(
        self, store: FakeHealthStore, uploader: RecordingUploader
    ) -> None:
        scheduler = Scheduler(make_pipeline(store, uploader), clock=lambda: TEST_NOW)
        await scheduler.trigger_manual()
        last = scheduler.status()["last_result"]
        assert last["status"] == "completed"
        assert last["trigger"] == "manual"
