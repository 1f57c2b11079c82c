"""Tests for the health data bridge client over a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from vitalsync.errors import HealthDataUnavailable, SourceUnavailable
from vitalsync.health.base import TimeWindow
from vitalsync.health.bridge import HealthBridgeClient
from vitalsync.tests.fakes import HEART_RATE, HEIGHT, SLEEP, STEP_COUNT, TEST_NOW, at

BASE_URL = "http://bridge.test"
WINDOW = TimeWindow(start=at(0), end=TEST_NOW)


def _bridge(handler) -> tuple[HealthBridgeClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return HealthBridgeClient(BASE_URL, http_client=client), seen


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_granted(self) -> None:
        bridge, seen = _bridge(lambda r: httpx.Response(200, json={"granted": True}))
        assert await bridge.request_authorization([HEART_RATE, SLEEP]) is True
        assert json.loads(seen[0].content) == {"read": [HEART_RATE, SLEEP]}

    @pytest.mark.asyncio
    async def test_denied(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(200, json={"granted": False}))
        assert await bridge.request_authorization([HEART_RATE]) is False

    @pytest.mark.asyncio
    async def test_unreadable_response(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(200, text="<html>bridge starting</html>"))
        with pytest.raises(HealthDataUnavailable):
            await bridge.request_authorization([HEART_RATE])

    @pytest.mark.asyncio
    async def test_unreachable_bridge(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        bridge, _ = _bridge(refuse)
        with pytest.raises(HealthDataUnavailable):
            await bridge.request_authorization([HEART_RATE])


class TestQueries:
    @pytest.mark.asyncio
    async def test_quantity_samples_parsed(self) -> None:
        payload = {
            "samples": [
                {"startDate": "2026-10-19T09:00:00+10:00", "endDate": "2026-10-19T09:01:00+10:00", "value": 72},
                {"startDate": "garbage", "endDate": "2026-10-19T09:01:00+10:00", "value": 99},
            ]
        }
        bridge, seen = _bridge(lambda r: httpx.Response(200, json=payload))

        samples = await bridge.query_quantity(HEART_RATE, "count/min", WINDOW, ascending=True)

        assert len(samples) == 1
        assert samples[0].value == 72.0
        assert samples[0].start == at(9)
        assert seen[0].url.path == f"/quantity/{HEART_RATE}"
        assert seen[0].url.params["sort"] == "asc"
        assert seen[0].url.params["unit"] == "count/min"

    @pytest.mark.asyncio
    async def test_cumulative_sum(self) -> None:
        bridge, seen = _bridge(lambda r: httpx.Response(200, json={"sum": 12345}))
        assert await bridge.query_cumulative_sum(STEP_COUNT, "count", WINDOW) == 12345.0
        assert seen[0].url.params["option"] == "cumulativeSum"

    @pytest.mark.asyncio
    async def test_cumulative_sum_missing(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(200, json={"sum": None}))
        assert await bridge.query_cumulative_sum(STEP_COUNT, "count", WINDOW) is None

    @pytest.mark.asyncio
    async def test_category_samples_keep_source(self) -> None:
        payload = {
            "samples": [
                {
                    "startDate": "2026-10-18T23:00:00+10:00",
                    "endDate": "2026-10-18T23:30:00+10:00",
                    "value": "asleepCore",
                    "sourceName": "Jane's Apple Watch",
                }
            ]
        }
        bridge, _ = _bridge(lambda r: httpx.Response(200, json=payload))
        samples = await bridge.query_category(SLEEP, WINDOW)
        assert samples[0].category == "asleepCore"
        assert samples[0].source_name == "Jane's Apple Watch"

    @pytest.mark.asyncio
    async def test_workouts_duration_in_minutes(self) -> None:
        payload = {
            "workouts": [
                {
                    "activityType": "running",
                    "startDate": "2026-10-19T07:00:00+10:00",
                    "endDate": "2026-10-19T07:30:00+10:00",
                    "duration": 1800,
                    "totalEnergyBurned": 250.5,
                }
            ]
        }
        bridge, _ = _bridge(lambda r: httpx.Response(200, json=payload))
        workouts = await bridge.query_workouts(WINDOW)
        assert workouts[0].duration_minutes == 30.0
        assert workouts[0].total_energy_kcal == 250.5
        assert workouts[0].total_distance_m == 0.0

    @pytest.mark.asyncio
    async def test_latest_sample(self) -> None:
        payload = {
            "sample": {"startDate": "2026-10-01T08:00:00+10:00", "endDate": "2026-10-01T08:00:00+10:00", "value": 1.75}
        }
        bridge, seen = _bridge(lambda r: httpx.Response(200, json=payload))
        latest = await bridge.query_latest(HEIGHT, "m")
        assert latest is not None and latest.value == 1.75
        assert seen[0].url.path == f"/quantity/{HEIGHT}/latest"

    @pytest.mark.asyncio
    async def test_latest_none(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(200, json={"sample": None}))
        assert await bridge.query_latest(HEIGHT, "m") is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_forbidden_is_unavailable(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(403))
        with pytest.raises(SourceUnavailable) as exc_info:
            await bridge.query_quantity(HEART_RATE, "count/min", WINDOW)
        assert exc_info.value.reason == "read permission not granted"
        assert exc_info.value.metric == HEART_RATE

    @pytest.mark.asyncio
    async def test_not_found_is_unavailable(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(404))
        with pytest.raises(SourceUnavailable, match="not supported"):
            await bridge.query_workouts(WINDOW)

    @pytest.mark.asyncio
    async def test_server_error_propagates(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            await bridge.query_category(SLEEP, WINDOW)

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self) -> None:
        bridge, _ = _bridge(lambda r: httpx.Response(200, json={}))
        await bridge.aclose()
        assert not bridge._http_client.is_closed
