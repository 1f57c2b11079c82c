"""HTTP client for the device-local health data bridge.

The bridge is the small companion service on the device that exposes the
platform health store (HealthKit) over loopback HTTP.  It offers per-type
authorization, query-by-window and query-latest, all returning JSON.

Endpoints used:
    POST /authorization                      — request read access
    GET  /quantity/{identifier}              — quantity samples in a window
    GET  /quantity/{identifier}/latest       — most recent quantity sample
    GET  /statistics/{identifier}            — cumulative sum over a window
    GET  /category/{identifier}              — categorical samples (sleep)
    GET  /workouts                           — workouts in a window

A 403 means read permission was not granted and a 404 means the type is not
supported on this device; both surface as SourceUnavailable.
"""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from vitalsync.errors import HealthDataUnavailable, SourceUnavailable
from vitalsync.health.base import HealthStore, Sample, SleepSample, TimeWindow, Workout

logger = logging.getLogger("vitalsync.health.bridge")


def _parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, keeping its offset.  None if unparseable."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        logger.warning("Could not parse timestamp: %r", value)
        return None


def _safe_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


class HealthBridgeClient(HealthStore):
    """HealthStore backed by the loopback health data bridge."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
    ) -> None:
        """Initialize the bridge client.

        Args:
            base_url:    Bridge root URL, e.g. ``http://127.0.0.1:8765``.
            http_client: Optional pre-configured httpx client (for testing).
            timeout:     Per-request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # HealthStore interface
    # ------------------------------------------------------------------

    async def request_authorization(self, identifiers: list[str]) -> bool:
        try:
            response = await self._http_client.post(
                f"{self._base_url}/authorization", json={"read": identifiers}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise HealthDataUnavailable(f"health data bridge unreachable: {exc}") from exc
        try:
            granted = bool(response.json().get("granted", False))
        except (ValueError, AttributeError) as exc:
            raise HealthDataUnavailable(f"unreadable authorization response: {exc}") from exc
        if not granted:
            logger.warning("Health data read authorization was not granted")
        return granted

    async def query_quantity(
        self, identifier: str, unit: str, window: TimeWindow, ascending: bool = False
    ) -> list[Sample]:
        data = await self._get(
            identifier,
            f"/quantity/{identifier}",
            params={
                **self._window_params(window),
                "unit": unit,
                "sort": "asc" if ascending else "desc",
            },
        )
        return [s for s in (self._to_sample(r) for r in data.get("samples", [])) if s]

    async def query_cumulative_sum(
        self, identifier: str, unit: str, window: TimeWindow
    ) -> float | None:
        data = await self._get(
            identifier,
            f"/statistics/{identifier}",
            params={**self._window_params(window), "unit": unit, "option": "cumulativeSum"},
        )
        return _safe_float(data.get("sum"))

    async def query_category(self, identifier: str, window: TimeWindow) -> list[SleepSample]:
        data = await self._get(
            identifier, f"/category/{identifier}", params=self._window_params(window)
        )
        samples: list[SleepSample] = []
        for record in data.get("samples", []):
            start = _parse_timestamp(record.get("startDate"))
            end = _parse_timestamp(record.get("endDate"))
            if start is None or end is None:
                continue
            samples.append(
                SleepSample(
                    start=start,
                    end=end,
                    category=str(record.get("value", "")),
                    source_name=str(record.get("sourceName", "")),
                )
            )
        return samples

    async def query_workouts(self, window: TimeWindow) -> list[Workout]:
        data = await self._get("workouts", "/workouts", params=self._window_params(window))
        workouts: list[Workout] = []
        for record in data.get("workouts", []):
            start = _parse_timestamp(record.get("startDate"))
            end = _parse_timestamp(record.get("endDate"))
            if start is None or end is None:
                continue
            duration_s = _safe_float(record.get("duration")) or 0.0
            workouts.append(
                Workout(
                    activity_type=str(record.get("activityType", "")),
                    start=start,
                    end=end,
                    duration_minutes=duration_s / 60,
                    total_energy_kcal=_safe_float(record.get("totalEnergyBurned")) or 0.0,
                    total_distance_m=_safe_float(record.get("totalDistance")) or 0.0,
                )
            )
        return workouts

    async def query_latest(self, identifier: str, unit: str) -> Sample | None:
        data = await self._get(
            identifier, f"/quantity/{identifier}/latest", params={"unit": unit}
        )
        record = data.get("sample")
        if not record:
            return None
        return self._to_sample(record)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _window_params(window: TimeWindow) -> dict[str, str]:
        return {"start": window.start.isoformat(), "end": window.end.isoformat()}

    @staticmethod
    def _to_sample(record: dict) -> Sample | None:
        start = _parse_timestamp(record.get("startDate"))
        end = _parse_timestamp(record.get("endDate"))
        value = _safe_float(record.get("value"))
        if start is None or end is None or value is None:
            return None
        return Sample(start=start, end=end, value=value)

    async def _get(self, identifier: str, path: str, params: dict) -> dict:
        """Make a GET request to the bridge.

        Raises:
            SourceUnavailable:     On 403 (not authorized) or 404 (unsupported).
            httpx.HTTPStatusError: On any other non-2xx response.
        """
        response = await self._http_client.get(f"{self._base_url}{path}", params=params)
        if response.status_code == 403:
            raise SourceUnavailable(identifier, "read permission not granted")
        if response.status_code == 404:
            raise SourceUnavailable(identifier, "data type not supported")
        response.raise_for_status()
        return response.json()
