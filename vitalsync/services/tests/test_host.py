"""Tests for background-window requests to the host application."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import httpx
import pytest

from vitalsync.services.host import HostNotifier
from vitalsync.tests.fakes import TEST_NOW

CALLBACK_URL = "http://host.test/background-window"
EARLIEST = TEST_NOW + timedelta(hours=24)


class TestHostNotifier:
    @pytest.mark.asyncio
    async def test_without_callback_only_records(self) -> None:
        notifier = HostNotifier()
        await notifier.request_background_window(EARLIEST)
        assert notifier.requested == [EARLIEST]

    @pytest.mark.asyncio
    async def test_posts_earliest_begin(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = HostNotifier(CALLBACK_URL, http_client=client)

        await notifier.request_background_window(EARLIEST)

        assert str(seen[0].url) == CALLBACK_URL
        payload = json.loads(seen[0].content)
        assert datetime.fromisoformat(payload["earliest_begin"]) == EARLIEST

    @pytest.mark.asyncio
    async def test_host_error_not_raised(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        notifier = HostNotifier(CALLBACK_URL, http_client=client)

        await notifier.request_background_window(EARLIEST)

        assert notifier.requested == [EARLIEST]
