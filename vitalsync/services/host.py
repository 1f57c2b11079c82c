"""Outbound calls to the host application.

The host owns the OS background-task API; the agent only asks it to
schedule the next background window.  With no callback URL configured
the request is logged and dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

logger = logging.getLogger("vitalsync.services.host")


class HostNotifier:
    """POSTs background-window requests to the host's callback URL."""

    def __init__(
        self,
        callback_url: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._callback_url = callback_url
        self._http_client = http_client
        self._timeout = timeout
        self.requested: list[datetime] = []

    async def request_background_window(self, earliest_begin: datetime) -> None:
        """Ask the host to run a background window no earlier than ``earliest_begin``.

        Delivery failures are logged; the request is retried the next time a
        window is scheduled.
        """
        self.requested.append(earliest_begin)
        if not self._callback_url:
            logger.info("Background window requested for %s (no host callback configured)", earliest_begin.isoformat())
            return

        payload = {"earliest_begin": earliest_begin.isoformat()}
        try:
            if self._http_client:
                response = await self._http_client.post(self._callback_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._callback_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Could not request background window from host: %s", exc)
            return
        logger.info("Background window requested for %s", earliest_begin.isoformat())
