"""Sign-in flow collaborators.

Interactive sign-in happens in the host application; it hands the issued
identity token to the agent.  Non-interactive re-authentication uses the
provider's refresh grant, implemented here over OAuth2 / OpenID Connect.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from vitalsync.errors import SignInFailed

logger = logging.getLogger("vitalsync.auth.sign_in")


@dataclass(frozen=True)
class SignInResult:
    """Tokens issued by a successful sign-in or refresh.

    Attributes:
        identity_token: Signed identity token (JWT).
        refresh_token:  Refresh token to store for next time, if issued.
    """

    identity_token: str
    refresh_token: str | None = None


class SignInFlow(ABC):
    """Obtains a new identity token without user interaction."""

    @abstractmethod
    async def refresh(self, refresh_token: str) -> SignInResult:
        """Exchange ``refresh_token`` for a new identity token.

        Raises:
            SignInFailed:        The provider rejected the refresh token.
            httpx.TransportError: The provider could not be reached.
        """


class OIDCRefreshSignIn(SignInFlow):
    """Refresh-token grant against an OpenID Connect token endpoint.

    Works with Sign in with Apple (``https://appleid.apple.com/auth/token``)
    and any provider that returns an ``id_token`` from the refresh grant.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the refresh flow.

        Args:
            token_url:     Provider token endpoint.
            client_id:     OAuth2 client ID.
            client_secret: OAuth2 client secret (for Apple, a signed JWT).
            http_client:   Optional pre-configured httpx client (for testing).
        """
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._http_client = http_client

    async def refresh(self, refresh_token: str) -> SignInResult:
        logger.info("Refreshing identity token via %s", self._token_url)
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }

        if self._http_client:
            response = await self._http_client.post(self._token_url, data=form)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self._token_url, data=form)

        if response.status_code in (400, 401):
            try:
                detail = response.json().get("error", "invalid_grant")
            except (ValueError, AttributeError):
                detail = response.text[:200]
            raise SignInFailed(f"refresh rejected by identity provider: {detail}")
        response.raise_for_status()
        data = response.json()

        id_token = data.get("id_token")
        if not id_token:
            raise SignInFailed("identity provider response did not include an id_token")
        return SignInResult(
            identity_token=id_token,
            refresh_token=data.get("refresh_token", refresh_token),
        )
