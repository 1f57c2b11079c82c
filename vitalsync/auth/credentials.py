"""Short-lived storage credentials from a Cognito identity pool.

The signed identity token is exchanged for temporary AWS credentials
(``GetId`` + ``GetCredentialsForIdentity``).  Credentials are cached until
shortly before they expire, re-derived whenever the identity token changes,
and dropped on ``invalidate()`` after storage rejects them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vitalsync.auth.gate import AuthGate
from vitalsync.config import Settings, get_settings
from vitalsync.errors import CredentialsUnavailable, ReauthRequired

logger = logging.getLogger("vitalsync.auth.credentials")

# Re-derive credentials this long before they expire
_EXPIRY_BUFFER_SECONDS = 300


@dataclass(frozen=True)
class StorageCredentials:
    """Temporary AWS credentials for the upload.

    Attributes:
        access_key_id:  AWS access key ID.
        secret_key:     AWS secret access key.
        session_token:  STS session token.
        expiration:     When the credentials stop working (UTC).
        identity_id:    Cognito identity the credentials belong to.
    """

    access_key_id: str
    secret_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expiration: datetime
    identity_id: str = ""

    def is_expiring(self, now: datetime, buffer_seconds: int = _EXPIRY_BUFFER_SECONDS) -> bool:
        return (self.expiration - now).total_seconds() < buffer_seconds


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CredentialProvider:
    """Derive and cache storage credentials from the AuthGate's identity token."""

    def __init__(
        self,
        auth_gate: AuthGate,
        settings: Settings | None = None,
        client: Any | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the provider.

        Args:
            auth_gate: Source of fresh identity tokens.
            settings:  Cognito pool / region / login provider.
            client:    Optional pre-built ``cognito-identity`` client (for testing).
            clock:     Returns the current timezone-aware time.
        """
        self._gate = auth_gate
        self._settings = settings or get_settings()
        self._client = client
        self._clock = clock
        self._lock = asyncio.Lock()
        self._cached: StorageCredentials | None = None
        self._cached_for: str | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("cognito-identity", region_name=self._settings.cognito_region)
        return self._client

    async def get_credentials(self) -> StorageCredentials:
        """Return valid credentials, refreshing the identity token first if needed.

        Raises:
            ReauthRequired:         Identity token missing/unrefreshable or rejected.
            CredentialsUnavailable: The credential exchange failed otherwise.
        """
        token = await self._gate.ensure_fresh()
        async with self._lock:
            cached = self._cached
            if (
                cached is not None
                and self._cached_for == token
                and not cached.is_expiring(self._clock())
            ):
                return cached
            credentials = await asyncio.to_thread(self._exchange, token)
            self._cached = credentials
            self._cached_for = token
            return credentials

    def invalidate(self) -> None:
        """Drop cached credentials so the next call derives new ones."""
        if self._cached is not None:
            logger.info("Invalidating cached storage credentials")
        self._cached = None
        self._cached_for = None

    def _exchange(self, token: str) -> StorageCredentials:
        s = self._settings
        if not s.cognito_identity_pool_id:
            raise CredentialsUnavailable("cognito_identity_pool_id is not configured")

        client = self._get_client()
        logins = {s.cognito_login_provider: token}
        try:
            identity_id = client.get_id(IdentityPoolId=s.cognito_identity_pool_id, Logins=logins)[
                "IdentityId"
            ]
            response = client.get_credentials_for_identity(IdentityId=identity_id, Logins=logins)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "NotAuthorizedException":
                raise ReauthRequired(f"identity token rejected: {exc}") from exc
            raise CredentialsUnavailable(f"credential exchange failed ({code}): {exc}") from exc
        except BotoCoreError as exc:
            raise CredentialsUnavailable(f"credential exchange failed: {exc}") from exc

        creds = response["Credentials"]
        expiration = creds["Expiration"]
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        logger.info("Obtained storage credentials for identity %s", identity_id)
        return StorageCredentials(
            access_key_id=creds["AccessKeyId"],
            secret_key=creds["SecretKey"],
            session_token=creds["SessionToken"],
            expiration=expiration,
            identity_id=identity_id,
        )
