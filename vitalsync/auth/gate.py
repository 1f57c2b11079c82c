"""AuthGate — the state machine every privileged operation passes through.

States::

    SIGNED_OUT ──begin_sign_in──▶ AUTHENTICATING ──complete──▶ AUTHENTICATED
         ▲                              │                        │    ▲
         └──────────fail────────────────┘              expiring  │    │ refreshed
         ▲                                                        ▼    │
         └────────────────hard failure────────────────────── REFRESHING

``ensure_fresh()`` is called on entry to every privileged operation.  A
token with less than the freshness threshold left is refreshed first; only
one refresh runs at a time and concurrent callers wait for it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import httpx

from vitalsync.auth.sign_in import SignInFlow
from vitalsync.auth.store import StateStore
from vitalsync.auth.token import FRESHNESS_THRESHOLD_SECONDS, IdentityToken
from vitalsync.errors import ReauthRequired, SignInFailed

logger = logging.getLogger("vitalsync.auth.gate")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuthState(str, Enum):
    SIGNED_OUT = "signed_out"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class AuthGate:
    """Holds the identity token and gates privileged operations on it.

    The token and display name are persisted in the StateStore, so a
    restarted process comes back AUTHENTICATED when a token was stored.
    """

    def __init__(
        self,
        store: StateStore,
        sign_in: SignInFlow | None = None,
        *,
        freshness_seconds: int = FRESHNESS_THRESHOLD_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the gate from persisted state.

        Args:
            store:             Persisted session store.
            sign_in:           Non-interactive refresh flow (None = host must sign in again).
            freshness_seconds: Refresh tokens with less validity than this.
            clock:             Returns the current timezone-aware time.
        """
        self._store = store
        self._sign_in = sign_in
        self._freshness_seconds = freshness_seconds
        self._clock = clock
        self._refresh_task: asyncio.Task[str] | None = None

        session = store.load()
        self._token: IdentityToken | None = (
            IdentityToken.parse(session.identity_token) if session.identity_token else None
        )
        self._refresh_token = session.refresh_token
        self._user_name = session.user_name
        self._state = AuthState.AUTHENTICATED if self._token else AuthState.SIGNED_OUT
        self.refresh_count = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state in (AuthState.AUTHENTICATED, AuthState.REFRESHING)

    @property
    def user_name(self) -> str | None:
        return self._user_name

    @property
    def token(self) -> IdentityToken | None:
        return self._token

    def needs_refresh(self) -> bool:
        """True when the current token is missing or inside the freshness threshold."""
        if self._token is None:
            return True
        return self._token.is_expiring_soon(self._clock(), self._freshness_seconds)

    # ------------------------------------------------------------------
    # Transitions driven by the host's sign-in UI
    # ------------------------------------------------------------------

    def begin_sign_in(self) -> None:
        self._state = AuthState.AUTHENTICATING
        logger.info("Sign-in started")

    def complete_sign_in(
        self,
        identity_token: str,
        refresh_token: str | None = None,
        user_name: str | None = None,
    ) -> IdentityToken:
        """Accept a freshly issued identity token and persist it."""
        token = IdentityToken.parse(identity_token)
        updates: dict[str, str | None] = {"identity_token": identity_token}
        if refresh_token is not None:
            updates["refresh_token"] = refresh_token
            self._refresh_token = refresh_token
        if user_name is not None:
            updates["user_name"] = user_name
            self._user_name = user_name
        self._store.update(**updates)
        self._token = token
        self._state = AuthState.AUTHENTICATED
        logger.info("Signed in; token expires at %s", token.expires_at)
        return token

    def fail_sign_in(self, reason: str) -> None:
        logger.warning("Sign-in failed: %s", reason)
        self._state = AuthState.SIGNED_OUT

    def sign_out(self) -> None:
        """Discard the token.  The display name is kept."""
        self._store.clear()
        self._token = None
        self._refresh_token = None
        self._state = AuthState.SIGNED_OUT
        logger.info("Signed out")

    def set_user_name(self, user_name: str) -> None:
        self._store.update(user_name=user_name)
        self._user_name = user_name

    # ------------------------------------------------------------------
    # Privileged-operation entry check
    # ------------------------------------------------------------------

    async def ensure_fresh(self) -> str:
        """Return a token with at least the freshness threshold of validity left.

        Refreshes first when needed.  Concurrent callers share one refresh.

        Raises:
            ReauthRequired: Not signed in, or the refresh failed.
        """
        if self._token is None or self._state in (AuthState.SIGNED_OUT, AuthState.AUTHENTICATING):
            raise ReauthRequired("not signed in")
        if not self.needs_refresh():
            return self._token.raw

        # Concurrent callers await the same refresh and share its outcome
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(), name="vitalsync-token-refresh")
            self._refresh_task = task
        else:
            logger.debug("Joining in-flight identity token refresh")
        return await asyncio.shield(task)

    async def _refresh(self) -> str:
        if self._sign_in is None or not self._refresh_token:
            self._state = AuthState.SIGNED_OUT
            logger.warning("Identity token expiring and no refresh grant available")
            raise ReauthRequired("identity token expiring; interactive sign-in required")

        self._state = AuthState.REFRESHING
        logger.info("Identity token expiring soon, refreshing")
        try:
            result = await self._sign_in.refresh(self._refresh_token)
        except SignInFailed as exc:
            self._state = AuthState.SIGNED_OUT
            raise ReauthRequired(str(exc)) from exc
        except httpx.HTTPError as exc:
            # Provider unreachable: keep the session, fail this operation
            self._state = AuthState.AUTHENTICATED
            logger.warning("Identity token refresh failed: %s", exc)
            raise ReauthRequired(f"identity token refresh failed: {exc}") from exc

        token = IdentityToken.parse(result.identity_token)
        if token.is_expiring_soon(self._clock(), self._freshness_seconds):
            self._state = AuthState.SIGNED_OUT
            raise ReauthRequired("refreshed identity token is already expiring")

        self._store.update(
            identity_token=result.identity_token,
            refresh_token=result.refresh_token or self._refresh_token,
        )
        self._token = token
        self._refresh_token = result.refresh_token or self._refresh_token
        self._state = AuthState.AUTHENTICATED
        self.refresh_count += 1
        logger.info("Identity token refreshed; expires at %s", token.expires_at)
        return token.raw
