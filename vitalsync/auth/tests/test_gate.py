"""Tests for the AuthGate state machine and single-flight refresh."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from vitalsync.auth.gate import AuthGate, AuthState
from vitalsync.auth.sign_in import SignInResult
from vitalsync.auth.store import StateStore
from vitalsync.errors import ReauthRequired, SignInFailed
from vitalsync.tests.fakes import make_token


def _signed_in_gate(
    state_store: StateStore, token: str, sign_in: AsyncMock | None = None, refresh_token: str | None = "ref-1"
) -> AuthGate:
    gate = AuthGate(state_store, sign_in)
    gate.begin_sign_in()
    gate.complete_sign_in(token, refresh_token, "Jane Doe")
    return gate


def _sign_in_returning(token: str, delay: float = 0.0) -> AsyncMock:
    async def refresh(refresh_token: str) -> SignInResult:
        await asyncio.sleep(delay)
        return SignInResult(identity_token=token, refresh_token="ref-2")

    flow = AsyncMock()
    flow.refresh = AsyncMock(side_effect=refresh)
    return flow


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_starts_signed_out(self, state_store: StateStore) -> None:
        assert AuthGate(state_store).state is AuthState.SIGNED_OUT

    def test_sign_in_flow(self, state_store: StateStore, fresh_token: str) -> None:
        gate = AuthGate(state_store)
        gate.begin_sign_in()
        assert gate.state is AuthState.AUTHENTICATING
        gate.complete_sign_in(fresh_token, "ref-1", "Jane Doe")
        assert gate.state is AuthState.AUTHENTICATED
        assert gate.user_name == "Jane Doe"

    def test_failed_sign_in(self, state_store: StateStore) -> None:
        gate = AuthGate(state_store)
        gate.begin_sign_in()
        gate.fail_sign_in("user cancelled")
        assert gate.state is AuthState.SIGNED_OUT

    def test_session_survives_restart(self, state_store: StateStore, fresh_token: str) -> None:
        _signed_in_gate(state_store, fresh_token)
        restored = AuthGate(state_store)
        assert restored.state is AuthState.AUTHENTICATED
        assert restored.user_name == "Jane Doe"
        assert restored.token is not None and restored.token.raw == fresh_token

    def test_sign_out_keeps_user_name(self, state_store: StateStore, fresh_token: str) -> None:
        gate = _signed_in_gate(state_store, fresh_token)
        gate.sign_out()
        assert gate.state is AuthState.SIGNED_OUT
        assert gate.token is None
        assert gate.user_name == "Jane Doe"
        assert AuthGate(state_store).state is AuthState.SIGNED_OUT

    def test_set_user_name_persisted(self, state_store: StateStore) -> None:
        AuthGate(state_store).set_user_name("John Roe")
        assert AuthGate(state_store).user_name == "John Roe"


# ---------------------------------------------------------------------------
# ensure_fresh
# ---------------------------------------------------------------------------


class TestEnsureFresh:
    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_refresh(
        self, state_store: StateStore, fresh_token: str
    ) -> None:
        flow = _sign_in_returning(make_token(7200))
        gate = _signed_in_gate(state_store, fresh_token, flow)
        assert await gate.ensure_fresh() == fresh_token
        flow.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signed_out_requires_reauth(self, state_store: StateStore) -> None:
        with pytest.raises(ReauthRequired):
            await AuthGate(state_store).ensure_fresh()

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        new_token = make_token(7200)
        flow = _sign_in_returning(new_token)
        gate = _signed_in_gate(state_store, expiring_token, flow)

        assert await gate.ensure_fresh() == new_token

        flow.refresh.assert_awaited_once_with("ref-1")
        assert gate.state is AuthState.AUTHENTICATED
        stored = state_store.load()
        assert stored.identity_token == new_token
        assert stored.refresh_token == "ref-2"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        new_token = make_token(7200)
        flow = _sign_in_returning(new_token, delay=0.05)
        gate = _signed_in_gate(state_store, expiring_token, flow)

        tokens = await asyncio.gather(*(gate.ensure_fresh() for _ in range(5)))

        assert tokens == [new_token] * 5
        assert flow.refresh.await_count == 1
        assert gate.refresh_count == 1

    @pytest.mark.asyncio
    async def test_rejected_refresh_signs_out(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        flow = AsyncMock()
        flow.refresh = AsyncMock(side_effect=SignInFailed("invalid_grant"))
        gate = _signed_in_gate(state_store, expiring_token, flow)

        with pytest.raises(ReauthRequired):
            await gate.ensure_fresh()
        assert gate.state is AuthState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_failed_refresh(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        async def reject(refresh_token: str) -> SignInResult:
            await asyncio.sleep(0.05)
            raise SignInFailed("invalid_grant")

        flow = AsyncMock()
        flow.refresh = AsyncMock(side_effect=reject)
        gate = _signed_in_gate(state_store, expiring_token, flow)

        results = await asyncio.gather(
            *(gate.ensure_fresh() for _ in range(5)), return_exceptions=True
        )

        assert all(isinstance(r, ReauthRequired) for r in results)
        assert flow.refresh.await_count == 1
        assert gate.state is AuthState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_unreachable_provider_keeps_session(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        flow = AsyncMock()
        flow.refresh = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        gate = _signed_in_gate(state_store, expiring_token, flow)

        with pytest.raises(ReauthRequired):
            await gate.ensure_fresh()
        assert gate.state is AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_no_refresh_token_requires_reauth(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        flow = _sign_in_returning(make_token(7200))
        gate = _signed_in_gate(state_store, expiring_token, flow, refresh_token=None)

        with pytest.raises(ReauthRequired):
            await gate.ensure_fresh()
        flow.refresh.assert_not_awaited()
        assert gate.state is AuthState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_no_sign_in_flow_requires_reauth(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        gate = _signed_in_gate(state_store, expiring_token, None)
        with pytest.raises(ReauthRequired):
            await gate.ensure_fresh()

    @pytest.mark.asyncio
    async def test_refreshed_token_still_expiring(
        self, state_store: StateStore, expiring_token: str
    ) -> None:
        flow = _sign_in_returning(make_token(300))
        gate = _signed_in_gate(state_store, expiring_token, flow)

        with pytest.raises(ReauthRequired, match="already expiring"):
            await gate.ensure_fresh()
        assert state_store.load().identity_token == expiring_token
