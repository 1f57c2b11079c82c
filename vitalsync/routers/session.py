"""Session hand-over from the host's sign-in UI."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from vitalsync.auth.token import IdentityToken
from vitalsync.dependencies import Service
from vitalsync.models.sync import SessionCreate, SessionResponse, UserNameUpdate
from vitalsync.service import VitalSyncService

router = APIRouter(prefix="/session", tags=["session"])
logger = logging.getLogger("vitalsync.routers.session")


def _session_view(service: VitalSyncService) -> dict[str, Any]:
    token = service.auth_gate.token
    return {
        "auth_state": service.auth_gate.state.value,
        "user_name": service.auth_gate.user_name,
        "expires_at": token.expires_at if token else None,
    }


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(service: Service, body: SessionCreate) -> Any:
    """Accept the identity token issued by the host's sign-in flow."""
    service.auth_gate.begin_sign_in()
    if IdentityToken.parse(body.identity_token).expires_at is None:
        service.auth_gate.fail_sign_in("identity token has no readable expiry")
        raise HTTPException(status_code=400, detail="Identity token has no readable expiry")
    service.complete_sign_in(body.identity_token, body.user_name, body.refresh_token)
    return _session_view(service)


@router.get("", response_model=SessionResponse)
async def read_session(service: Service) -> Any:
    return _session_view(service)


@router.delete("", status_code=204)
async def delete_session(service: Service) -> None:
    service.sign_out()


@router.put("/user-name", response_model=SessionResponse)
async def update_user_name(service: Service, body: UserNameUpdate) -> Any:
    service.set_user_name(body.user_name)
    return _session_view(service)
