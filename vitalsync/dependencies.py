"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from vitalsync.service import VitalSyncService


async def get_service(request: Request) -> VitalSyncService:
    """Return the VitalSyncService built by the app lifespan."""
    service: VitalSyncService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return service


# Annotated shortcuts for route signatures
Service = Annotated[VitalSyncService, Depends(get_service)]
