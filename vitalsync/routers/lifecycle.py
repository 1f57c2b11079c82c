"""Host lifecycle events: foreground, background and background windows."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from vitalsync.dependencies import Service
from vitalsync.models.sync import (
    BackgroundWindowRequest,
    CycleResultResponse,
    ExpireResponse,
    ForegroundResponse,
)

router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


@router.post("/foreground", response_model=ForegroundResponse)
async def foreground(service: Service) -> Any:
    return await service.on_foreground()


@router.post("/background", response_model=CycleResultResponse)
async def background(service: Service) -> Any:
    """Host is leaving the foreground: upload once and request a window."""
    result = await service.on_background()
    return result.to_dict()


@router.post("/background-window", response_model=CycleResultResponse)
async def background_window(service: Service, body: BackgroundWindowRequest) -> Any:
    """Host was granted a background window of ``duration_seconds``."""
    result = await service.on_background_window(body.duration_seconds)
    return result.to_dict()


@router.post("/background-window/expire", response_model=ExpireResponse)
async def expire_background_window(service: Service) -> Any:
    return {"cancelled": service.expire_background_window()}


@router.post("/health-data-changed", status_code=204)
async def health_data_changed(service: Service) -> None:
    """Host observed new samples in the health store."""
    service.health_store.notify_change()
