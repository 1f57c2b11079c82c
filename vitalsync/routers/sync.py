"""Manual upload trigger and scheduler status."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from vitalsync import errors
from vitalsync.dependencies import Service
from vitalsync.models.sync import CycleResultResponse, SyncStatusResponse
from vitalsync.sync.pipeline import CycleResult, CycleStatus

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger("vitalsync.routers.sync")

# Failures the host can fix (sign in, set a name, grant access)
_PRECONDITION_ERRORS = (errors.AuthError, errors.MissingUserName, errors.HealthDataUnavailable)


def status_code_for(result: CycleResult) -> int:
    """HTTP status for a finished manual cycle."""
    if result.status is CycleStatus.COMPLETED:
        return 200
    if result.status is CycleStatus.CANCELLED:
        return 409
    error_cls = getattr(errors, result.error_type or "", None)
    if isinstance(error_cls, type) and issubclass(error_cls, _PRECONDITION_ERRORS):
        return 409
    if isinstance(error_cls, type) and issubclass(error_cls, errors.UploadError):
        return 502
    return 500


@router.post("", response_model=CycleResultResponse)
async def trigger_sync(service: Service) -> Any:
    """Run one upload cycle now (or join the one already running)."""
    result = await service.trigger_manual()
    status_code = status_code_for(result)
    if status_code != 200:
        raise HTTPException(status_code=status_code, detail=result.to_dict())
    return result.to_dict()


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(service: Service) -> Any:
    return service.status()
