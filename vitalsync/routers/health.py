"""Health check endpoint — public, always at /health."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from vitalsync.dependencies import Service

router = APIRouter(tags=["system"])
logger = logging.getLogger("vitalsync.routers.health")


@router.get("/health")
async def health_check(service: Service) -> dict:
    """Liveness probe. Returns 200 if the agent process is up.

    Also reports the auth state and the outcome of the last cycle.
    """
    settings = service.settings
    last = service.pipeline.last_result
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "auth_state": service.auth_gate.state.value,
        "last_cycle": last.status.value if last else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
