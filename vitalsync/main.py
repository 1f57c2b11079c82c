"""VitalSync agent — FastAPI application entry point.

The host application drives the agent over this control API.

Run locally:
    uvicorn vitalsync.main:app --port 8700
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from vitalsync.config import Settings, get_settings
from vitalsync.routers import health, lifecycle, session, sync
from vitalsync.service import VitalSyncService

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("vitalsync")


# ---------- App factory ----------

def create_app(
    settings: Settings | None = None,
    service: VitalSyncService | None = None,
) -> FastAPI:
    """Build the app.  ``service`` replaces the one built from settings (for testing)."""
    settings = settings or get_settings()
    logging.getLogger("vitalsync").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting VitalSync agent v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        app.state.service = service or VitalSyncService.from_settings(settings)
        await app.state.service.start()
        yield
        await app.state.service.stop()
        logger.info("VitalSync agent shut down")

    app = FastAPI(
        title="VitalSync Agent",
        description="Daily health-data snapshot collection and upload, driven by the host app.",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # ---------- Health check (outside the v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(lifecycle.router, prefix=v1_prefix)
    app.include_router(session.router, prefix=v1_prefix)

    return app


app = create_app()
