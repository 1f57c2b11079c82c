"""VitalSyncService — composition root for one running agent.

Wires settings into the collaborators (state store, auth gate, credential
provider, health data bridge, aggregator, formatter, upload client, pipeline,
scheduler) and exposes the operations the host control API calls.  Built in
the FastAPI lifespan and kept on ``app.state``.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import httpx

from vitalsync.auth.credentials import CredentialProvider
from vitalsync.auth.gate import AuthGate
from vitalsync.auth.sign_in import OIDCRefreshSignIn, SignInFlow
from vitalsync.auth.store import StateStore
from vitalsync.config import Settings
from vitalsync.errors import AuthError
from vitalsync.health.aggregator import Aggregator
from vitalsync.health.base import HealthStore
from vitalsync.health.bridge import HealthBridgeClient
from vitalsync.health.catalog import MetricCatalog, get_metric_catalog
from vitalsync.health.formatter import SnapshotFormatter
from vitalsync.health.sources import build_sources
from vitalsync.services.host import HostNotifier
from vitalsync.services.s3 import ClientFactory, UploadClient
from vitalsync.sync.pipeline import CycleResult, CycleStatus, SyncPipeline
from vitalsync.sync.scheduler import Scheduler

logger = logging.getLogger("vitalsync.service")


class VitalSyncService:
    """Everything one agent process needs, wired together."""

    def __init__(
        self,
        *,
        settings: Settings,
        auth_gate: AuthGate,
        credentials: CredentialProvider,
        health_store: HealthStore,
        pipeline: SyncPipeline,
        scheduler: Scheduler,
    ) -> None:
        self.settings = settings
        self.auth_gate = auth_gate
        self.credentials = credentials
        self.health_store = health_store
        self.pipeline = pipeline
        self.scheduler = scheduler
        self.dirty = False
        health_store.on_change = self.health_data_changed

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        health_store: HealthStore | None = None,
        catalog: MetricCatalog | None = None,
        sign_in: SignInFlow | None = None,
        cognito_client: Any | None = None,
        s3_client_factory: ClientFactory | None = None,
        host_http_client: httpx.AsyncClient | None = None,
    ) -> "VitalSyncService":
        """Build the full object graph from ``settings``.

        Keyword arguments replace individual collaborators (for testing).
        """
        catalog = catalog or get_metric_catalog()
        if sign_in is None and settings.identity_client_id:
            sign_in = OIDCRefreshSignIn(
                settings.identity_token_url,
                settings.identity_client_id,
                settings.identity_client_secret,
            )
        store = health_store or HealthBridgeClient(
            settings.health_bridge_url, timeout=settings.source_timeout_seconds
        )

        auth_gate = AuthGate(
            StateStore(settings.state_path),
            sign_in,
            freshness_seconds=settings.token_freshness_seconds,
        )
        credentials = CredentialProvider(auth_gate, settings, client=cognito_client)
        aggregator = Aggregator(
            build_sources(store, catalog),
            catalog.sleep_stages,
            sleep_allow_list=settings.sleep_source_allow_list,
            sleep_cutoff_hour=settings.sleep_night_cutoff_hour,
            source_timeout=settings.source_timeout_seconds,
        )
        pipeline = SyncPipeline(
            auth_gate=auth_gate,
            credentials=credentials,
            store=store,
            read_identifiers=catalog.identifiers(),
            aggregator=aggregator,
            formatter=SnapshotFormatter(
                catalog, exercise_minutes_from_samples=settings.exercise_minutes_from_samples
            ),
            uploader=UploadClient(settings, credentials, client_factory=s3_client_factory),
        )
        host = HostNotifier(settings.host_callback_url, http_client=host_http_client)
        scheduler = Scheduler(
            pipeline,
            daily_time=settings.daily_upload_time,
            background_interval=timedelta(seconds=settings.background_window_interval_seconds),
            request_background_window=host.request_background_window,
        )
        return cls(
            settings=settings,
            auth_gate=auth_gate,
            credentials=credentials,
            health_store=store,
            pipeline=pipeline,
            scheduler=scheduler,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start in the foreground: arm the daily timer."""
        self.scheduler.arm_foreground_timer()
        logger.info("VitalSync agent started (auth state: %s)", self.auth_gate.state.value)

    async def stop(self) -> None:
        await self.scheduler.shutdown()
        await self.health_store.aclose()
        logger.info("VitalSync agent stopped")

    async def on_foreground(self) -> dict[str, Any]:
        """Re-check the token, refresh credentials and re-arm the daily timer."""
        token_ok = False
        if self.auth_gate.is_authenticated:
            try:
                await self.credentials.get_credentials()
                token_ok = True
            except AuthError as exc:
                logger.warning("Foreground token check failed: %s", exc)
        self.scheduler.on_foreground()
        return {
            "auth_state": self.auth_gate.state.value,
            "token_ok": token_ok,
            "timer_armed": self.scheduler.timer_armed,
        }

    async def on_background(self) -> CycleResult:
        return self._after_cycle(await self.scheduler.on_background())

    async def on_background_window(self, duration_seconds: float) -> CycleResult:
        return self._after_cycle(await self.scheduler.on_background_window(duration_seconds))

    def expire_background_window(self) -> bool:
        return self.scheduler.expire_background_window()

    async def trigger_manual(self) -> CycleResult:
        return self._after_cycle(await self.scheduler.trigger_manual())

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def complete_sign_in(
        self, identity_token: str, user_name: str | None = None, refresh_token: str | None = None
    ) -> None:
        self.auth_gate.complete_sign_in(identity_token, refresh_token, user_name)
        self.credentials.invalidate()

    def sign_out(self) -> None:
        self.auth_gate.sign_out()
        self.credentials.invalidate()

    def set_user_name(self, user_name: str) -> None:
        self.auth_gate.set_user_name(user_name)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def health_data_changed(self) -> None:
        """Mark new health data as pending upload."""
        if not self.dirty:
            logger.info("Health data changed; marked pending")
        self.dirty = True

    def status(self) -> dict[str, Any]:
        return {
            **self.scheduler.status(),
            "auth_state": self.auth_gate.state.value,
            "user_name": self.auth_gate.user_name,
            "dirty": self.dirty,
        }

    def _after_cycle(self, result: CycleResult) -> CycleResult:
        if result.status is CycleStatus.COMPLETED:
            self.dirty = False
        return result
