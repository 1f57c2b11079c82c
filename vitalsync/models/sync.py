"""Request / response schemas for the host control API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from vitalsync.models.base import VitalSyncBase

# At least one character that survives storage-key normalization
USER_NAME_PATTERN = r"[^\s/\\_]"


# ---------- Cycles ----------


class CycleResultResponse(VitalSyncBase):
    trigger: str
    status: str
    started_at: datetime
    finished_at: datetime
    key: str | None = None
    error: str | None = None
    error_type: str | None = None
    failed_metrics: list[str] = Field(default_factory=list)


class SyncStatusResponse(VitalSyncBase):
    cycle_state: str
    timer_armed: bool
    next_fire_at: datetime | None = None
    background_window_active: bool
    auth_state: str
    user_name: str | None = None
    dirty: bool = False
    last_result: CycleResultResponse | None = None


# ---------- Lifecycle ----------


class ForegroundResponse(VitalSyncBase):
    auth_state: str
    token_ok: bool
    timer_armed: bool


class BackgroundWindowRequest(VitalSyncBase):
    duration_seconds: float = Field(gt=0, le=3600)


class ExpireResponse(VitalSyncBase):
    cancelled: bool


# ---------- Session ----------


class SessionCreate(VitalSyncBase):
    identity_token: str = Field(min_length=1)
    user_name: str = Field(min_length=1, max_length=200, pattern=USER_NAME_PATTERN)
    refresh_token: str | None = None


class UserNameUpdate(VitalSyncBase):
    user_name: str = Field(min_length=1, max_length=200, pattern=USER_NAME_PATTERN)


class SessionResponse(VitalSyncBase):
    auth_state: str
    user_name: str | None = None
    expires_at: datetime | None = None
