"""Application configuration loaded from environment variables."""

from datetime import time
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "VitalSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Object storage (S3) ---
    s3_bucket_name: str = "healthkit-test"
    s3_region: str = "ap-southeast-2"
    s3_endpoint_url: str = ""  # optional S3-compatible endpoint (R2, MinIO)
    max_document_size_bytes: int = 5 * 1024 * 1024  # 5 MB

    # --- Cognito identity pool (short-lived upload credentials) ---
    cognito_identity_pool_id: str = ""
    cognito_region: str = "ap-southeast-2"
    cognito_login_provider: str = "appleid.apple.com"

    # --- Identity provider (refresh of the signed identity token) ---
    identity_token_url: str = "https://appleid.apple.com/auth/token"
    identity_client_id: str = ""
    identity_client_secret: str = ""
    token_freshness_seconds: int = 3600

    # --- Health data bridge ---
    health_bridge_url: str = "http://127.0.0.1:8765"
    source_timeout_seconds: float = 20.0
    sleep_source_allow_list: list[str] = ["Watch", "Health", "Connect"]
    sleep_night_cutoff_hour: int = 18

    # --- Scheduling ---
    daily_upload_time: time = time(17, 0)
    background_window_interval_seconds: int = 86400
    host_callback_url: str = ""  # where background window requests are posted

    # --- Document format ---
    exercise_minutes_from_samples: bool = False

    # --- Local state ---
    state_path: Path = Path("~/.vitalsync/state.json")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
