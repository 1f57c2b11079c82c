"""Shared fixtures for storage and host service tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import boto3
import pytest
from botocore.stub import Stubber

from vitalsync.auth.credentials import StorageCredentials
from vitalsync.config import Settings
from vitalsync.tests.fakes import TEST_BUCKET


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(s3_bucket_name=TEST_BUCKET, state_path=tmp_path / "state.json")


@pytest.fixture
def storage_credentials() -> StorageCredentials:
    return StorageCredentials(
        access_key_id="ASIATESTKEY1",
        secret_key="secret",
        session_token="session",
        expiration=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def credential_provider(storage_credentials: StorageCredentials) -> MagicMock:
    """Stand-in for CredentialProvider that always hands out the same credentials."""
    provider = MagicMock()
    provider.get_credentials = AsyncMock(return_value=storage_credentials)
    provider.invalidate = MagicMock()
    return provider


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="ap-southeast-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
