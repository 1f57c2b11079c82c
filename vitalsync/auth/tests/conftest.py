"""Shared fixtures for identity and credential tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from vitalsync.auth.store import StateStore
from vitalsync.tests.fakes import make_token

ONE_HOUR = 3600


@pytest.fixture
def state_store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


@pytest.fixture
def fresh_token() -> str:
    """Valid for two more hours."""
    return make_token(2 * ONE_HOUR)


@pytest.fixture
def expiring_token() -> str:
    """Valid for ten more minutes."""
    return make_token(600)
