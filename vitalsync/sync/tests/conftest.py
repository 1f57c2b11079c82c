"""Shared fixtures for cycle and scheduler tests."""

from __future__ import annotations

import pytest

from vitalsync.tests.fakes import FakeHealthStore, RecordingUploader, populated_store


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


@pytest.fixture
def store() -> FakeHealthStore:
    return populated_store()
