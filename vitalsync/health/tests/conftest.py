"""Shared fixtures for health collection and rendering tests."""

from __future__ import annotations

import pytest

from vitalsync.health.catalog import MetricCatalog, load_metric_catalog
from vitalsync.health.formatter import SnapshotFormatter
from vitalsync.tests.fakes import FakeHealthStore, populated_store


@pytest.fixture
def catalog() -> MetricCatalog:
    """Load the real bundled catalog for tests."""
    return load_metric_catalog()


@pytest.fixture
def store() -> FakeHealthStore:
    return populated_store()


@pytest.fixture
def formatter(catalog: MetricCatalog) -> SnapshotFormatter:
    return SnapshotFormatter(catalog)
