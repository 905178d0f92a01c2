"""Pytest configuration for all tests."""

import pytest
from prometheus_client import CollectorRegistry

from src.releasenotes.metrics import ReleaseNotesMetrics
from src.releasenotes.store.memory import InMemoryReleaseStore


@pytest.fixture
def store() -> InMemoryReleaseStore:
    """Fresh in-memory release store."""
    return InMemoryReleaseStore()


@pytest.fixture
def metrics() -> ReleaseNotesMetrics:
    """Metrics bound to an isolated registry."""
    return ReleaseNotesMetrics(registry=CollectorRegistry())
