"""Shared fixtures for unit tests."""

import pytest

from agent_epics.core.config import StatusSyncConfig, clear_config_cache
from agent_epics.core.reconciler import StatusReconciler
from tests.unit.fakes import PROJECT, FakeTracker


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def tracker():
    return FakeTracker()


@pytest.fixture
def project():
    return PROJECT


@pytest.fixture
def reconciler(tracker):
    return StatusReconciler(tracker, StatusSyncConfig(), completed_by="tester")
