"""
Shared pytest fixtures.
"""

import threading
import uuid

import pytest

from configmesh.configuration import ConfigurationManager, ManagerOptions
from configmesh.infrastructure.observability.logging import ConfigMeshLogger, LogLevel

from tests.fixtures.logging_fixtures import CapturingLogHandler


@pytest.fixture
def log_handler():
    """Capturing handler attached to the ``logger`` fixture."""
    return CapturingLogHandler()


@pytest.fixture
def logger(log_handler):
    """Fresh DEBUG logger per test (not shared through the registry)."""
    test_logger = ConfigMeshLogger(f"test-{uuid.uuid4().hex[:8]}", LogLevel.DEBUG)
    test_logger.add_handler(log_handler)
    return test_logger


@pytest.fixture
def stop_event():
    """Stop event that is always set at teardown."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def make_manager(logger):
    """Factory building managers that are stopped at teardown."""
    managers = []

    def _make(sources, debounce=0.05, reload_timeout=1.0, fail_fast_watch=True, stop_event=None):
        manager = ConfigurationManager(
            ManagerOptions(
                logger=logger,
                sources=list(sources),
                debounce=debounce,
                reload_timeout=reload_timeout,
                fail_fast_watch=fail_fast_watch
            ),
            stop_event
        )
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        manager.stop(timeout=1.0)
