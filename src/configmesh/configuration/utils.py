"""
Utility functions for common configuration patterns.
"""

import os
import threading
from typing import Any, Optional

from ..infrastructure.observability.logging import ConfigMeshLogger, get_logger
from .builder import build_sources
from .core import ConfigurationManager
from .models import DEFAULT_DEBOUNCE, ManagerOptions
from .sources import RemoteConfigClient


def debounce_from_environment() -> float:
    """Debounce window in seconds from CONFIG_DEBOUNCE_MS, falling back to 200ms."""
    raw = os.environ.get("CONFIG_DEBOUNCE_MS", "")
    try:
        millis = int(raw)
    except ValueError:
        return DEFAULT_DEBOUNCE
    if millis <= 0:
        return DEFAULT_DEBOUNCE
    return millis / 1000.0


def default_manager(logger: Optional[ConfigMeshLogger] = None,
                    stop_event: Optional[threading.Event] = None,
                    client: Optional[RemoteConfigClient] = None) -> ConfigurationManager:
    """
    Create a manager over the environment plus any announced config objects.

    Args:
        logger: Logger for the manager, the shared ``configmesh`` logger when None
        stop_event: Setting it stops watching
        client: Transport for remote config objects; env-only when None

    Returns:
        ConfigurationManager instance
    """
    logger = logger or get_logger("configmesh")
    return ConfigurationManager(
        ManagerOptions(
            logger=logger,
            sources=build_sources(logger, client),
            debounce=debounce_from_environment()
        ),
        stop_event
    )


def quick_bind(target: Any, logger: Optional[ConfigMeshLogger] = None,
               stop_event: Optional[threading.Event] = None,
               client: Optional[RemoteConfigClient] = None) -> ConfigurationManager:
    """
    Create the default manager and bind its snapshot onto ``target``.

    Returns:
        The manager, so callers can subscribe to later updates
    """
    manager = default_manager(logger, stop_event, client)
    try:
        manager.bind(target)
    except Exception:
        manager.stop()
        raise
    return manager
