"""
Infrastructure Layer - cross-cutting technical services

Structured exceptions and structured logging shared by the configuration layer.
"""

from .exceptions import (
    ConfigMeshException, ConfigurationError, SourceError,
    SourceLoadError, SourceWatchError, BindingError
)
from .observability import ConfigMeshLogger, LogLevel, get_logger, configure_default_logging

__all__ = [
    "ConfigMeshException",
    "ConfigurationError",
    "SourceError",
    "SourceLoadError",
    "SourceWatchError",
    "BindingError",
    "ConfigMeshLogger",
    "LogLevel",
    "get_logger",
    "configure_default_logging",
]
