"""
Observability - structured logging for configmesh components.
"""

from .logging import (
    ConfigMeshLogger, LogLevel, LogFormatter, LogHandler,
    JSONLogFormatter, HumanReadableFormatter,
    ConsoleLogHandler, FileLogHandler,
    get_logger, configure_default_logging, get_correlation_id
)

__all__ = [
    "ConfigMeshLogger",
    "LogLevel",
    "LogFormatter",
    "LogHandler",
    "JSONLogFormatter",
    "HumanReadableFormatter",
    "ConsoleLogHandler",
    "FileLogHandler",
    "get_logger",
    "configure_default_logging",
    "get_correlation_id",
]
