"""
configmesh - multi-source, hot-reloading configuration management

Aggregates configuration from environment variables, files and remote config
objects, merges them under list-order precedence and keeps consumers up to
date without restarting the process.
"""

__version__ = "0.1.0"

from .configuration import (
    ConfigurationManager,
    ConfigurationBuilder,
    ManagerOptions,
    BaseConfig,
    env_field,
    default_manager,
    quick_bind
)
from .infrastructure import ConfigurationError, BindingError, get_logger

__all__ = [
    "ConfigurationManager",
    "ConfigurationBuilder",
    "ManagerOptions",
    "BaseConfig",
    "env_field",
    "default_manager",
    "quick_bind",
    "ConfigurationError",
    "BindingError",
    "get_logger",
]
