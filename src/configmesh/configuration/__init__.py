"""
Configuration Management System

Multi-source configuration with deterministic merging, debounced hot reload,
update subscriptions and typed binding onto dataclasses and pydantic models.
"""

from .snapshot import Snapshot, SnapshotStream, StreamClosed, idle_stream, merge_snapshots

from .models import (
    EnvOptions,
    FileOptions,
    RemoteOptions,
    ManagerOptions,
    BaseConfig
)

from .sources import (
    ConfigurationSource,
    EnvironmentConfigurationSource,
    FileConfigurationSource,
    RemoteConfigurationSource,
    RemoteConfigClient
)

from .binding import (
    UInt,
    bind,
    env_field,
    parse_duration,
    format_duration
)

from .subscribers import SubscriberRegistry

from .core import ConfigurationManager

from .validation import (
    ConfigurationValidator,
    ConfigurationValidationError,
    validate_config
)

from .builder import (
    ConfigurationBuilder,
    collect_configmap_names,
    build_sources,
    build_env_only_sources,
    build_file_sources,
    build_hybrid_sources
)

from .masking import mask_sensitive_value

from .utils import default_manager, quick_bind

__all__ = [
    # Snapshots
    'Snapshot',
    'SnapshotStream',
    'StreamClosed',
    'idle_stream',
    'merge_snapshots',

    # Models
    'EnvOptions',
    'FileOptions',
    'RemoteOptions',
    'ManagerOptions',
    'BaseConfig',

    # Sources
    'ConfigurationSource',
    'EnvironmentConfigurationSource',
    'FileConfigurationSource',
    'RemoteConfigurationSource',
    'RemoteConfigClient',

    # Binding
    'UInt',
    'bind',
    'env_field',
    'parse_duration',
    'format_duration',

    # Core
    'SubscriberRegistry',
    'ConfigurationManager',

    # Validation
    'ConfigurationValidator',
    'ConfigurationValidationError',
    'validate_config',

    # Builder
    'ConfigurationBuilder',
    'collect_configmap_names',
    'build_sources',
    'build_env_only_sources',
    'build_file_sources',
    'build_hybrid_sources',

    # Utilities
    'mask_sensitive_value',
    'default_manager',
    'quick_bind'
]
