"""
Source presets and the fluent builder for ConfigurationManager instances.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from ..infrastructure.observability.logging import ConfigMeshLogger, get_logger
from .core import ConfigurationManager
from .models import DEFAULT_DEBOUNCE, DEFAULT_RELOAD_TIMEOUT, EnvOptions, FileOptions, ManagerOptions, RemoteOptions
from .sources import (
    ConfigurationSource, EnvironmentConfigurationSource, FileConfigurationSource,
    RemoteConfigClient, RemoteConfigurationSource
)

EXPLICIT_CONFIGMAP_VARIABLES = ("APP_CONFIGMAP_NAME", "CACHE_CONFIGMAP_NAME", "ACL_CONFIGMAP_NAME")
CONFIGMAP_VARIABLE_SUFFIX = "_CONFIGMAP_NAME"


def collect_configmap_names() -> List[str]:
    """
    Config object names announced through the environment.

    APP_, CACHE_ and ACL_CONFIGMAP_NAME come first, then any other
    ``*_CONFIGMAP_NAME`` variable. Duplicates and empty values are dropped.
    """
    names: List[str] = []

    def _add(name: Optional[str]) -> None:
        if name and name not in names:
            names.append(name)

    for variable in EXPLICIT_CONFIGMAP_VARIABLES:
        _add(os.environ.get(variable))

    for variable in sorted(os.environ):
        if variable.endswith(CONFIGMAP_VARIABLE_SUFFIX):
            _add(os.environ[variable])

    return names


def _remote_sources(logger: Optional[ConfigMeshLogger],
                    client: Optional[RemoteConfigClient]) -> List[ConfigurationSource]:
    namespace = os.environ.get("NAMESPACE", "")
    return [
        RemoteConfigurationSource(RemoteOptions(
            resource_name=name,
            namespace=namespace,
            logger=logger,
            client=client
        ))
        for name in collect_configmap_names()
    ]


def build_sources(logger: Optional[ConfigMeshLogger] = None,
                  client: Optional[RemoteConfigClient] = None) -> List[ConfigurationSource]:
    """Environment baseline followed by one remote source per announced config object."""
    sources: List[ConfigurationSource] = [EnvironmentConfigurationSource(EnvOptions())]
    sources.extend(_remote_sources(logger, client))
    return sources


def build_env_only_sources() -> List[ConfigurationSource]:
    """Environment variables only, for local development or simple deployments."""
    return [EnvironmentConfigurationSource(EnvOptions())]


def build_file_sources(config_paths: Iterable[Union[str, Path]],
                       options: Optional[FileOptions] = None) -> List[ConfigurationSource]:
    """Environment baseline followed by mounted configuration files."""
    sources: List[ConfigurationSource] = [EnvironmentConfigurationSource(EnvOptions())]
    for path in config_paths:
        sources.append(FileConfigurationSource(path, options))
    return sources


def build_hybrid_sources(logger: Optional[ConfigMeshLogger],
                         config_paths: Iterable[Union[str, Path]],
                         file_options: Optional[FileOptions] = None,
                         client: Optional[RemoteConfigClient] = None) -> List[ConfigurationSource]:
    """Environment, then files, then remote config objects."""
    sources = build_file_sources(config_paths, file_options)
    sources.extend(_remote_sources(logger, client))
    return sources


class ConfigurationBuilder:
    """
    Builder for creating ConfigurationManager instances with multiple sources.

    Sources keep the order they are added in; later sources take precedence.
    They are created in ``build()``, so the logger set with ``with_logger``
    reaches every source whatever the call order.
    """

    def __init__(self):
        self._source_factories: List[Callable[[ConfigMeshLogger], ConfigurationSource]] = []
        self._logger: Optional[ConfigMeshLogger] = None
        self._debounce: float = DEFAULT_DEBOUNCE
        self._reload_timeout: float = DEFAULT_RELOAD_TIMEOUT
        self._fail_fast_watch: bool = True
        self._stop_event: Optional[threading.Event] = None

    def add_environment_source(self, prefix: str = "", lowercase: bool = False,
                               uppercase: bool = False) -> 'ConfigurationBuilder':
        """
        Add environment variable configuration source.

        Args:
            prefix: only variables with this prefix are kept (prefix stripped)
            lowercase: lowercase keys
            uppercase: uppercase keys
        """
        options = EnvOptions(prefix=prefix, lowercase=lowercase, uppercase=uppercase)
        self._source_factories.append(lambda logger: EnvironmentConfigurationSource(options))
        return self

    def add_file_source(self, path: Union[str, Path], watch: bool = True, format: str = "",
                        poll_interval: float = 1.0) -> 'ConfigurationBuilder':
        """
        Add a structured file configuration source.

        Args:
            path: Path to the JSON, YAML or TOML file
            watch: Whether to poll the file for changes
            format: Explicit format, detected from the extension when empty
            poll_interval: Seconds between polls
        """
        options = FileOptions(watch=watch, format=format, poll_interval=poll_interval)
        self._source_factories.append(lambda logger: FileConfigurationSource(path, options, logger=logger))
        return self

    def add_remote_source(self, resource_name: str, namespace: str = "default",
                          client: Optional[RemoteConfigClient] = None,
                          poll_interval: float = 5.0) -> 'ConfigurationBuilder':
        """Add a remote config object source."""
        self._source_factories.append(lambda logger: RemoteConfigurationSource(RemoteOptions(
            resource_name=resource_name,
            namespace=namespace,
            logger=logger,
            client=client,
            poll_interval=poll_interval
        )))
        return self

    def add_source(self, source: ConfigurationSource) -> 'ConfigurationBuilder':
        """Add a custom configuration source."""
        self._source_factories.append(lambda logger: source)
        return self

    def with_logger(self, logger: ConfigMeshLogger) -> 'ConfigurationBuilder':
        self._logger = logger
        return self

    def with_debounce(self, seconds: float) -> 'ConfigurationBuilder':
        self._debounce = seconds
        return self

    def with_reload_timeout(self, seconds: float) -> 'ConfigurationBuilder':
        self._reload_timeout = seconds
        return self

    def with_fail_fast_watch(self, enabled: bool = True) -> 'ConfigurationBuilder':
        self._fail_fast_watch = enabled
        return self

    def with_stop_event(self, stop_event: threading.Event) -> 'ConfigurationBuilder':
        self._stop_event = stop_event
        return self

    def build(self) -> ConfigurationManager:
        """
        Build the manager with all added sources.

        Without any source the environment baseline is used; without a logger
        the shared ``configmesh`` logger is used.
        """
        logger = self._logger or get_logger("configmesh")
        sources = [factory(logger) for factory in self._source_factories] or build_env_only_sources()
        options = ManagerOptions(
            logger=logger,
            sources=sources,
            debounce=self._debounce,
            reload_timeout=self._reload_timeout,
            fail_fast_watch=self._fail_fast_watch
        )
        return ConfigurationManager(options, self._stop_event)
