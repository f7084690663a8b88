"""
Configuration option models and the common service configuration.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from .binding import env_field

if TYPE_CHECKING:
    from ..infrastructure.observability.logging import ConfigMeshLogger
    from .sources import ConfigurationSource, RemoteConfigClient

DEFAULT_DEBOUNCE = 0.2
DEFAULT_RELOAD_TIMEOUT = 5.0
DEFAULT_FILE_POLL_INTERVAL = 1.0
DEFAULT_REMOTE_POLL_INTERVAL = 5.0


@dataclass
class EnvOptions:
    """Environment variable source behavior."""
    prefix: str = ""          # only keys starting with the prefix are kept, prefix stripped
    lowercase: bool = False   # wins over uppercase when both are set
    uppercase: bool = False


@dataclass
class FileOptions:
    """File source behavior."""
    watch: bool = True
    format: str = ""          # json, yaml or toml; empty means detect from extension
    poll_interval: float = DEFAULT_FILE_POLL_INTERVAL
    separator: str = "."      # joins nested keys when flattening


@dataclass
class RemoteOptions:
    """Remote (cluster config object) source behavior."""
    resource_name: str = ""
    namespace: str = "default"
    logger: Optional["ConfigMeshLogger"] = None
    client: Optional["RemoteConfigClient"] = None
    poll_interval: float = DEFAULT_REMOTE_POLL_INTERVAL


@dataclass
class ManagerOptions:
    """
    Options for ConfigurationManager.

    Sources are ordered: later sources override earlier ones. A debounce of 0
    or None falls back to 200ms.

    fail_fast_watch controls startup when a source cannot start watching:
    True fails construction, False logs the failure and leaves the source
    unwatched. Reload failures after startup are never fatal either way.
    """
    logger: Optional["ConfigMeshLogger"] = None
    sources: List["ConfigurationSource"] = field(default_factory=list)
    debounce: Optional[float] = DEFAULT_DEBOUNCE
    reload_timeout: float = DEFAULT_RELOAD_TIMEOUT
    fail_fast_watch: bool = True


@dataclass
class BaseConfig:
    """Common configuration fields shared by every service."""
    service_name: str = env_field("SERVICE_NAME", default="app", zero="")
    service_version: str = env_field("SERVICE_VERSION", default="0.0.0", zero="")
    env: str = env_field("ENV", default="dev", zero="")

    # single port strategy: HTTP, Connect and gRPC-Web share one port
    http_port: str = env_field("HTTP_PORT", default=":8080", zero="")
    health_port: str = env_field("HEALTH_PORT", default=":8081", zero="")
    metrics_port: str = env_field("METRICS_PORT", default=":9091", zero="")

    otlp_endpoint: str = env_field("OTEL_EXPORTER_OTLP_ENDPOINT", default="", zero="")
    configmap_name: str = env_field("APP_CONFIGMAP_NAME", default="", zero="")  # empty means env-only mode
    debounce_millis: int = env_field("CONFIG_DEBOUNCE_MS", default="200", zero=0)

    def get_http_port(self) -> str:
        return self.http_port

    def get_health_port(self) -> str:
        return self.health_port

    def get_metrics_port(self) -> str:
        return self.metrics_port

