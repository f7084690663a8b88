"""
Configuration sources for loading and watching configuration data.

Every source produces flat string-to-string snapshots. ``load`` returns one
complete snapshot; ``watch`` returns a SnapshotStream of complete replacement
snapshots which the source closes once the stop event is set.
"""

import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

from ..infrastructure.exceptions import SourceLoadError, SourceWatchError
from ..infrastructure.observability.logging import ConfigMeshLogger, get_logger
from .formats import SUPPORTED_FORMATS, detect_file_format, parse_config_file, stringify_value
from .models import EnvOptions, FileOptions, RemoteOptions
from .snapshot import Snapshot, SnapshotStream, idle_stream


class ConfigurationSource(ABC):
    """Abstract base class for configuration sources."""

    @property
    def name(self) -> str:
        """Source type name used in log records."""
        return type(self).__name__

    @abstractmethod
    def load(self, timeout: Optional[float] = None) -> Snapshot:
        """
        Load the current snapshot.

        The returned dict belongs to the caller. Implementations should give up
        once ``timeout`` seconds have elapsed.

        Raises:
            SourceLoadError: the snapshot could not be produced
        """
        pass

    @abstractmethod
    def watch(self, stop_event: threading.Event) -> SnapshotStream:
        """
        Start monitoring for updates.

        Raises:
            SourceWatchError: monitoring could not be started
        """
        pass

    def _start_thread(self, target: Callable[[], None], thread_name: str) -> None:
        try:
            threading.Thread(target=target, name=thread_name, daemon=True).start()
        except RuntimeError as e:
            raise SourceWatchError(f"failed to start watcher thread: {e}",
                                   source_type=self.name, cause=e) from e


class EnvironmentConfigurationSource(ConfigurationSource):
    """Environment variable configuration source."""

    def __init__(self, options: Optional[EnvOptions] = None):
        options = options or EnvOptions()
        self.prefix = options.prefix
        self.lowercase = options.lowercase
        self.uppercase = options.uppercase

    def load(self, timeout: Optional[float] = None) -> Snapshot:
        """Load configuration from environment variables."""
        config: Snapshot = {}

        for key, value in os.environ.items():
            if self.prefix:
                if not key.startswith(self.prefix):
                    continue
                key = key[len(self.prefix):]

            if self.lowercase:
                key = key.lower()
            elif self.uppercase:
                key = key.upper()

            config[key] = value

        return config

    def watch(self, stop_event: threading.Event) -> SnapshotStream:
        # the environment is static for the process lifetime
        return idle_stream(stop_event, "env")


class FileConfigurationSource(ConfigurationSource):
    """Structured file (JSON, YAML or TOML) configuration source."""

    def __init__(self, file_path: Union[str, Path], options: Optional[FileOptions] = None,
                 logger: Optional[ConfigMeshLogger] = None):
        options = options or FileOptions()
        self.file_path = Path(file_path)
        self.format = options.format or detect_file_format(self.file_path)
        self.watch_enabled = options.watch
        self.poll_interval = options.poll_interval or 1.0
        self.separator = options.separator
        self.logger = logger or get_logger("configmesh.sources")

    def load(self, timeout: Optional[float] = None) -> Snapshot:
        """Load configuration from the file; a missing file yields an empty snapshot."""
        if self.format not in SUPPORTED_FORMATS:
            raise SourceLoadError(
                f"unsupported format: {self.format}",
                source_type=self.name,
                context={"file_path": str(self.file_path)}
            )

        try:
            data = self.file_path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise SourceLoadError(
                f"failed to read file {self.file_path}: {e}",
                source_type=self.name,
                context={"file_path": str(self.file_path)},
                cause=e
            ) from e

        try:
            return parse_config_file(data, self.format, self.separator)
        except ValueError as e:
            raise SourceLoadError(
                f"failed to parse file {self.file_path}: {e}",
                source_type=self.name,
                context={"file_path": str(self.file_path), "format": self.format},
                cause=e
            ) from e

    def _file_state(self) -> Optional[Tuple[int, int]]:
        """Modification state of the file, None when it does not exist."""
        try:
            stat = self.file_path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def watch(self, stop_event: threading.Event) -> SnapshotStream:
        """Poll the file and publish a snapshot whenever its content changes."""
        if not self.watch_enabled:
            return idle_stream(stop_event, f"file:{self.file_path.name}")
        if self.poll_interval <= 0:
            raise SourceWatchError(f"invalid poll interval: {self.poll_interval}", source_type=self.name)

        stream = SnapshotStream(f"file:{self.file_path}")
        last_state = self._file_state()
        try:
            last_snapshot: Optional[Snapshot] = self.load()
        except SourceLoadError:
            last_snapshot = None

        def _poll():
            nonlocal last_state, last_snapshot
            try:
                while not stop_event.wait(self.poll_interval):
                    try:
                        state = self._file_state()
                    except OSError as e:
                        self.logger.error("failed to stat file", {"path": str(self.file_path)}, exc_info=e)
                        continue
                    if state == last_state:
                        continue
                    last_state = state

                    try:
                        snapshot = self.load()
                    except SourceLoadError as e:
                        self.logger.error("failed to load file", {"path": str(self.file_path)}, exc_info=e)
                        continue

                    if snapshot != last_snapshot:
                        last_snapshot = snapshot
                        self.logger.debug("configuration file changed",
                                          {"path": str(self.file_path), "keys": len(snapshot)})
                        stream.publish(snapshot)
            finally:
                stream.close()

        self._start_thread(_poll, f"file-watch-{self.file_path.name}")
        return stream


@runtime_checkable
class RemoteConfigClient(Protocol):
    """
    Transport used by RemoteConfigurationSource (for example a cluster API client).

    ``fetch`` returns the current data of the named config object, or None when
    it does not exist. It should give up after ``timeout`` seconds (None means
    no limit); the manager bounds reloads with this value. A client may also offer a push primitive
    ``watch(resource_name, namespace, stop_event, publish)`` that blocks until
    ``stop_event`` is set and calls ``publish(data)`` on every change; without
    it the source polls ``fetch``.
    """

    def fetch(self, resource_name: str, namespace: str,
              timeout: Optional[float] = None) -> Optional[Mapping[str, str]]:
        ...


def _normalize(data: Optional[Mapping[str, object]]) -> Snapshot:
    if not data:
        return {}
    return {str(k): stringify_value(v) for k, v in data.items()}


class RemoteConfigurationSource(ConfigurationSource):
    """Cluster config object (e.g. a Kubernetes ConfigMap) configuration source."""

    def __init__(self, options: RemoteOptions):
        self.resource_name = options.resource_name
        self.namespace = options.namespace or "default"
        self.logger = options.logger or get_logger("configmesh.sources")
        self.client = options.client
        self.poll_interval = options.poll_interval

    @property
    def _log_context(self) -> Dict[str, str]:
        return {"name": self.resource_name, "namespace": self.namespace}

    def load(self, timeout: Optional[float] = None) -> Snapshot:
        """Fetch the config object; without a client (outside a cluster) this is empty."""
        if self.client is None:
            self.logger.debug("no remote client configured, skipping config object", self._log_context)
            return {}

        self.logger.debug("loading config object", self._log_context)
        try:
            data = self.client.fetch(self.resource_name, self.namespace, timeout=timeout)
        except Exception as e:
            raise SourceLoadError(
                f"failed to fetch config object {self.namespace}/{self.resource_name}: {e}",
                source_type=self.name,
                context=dict(self._log_context),
                cause=e
            ) from e
        return _normalize(data)

    def watch(self, stop_event: threading.Event) -> SnapshotStream:
        if self.client is None:
            return idle_stream(stop_event, f"remote:{self.resource_name}")

        stream = SnapshotStream(f"remote:{self.namespace}/{self.resource_name}")
        push = getattr(self.client, "watch", None)

        if callable(push):
            def _run_push():
                self.logger.info("watching config object", self._log_context)
                try:
                    push(self.resource_name, self.namespace, stop_event,
                         lambda data: stream.publish(_normalize(data)))
                except Exception as e:
                    self.logger.error("config object watch failed", dict(self._log_context), exc_info=e)
                finally:
                    if not stop_event.is_set():
                        self.logger.warning("config object watch ended before shutdown", self._log_context)
                    stream.close()
                    self.logger.info("stopped watching config object", self._log_context)

            self._start_thread(_run_push, f"remote-watch-{self.resource_name}")
            return stream

        if not self.poll_interval or self.poll_interval <= 0:
            raise SourceWatchError(f"invalid poll interval: {self.poll_interval}", source_type=self.name)

        try:
            last: Optional[Snapshot] = self.load()
        except SourceLoadError:
            last = None

        def _poll():
            nonlocal last
            self.logger.info("polling config object", self._log_context)
            try:
                while not stop_event.wait(self.poll_interval):
                    try:
                        snapshot = self.load(timeout=self.poll_interval)
                    except SourceLoadError as e:
                        self.logger.error("failed to poll config object", dict(self._log_context), exc_info=e)
                        continue
                    if snapshot != last:
                        last = snapshot
                        stream.publish(snapshot)
            finally:
                stream.close()
                self.logger.info("stopped watching config object", self._log_context)

        self._start_thread(_poll, f"remote-poll-{self.resource_name}")
        return stream
