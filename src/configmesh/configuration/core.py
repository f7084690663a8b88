"""
Core configuration management class.

ConfigurationManager merges an ordered list of sources, keeps the merged
snapshot up to date while sources change, and fans updates out to subscribers.
"""

import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..infrastructure.exceptions import BindingError, ConfigurationError, SourceLoadError
from ..infrastructure.observability.logging import LogLevel
from .binding import bind as bind_to_object
from .masking import mask_sensitive_value
from .models import DEFAULT_DEBOUNCE, ManagerOptions
from .snapshot import Snapshot, SnapshotStream, StreamClosed, merge_snapshots
from .sources import ConfigurationSource
from .subscribers import SnapshotCallback, SubscriberRegistry

# how often blocked waits re-check the stop event
_STOP_POLL_INTERVAL = 0.1


class ConfigurationManager:
    """
    Multi-source configuration manager with debounced hot reload.

    Construction loads every source in order and merges the results (later
    sources win, empty values never override), then starts one watch thread
    per source. Each update a source delivers re-arms that source's debounce
    timer; when the timer fires the manager re-loads the other sources,
    re-merges, swaps the new snapshot in and notifies subscribers.

    Merges run one at a time. A source that delivered an update contributes
    that update to every later merge rather than being re-loaded. Readers never
    wait on a merge: every merge builds a new dict and swaps it in under the
    snapshot lock, so ``snapshot()`` and ``value()`` observe either the
    previous or the new state.

    Setting the stop event stops all watching and freezes the snapshot, which
    stays readable; no subscriber callback starts afterwards.
    """

    def __init__(self, options: ManagerOptions, stop_event: Optional[threading.Event] = None):
        if options.logger is None:
            raise ConfigurationError("logger is required")
        if not options.sources:
            raise ConfigurationError("at least one source is required")

        self.logger = options.logger
        self._sources: List[ConfigurationSource] = list(options.sources)
        self._debounce = options.debounce or DEFAULT_DEBOUNCE
        self._reload_timeout = options.reload_timeout
        self._fail_fast_watch = options.fail_fast_watch

        self._snapshot: Snapshot = {}
        self._snapshot_lock = threading.Lock()
        # held for a whole merge, from collecting snapshots to notifying
        self._merge_lock = threading.Lock()

        # last-known-good snapshot per source, in source order
        self._last_known: List[Snapshot] = [{} for _ in self._sources]
        # sources whose last-known snapshot is a delivered watch update
        self._delivered: Set[int] = set()
        self._cache_lock = threading.Lock()
        # reload still running per source, guarded by the merge lock
        self._inflight: Dict[int, Future] = {}

        self._pending: Dict[int, Snapshot] = {}
        self._timers: Dict[int, threading.Timer] = {}
        self._generations: Dict[int, int] = {}
        self._timer_lock = threading.Lock()

        self._subscribers = SubscriberRegistry(self.logger)
        self._watch_threads: List[threading.Thread] = []
        self._stop_event = threading.Event()
        self._reload_pool = ThreadPoolExecutor(
            max_workers=max(4, 2 * len(self._sources)),
            thread_name_prefix="config-reload"
        )

        try:
            self._load_initial()
            self._start_watching()
        except ConfigurationError:
            self._shutdown()
            raise

        if stop_event is not None:
            self._link_stop_event(stop_event)

    # ------------------------------------------------------------------
    # startup
    # ------------------------------------------------------------------

    def _load_initial(self) -> None:
        """Load configuration from all sources and merge them."""
        snapshots: List[Snapshot] = []

        for index, source in enumerate(self._sources):
            try:
                snapshot = source.load()
            except Exception as e:
                raise ConfigurationError(
                    f"failed to load initial configuration: source {index} load failed: {e}",
                    source_index=index,
                    cause=e
                ) from e

            snapshot = dict(snapshot or {})
            self._log_source_configuration(index, source, snapshot)
            snapshots.append(snapshot)

        merged = merge_snapshots(snapshots)

        with self._cache_lock:
            self._last_known = snapshots
        with self._snapshot_lock:
            self._snapshot = merged

        self._log_configuration_details(merged)
        self.logger.info("configuration loaded", {"keys": len(merged), "sources": len(self._sources)})

    def _start_watching(self) -> None:
        """Start one watch thread per source."""
        for index, source in enumerate(self._sources):
            try:
                stream = source.watch(self._stop_event)
            except Exception as e:
                if self._fail_fast_watch:
                    raise ConfigurationError(
                        f"failed to start watching: source {index} watch failed: {e}",
                        source_index=index,
                        cause=e
                    ) from e
                self.logger.error(
                    "source watch failed, continuing without updates from it",
                    {"source_index": index, "source_type": source.name},
                    exc_info=e
                )
                continue

            thread = threading.Thread(
                target=self._watch_source,
                args=(index, stream),
                name=f"config-watch-{index}",
                daemon=True
            )
            self._watch_threads.append(thread)
            thread.start()

    def _link_stop_event(self, stop_event: threading.Event) -> None:
        def _propagate():
            while not self._stop_event.wait(_STOP_POLL_INTERVAL):
                if stop_event.is_set():
                    self.stop()
                    return

        threading.Thread(target=_propagate, name="config-stop-link", daemon=True).start()

    # ------------------------------------------------------------------
    # reload orchestration
    # ------------------------------------------------------------------

    def _watch_source(self, index: int, stream: SnapshotStream) -> None:
        """Consume one source's stream until it closes or the manager stops."""
        source = self._sources[index]
        with self.logger.source_context(f"{index}:{source.name}"):
            self.logger.debug("watching source", {"source_index": index})
            while not self._stop_event.is_set():
                try:
                    snapshot = stream.get(timeout=_STOP_POLL_INTERVAL)
                except queue.Empty:
                    continue
                except StreamClosed:
                    break
                self._schedule_update(index, snapshot)

            if not self._stop_event.is_set():
                # no more updates will arrive; later merges reload the source again
                with self._cache_lock:
                    self._delivered.discard(index)
            self.logger.debug("source watch stopped", {"source_index": index})

    def _schedule_update(self, index: int, snapshot: Snapshot) -> None:
        """Keep ``snapshot`` as the pending update and (re)arm the debounce timer."""
        with self._timer_lock:
            if self._stop_event.is_set():
                return
            self._pending[index] = snapshot
            generation = self._generations.get(index, 0) + 1
            self._generations[index] = generation

            previous = self._timers.get(index)
            if previous is not None:
                previous.cancel()

            timer = threading.Timer(self._debounce, self._on_debounce_fired, args=(index, generation))
            timer.daemon = True
            timer.name = f"config-debounce-{index}"
            self._timers[index] = timer
            timer.start()

    def _on_debounce_fired(self, index: int, generation: int) -> None:
        with self._timer_lock:
            # a timer cancelled too late must not merge
            if self._generations.get(index) != generation or self._stop_event.is_set():
                return
            update = self._pending.pop(index, None)
            self._timers.pop(index, None)
            if update is None:
                return
            # recorded in firing order, before waiting for the merge lock
            with self._cache_lock:
                self._last_known[index] = dict(update)
                self._delivered.add(index)

        source = self._sources[index]
        with self.logger.correlation_context(), self.logger.source_context(f"{index}:{source.name}"):
            self._apply_update(index)

    def _apply_update(self, index: int) -> None:
        """Re-merge all sources after source ``index`` delivered an update."""
        with self._merge_lock:
            if self._stop_event.is_set():
                return

            merged = merge_snapshots(self._collect_snapshots(index))

            with self._snapshot_lock:
                # a stopped manager keeps its last snapshot
                if self._stop_event.is_set():
                    self.logger.debug("discarding merge finished after stop", {"source_index": index})
                    return
                self._snapshot = merged

            self.logger.info("configuration updated", {"keys": len(merged), "source_index": index})
            self._log_configuration_details(merged)

            self._subscribers.notify(merged)

    def _collect_snapshots(self, index: int) -> List[Snapshot]:
        """
        Fresh snapshots for every source, in source order.

        Sources whose last-known snapshot is a delivered watch update contribute
        it as is, so a stale load never overrides what the source pushed.
        The other sources are re-loaded concurrently, bounded by the reload
        timeout; one that fails or times out contributes its last-known-good
        snapshot.
        """
        with self._cache_lock:
            delivered = set(self._delivered) | {index}

        futures: Dict[int, Future] = {}
        failures: Dict[int, BaseException] = {}
        for i in range(len(self._sources)):
            if i in delivered:
                continue
            try:
                futures[i] = self._submit_reload(i)
            except RuntimeError as e:
                # pool already shut down
                failures[i] = e

        deadline = time.monotonic() + self._reload_timeout

        for i, source in enumerate(self._sources):
            if i in delivered:
                continue

            fresh, error = self._await_reload(futures.get(i), deadline)
            error = error or failures.get(i)
            if error is None:
                with self._cache_lock:
                    # an update delivered while loading is newer than the load
                    if i not in self._delivered:
                        self._last_known[i] = fresh
                continue

            self.logger.error(
                "failed to reload source for update",
                {"source_index": i, "source_type": source.name},
                exc_info=error
            )

        with self._cache_lock:
            return [dict(snapshot) for snapshot in self._last_known]

    def _submit_reload(self, index: int) -> Future:
        previous = self._inflight.get(index)
        if previous is not None and not previous.done():
            # a load that outlived its deadline is still running; wait on it
            # instead of tying up another worker
            return previous
        future = self._reload_pool.submit(self._sources[index].load, self._reload_timeout)
        self._inflight[index] = future
        return future

    def _await_reload(self, future: Optional[Future], deadline: float) -> Tuple[Snapshot, Optional[BaseException]]:
        if future is None:
            return {}, None
        try:
            result = future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            future.cancel()
            return {}, SourceLoadError(f"reload timed out after {self._reload_timeout}s")
        except Exception as e:
            return {}, e
        return dict(result or {}), None

    # ------------------------------------------------------------------
    # consumer API
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Copy of the current merged configuration."""
        with self._snapshot_lock:
            current = self._snapshot
        return dict(current)

    def value(self, key: str) -> Tuple[str, bool]:
        """Value for ``key`` and whether it exists."""
        with self._snapshot_lock:
            current = self._snapshot
        if key in current:
            return current[key], True
        return "", False

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Value for ``key``, or ``default`` when missing."""
        value, found = self.value(key)
        return value if found else default

    def bind(self, target: Any, on_update: Optional[Callable[[], None]] = None) -> Optional[Callable[[], None]]:
        """
        Bind the current snapshot onto ``target`` (a dataclass or pydantic model instance).

        When ``on_update`` is given, ``target`` is re-bound after every merge
        and ``on_update()`` is called afterwards. The returned function stops
        the re-binding; without a callback nothing is returned.

        Raises:
            BindingError: the target is invalid or a value cannot be parsed
        """
        if target is None:
            raise BindingError("target cannot be None")

        bind_to_object(target, self.snapshot())

        if on_update is None:
            return None

        def _rebind(snapshot: Snapshot) -> None:
            try:
                bind_to_object(target, snapshot)
            except BindingError as e:
                self.logger.error("failed to rebind configuration",
                                  {"target": type(target).__name__, "field": e.field_path}, exc_info=e)
                return
            on_update()

        return self.on_update(_rebind)

    def on_update(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Subscribe to merged snapshots; returns the unsubscribe function."""
        return self._subscribers.subscribe(callback)

    @property
    def sources(self) -> List[ConfigurationSource]:
        return list(self._sources)

    @property
    def debounce(self) -> float:
        return self._debounce

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        """True while at least one watch thread is alive and the manager was not stopped."""
        return not self._stop_event.is_set() and any(t.is_alive() for t in self._watch_threads)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop watching; the last merged snapshot remains readable."""
        if self._stop_event.is_set():
            return
        self._shutdown()
        current = threading.current_thread()
        for thread in self._watch_threads:
            if thread is not current:
                thread.join(timeout=timeout)
        self.logger.info("configuration watching stopped")

    def _shutdown(self) -> None:
        self._stop_event.set()
        self._subscribers.close()
        with self._timer_lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()
        self._reload_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "ConfigurationManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # debug logging
    # ------------------------------------------------------------------

    def _log_source_configuration(self, index: int, source: ConfigurationSource, snapshot: Snapshot) -> None:
        if not self.logger.is_enabled_for(LogLevel.DEBUG):
            return
        if not snapshot:
            self.logger.debug("source configuration loaded",
                              {"source_index": index, "source_type": source.name, "status": "empty"})
            return

        self.logger.debug("source configuration loaded",
                          {"source_index": index, "source_type": source.name, "key_count": len(snapshot)})
        for key in sorted(snapshot):
            self.logger.debug("source configuration variable", {
                "source_index": index,
                "source_type": source.name,
                "key": key,
                "value": mask_sensitive_value(key, snapshot[key])
            })

    def _log_configuration_details(self, config: Snapshot) -> None:
        if not self.logger.is_enabled_for(LogLevel.DEBUG):
            return
        if not config:
            self.logger.debug("merged configuration", {"status": "empty"})
            return

        self.logger.debug("merged configuration loaded", {"total_keys": len(config)})
        for key in sorted(config):
            self.logger.debug("configuration variable",
                              {"key": key, "value": mask_sensitive_value(key, config[key])})
