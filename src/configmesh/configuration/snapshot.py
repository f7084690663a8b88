"""
Snapshots, snapshot streams and the merge rule.
"""

import queue
import threading
from typing import Dict, Iterable, Iterator, Mapping, Optional

Snapshot = Dict[str, str]

_CLOSED = object()


class StreamClosed(Exception):
    """Raised by SnapshotStream.get once the stream is closed and drained."""


class SnapshotStream:
    """
    Thread-safe stream of complete replacement snapshots.

    A source publishes into the stream from its monitoring thread and closes it
    once the stop event fires; the manager iterates it from a watch thread.
    """

    def __init__(self, name: str = "stream"):
        self.name = name
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, snapshot: Mapping[str, str]) -> bool:
        """Push a snapshot; returns False when the stream is already closed."""
        with self._lock:
            if self._closed:
                return False
            self._queue.put(dict(snapshot))
            return True

    def close(self) -> None:
        """Close the stream; pending snapshots are still delivered."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Snapshot:
        """
        Return the next snapshot.

        Raises:
            StreamClosed: the stream is closed and every snapshot was consumed
            queue.Empty: nothing arrived within ``timeout``
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # keep the marker for other consumers
            self._queue.put(_CLOSED)
            raise StreamClosed(self.name)
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[Snapshot]:
        while True:
            try:
                yield self.get()
            except StreamClosed:
                return


def idle_stream(stop_event: threading.Event, name: str = "idle") -> SnapshotStream:
    """
    Stream that never publishes and is closed once ``stop_event`` is set.

    Used by sources whose data is static for the process lifetime.
    """
    stream = SnapshotStream(name)

    def _close_on_stop():
        stop_event.wait()
        stream.close()

    threading.Thread(target=_close_on_stop, name=f"{name}-idle", daemon=True).start()
    return stream


def merge_snapshots(snapshots: Iterable[Optional[Mapping[str, str]]]) -> Snapshot:
    """
    Merge snapshots in order, later ones taking precedence.

    Empty values never override: a remote store that has not populated a key
    yet must not blank out a value provided by an earlier source.
    """
    merged: Snapshot = {}
    for snapshot in snapshots:
        if not snapshot:
            continue
        for key, value in snapshot.items():
            if value != "":
                merged[key] = value
    return merged
