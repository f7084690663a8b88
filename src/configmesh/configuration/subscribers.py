"""
Subscriber registry for post-merge snapshot notifications.
"""

import itertools
import threading
from typing import Callable, Dict, Mapping

from ..infrastructure.observability.logging import ConfigMeshLogger
from .snapshot import Snapshot

SnapshotCallback = Callable[[Snapshot], None]


class SubscriberRegistry:
    """
    Registry of snapshot callbacks keyed by a monotonically increasing id.

    Every notification runs each callback on its own thread, so a slow
    subscriber never delays the others and may be called again while a
    previous delivery is still running. Unsubscribing prevents every delivery
    that has not started yet; a delivery already running is not interrupted.
    """

    def __init__(self, logger: ConfigMeshLogger):
        self.logger = logger
        self._subscribers: Dict[int, SnapshotCallback] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count()
        self._closed = False

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        with self._lock:
            sub_id = next(self._ids)
            self._subscribers[sub_id] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(sub_id, None)

        return unsubscribe

    def is_active(self, sub_id: int) -> bool:
        with self._lock:
            return not self._closed and sub_id in self._subscribers

    def close(self) -> None:
        """Stop all deliveries that have not started yet, now and in the future."""
        with self._lock:
            self._closed = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def count(self) -> int:
        return len(self)

    def notify(self, snapshot: Mapping[str, str]) -> int:
        """Dispatch ``snapshot`` to every current subscriber; returns the number dispatched."""
        with self._lock:
            if self._closed:
                return 0
            subscribers = list(self._subscribers.items())

        for sub_id, callback in subscribers:
            thread = threading.Thread(
                target=self._deliver,
                args=(sub_id, callback, dict(snapshot)),
                name=f"config-subscriber-{sub_id}",
                daemon=True
            )
            thread.start()
        return len(subscribers)

    def _deliver(self, sub_id: int, callback: SnapshotCallback, snapshot: Snapshot) -> None:
        if not self.is_active(sub_id):
            return
        try:
            callback(snapshot)
        except Exception as e:
            self.logger.error("configuration update callback failed",
                              {"subscription_id": sub_id}, exc_info=e)
