"""
Tests for snapshot merging, snapshot streams and the subscriber registry.
"""

import queue
import threading

import pytest

from configmesh.configuration.snapshot import SnapshotStream, StreamClosed, idle_stream, merge_snapshots
from configmesh.configuration.subscribers import SubscriberRegistry

from tests.fixtures.sources import wait_for


class TestMergeSnapshots:
    """Test the merge rule."""

    def test_later_wins(self):
        """Later snapshots override earlier ones."""
        assert merge_snapshots([{"K": "1", "A": "a"}, {"K": "2"}]) == {"K": "2", "A": "a"}

    def test_empty_never_overrides(self):
        """An empty value leaves the earlier value in place."""
        assert merge_snapshots([{"K": "1"}, {"K": ""}]) == {"K": "1"}

    def test_empty_never_introduces(self):
        """A key only present with empty values is absent."""
        assert merge_snapshots([{"K": ""}, {"K": ""}]) == {}

    def test_none_and_empty_snapshots(self):
        """None and empty snapshots contribute nothing."""
        assert merge_snapshots([None, {}, {"K": "1"}, None]) == {"K": "1"}

    def test_inputs_untouched(self):
        """Merging never mutates its inputs."""
        first, second = {"K": "1"}, {"K": "2"}
        merged = merge_snapshots([first, second])
        merged["K"] = "3"
        assert first == {"K": "1"}
        assert second == {"K": "2"}

    def test_deterministic(self):
        """The same inputs always produce the same snapshot."""
        snapshots = [{"A": "1", "B": ""}, {"B": "2", "C": "3"}, {"A": "4"}]
        assert merge_snapshots(snapshots) == merge_snapshots(list(snapshots))


class TestSnapshotStream:
    """Test snapshot streams."""

    def test_publish_and_get(self):
        """Published snapshots are delivered in order."""
        stream = SnapshotStream("test")
        stream.publish({"K": "1"})
        stream.publish({"K": "2"})

        assert stream.get(timeout=1) == {"K": "1"}
        assert stream.get(timeout=1) == {"K": "2"}

    def test_published_snapshot_is_copied(self):
        """Later mutation of the published dict does not leak into the stream."""
        stream = SnapshotStream()
        data = {"K": "1"}
        stream.publish(data)
        data["K"] = "changed"

        assert stream.get(timeout=1) == {"K": "1"}

    def test_get_timeout(self):
        """An empty open stream times out with queue.Empty."""
        with pytest.raises(queue.Empty):
            SnapshotStream().get(timeout=0.01)

    def test_close_drains_pending(self):
        """Pending snapshots are still delivered after close, then StreamClosed."""
        stream = SnapshotStream()
        stream.publish({"K": "1"})
        stream.close()

        assert stream.publish({"K": "2"}) is False
        assert stream.get(timeout=1) == {"K": "1"}
        with pytest.raises(StreamClosed):
            stream.get(timeout=1)
        with pytest.raises(StreamClosed):
            stream.get(timeout=1)

    def test_iteration_ends_on_close(self):
        """Iterating a stream stops once it is closed."""
        stream = SnapshotStream()
        stream.publish({"K": "1"})
        stream.publish({"K": "2"})
        stream.close()

        assert list(stream) == [{"K": "1"}, {"K": "2"}]

    def test_close_is_idempotent(self):
        """Closing twice is harmless."""
        stream = SnapshotStream()
        stream.close()
        stream.close()
        assert stream.closed

    def test_idle_stream(self):
        """An idle stream stays open until the stop event is set."""
        stop = threading.Event()
        stream = idle_stream(stop)

        with pytest.raises(queue.Empty):
            stream.get(timeout=0.05)
        stop.set()
        with pytest.raises(StreamClosed):
            stream.get(timeout=1)


class TestSubscriberRegistry:
    """Test subscriber registration and delivery."""

    def test_notify_delivers_copies(self, logger):
        """Each subscriber gets its own copy of the snapshot."""
        registry = SubscriberRegistry(logger)
        received = []
        registry.subscribe(lambda s: (s.update({"MUTATED": "1"}), received.append(s)))
        registry.subscribe(received.append)

        snapshot = {"K": "1"}
        assert registry.notify(snapshot) == 2

        assert wait_for(lambda: len(received) == 2)
        assert snapshot == {"K": "1"}
        assert {"K": "1"} in received

    def test_unsubscribe_is_idempotent(self, logger):
        """Calling unsubscribe twice removes only that subscription."""
        registry = SubscriberRegistry(logger)
        unsubscribe = registry.subscribe(lambda s: None)
        registry.subscribe(lambda s: None)

        unsubscribe()
        unsubscribe()

        assert len(registry) == 1
        assert registry.count == 1

    def test_slow_subscriber_does_not_block_others(self, logger):
        """A blocked callback does not delay other subscribers."""
        registry = SubscriberRegistry(logger)
        release = threading.Event()
        fast = threading.Event()
        registry.subscribe(lambda s: release.wait(2.0))
        registry.subscribe(lambda s: fast.set())

        registry.notify({"K": "1"})

        assert fast.wait(1.0)
        release.set()

    def test_callback_failure_is_logged(self, logger, log_handler):
        """An exception in a callback is logged and does not affect others."""
        registry = SubscriberRegistry(logger)
        delivered = threading.Event()

        def _fail(snapshot):
            raise RuntimeError("boom")

        registry.subscribe(_fail)
        registry.subscribe(lambda s: delivered.set())
        registry.notify({"K": "1"})

        assert delivered.wait(1.0)
        assert wait_for(lambda: log_handler.has_record_with_message("configuration update callback failed"))
        errors = [r for r in log_handler.get_records() if "exception" in r.get("extra", {})]
        assert errors[0]["extra"]["exception"]["message"] == "boom"

    def test_notify_without_subscribers(self, logger):
        """Notifying an empty registry dispatches nothing."""
        assert SubscriberRegistry(logger).notify({"K": "1"}) == 0

    def test_close_stops_pending_and_future_deliveries(self, logger):
        """After close nothing is dispatched and queued deliveries are skipped."""
        registry = SubscriberRegistry(logger)
        calls = []
        sub_id = 0
        registry.subscribe(calls.append)

        registry.close()

        assert registry.notify({"K": "1"}) == 0
        assert not registry.is_active(sub_id)
        registry._deliver(sub_id, calls.append, {"K": "2"})
        assert calls == []
