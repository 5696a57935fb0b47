import unittest
from threading import Thread

from scriptcore.runtime.monitor import RuntimeMonitor


class TestRuntimeMonitor(unittest.TestCase):
    """Test cases for RuntimeMonitor class.

    Tests verify:
    1. Counter management
    2. History tracking and eviction
    3. Querying and filtering
    4. Thread safety
    """

    def setUp(self):
        """Set up test fixtures."""
        self.now = [10.0]
        self.monitor = RuntimeMonitor(history_limit=3, clock=lambda: self.now[0])

    def test_initial_state(self):
        """Test initial state of monitor."""
        self.assertEqual(self.monitor.metrics, {})
        self.assertEqual(self.monitor.history, [])
        self.assertEqual(self.monitor.event_count, 0)

    def test_increment(self):
        """Test counter updates.

        Verifies:
        1. New counter creation
        2. Existing counter update
        3. Unknown counters raise KeyError
        """
        self.monitor.increment("tasks.macrotask")
        self.monitor.increment("tasks.macrotask", 2)
        self.assertEqual(self.monitor.get_metric("tasks.macrotask"), 3)
        with self.assertRaises(KeyError):
            self.monitor.get_metric("missing")

    def test_metrics_is_a_copy(self):
        """Test that returned metrics cannot mutate the monitor."""
        self.monitor.increment("a")
        metrics = self.monitor.metrics
        metrics["a"] = 100
        self.assertEqual(self.monitor.get_metric("a"), 1)

    def test_history_is_bounded(self):
        """Test history eviction.

        Verifies:
        1. Oldest entries dropped first
        2. event_count keeps counting evicted entries
        """
        for index in range(5):
            self.now[0] = 10.0 + index
            self.monitor.track_event({"type": "tick", "index": index})

        history = self.monitor.history
        self.assertEqual([entry["index"] for entry in history], [2, 3, 4])
        self.assertEqual(self.monitor.event_count, 5)

    def test_out_of_order_timestamps_stay_sorted(self):
        """Test that explicit timestamps are inserted in order."""
        self.monitor.track_event({"type": "a", "timestamp": 5.0})
        self.monitor.track_event({"type": "b", "timestamp": 1.0})
        self.monitor.track_event({"type": "c", "timestamp": 3.0})
        self.assertEqual([entry["type"] for entry in self.monitor.history], ["b", "c", "a"])

    def test_query_events(self):
        """Test filtering by type and start time."""
        self.monitor.track_event({"type": "task_error", "timestamp": 1.0})
        self.monitor.track_event({"type": "listener_error", "timestamp": 2.0})
        self.monitor.track_event({"type": "task_error", "timestamp": 3.0})

        self.assertEqual(len(self.monitor.query_events("task_error")), 2)
        later = self.monitor.query_events(start_time=2.0)
        self.assertEqual([entry["type"] for entry in later], ["listener_error", "task_error"])
        self.assertEqual(self.monitor.query_events("task_error", start_time=2.5)[0]["timestamp"], 3.0)

    def test_record_error(self):
        """Test error recording.

        Verifies:
        1. Error counter per source
        2. History entry with error type
        """
        error = RuntimeError("boom")
        self.monitor.record_error("listener", error, event_type="click")

        self.assertEqual(self.monitor.get_metric("errors.listener"), 1)
        entry = self.monitor.query_events("listener_error")[0]
        self.assertIs(entry["error"], error)
        self.assertEqual(entry["error_type"], "RuntimeError")
        self.assertEqual(entry["event_type"], "click")

    def test_reset(self):
        """Test that reset clears counters and history."""
        self.monitor.increment("a")
        self.monitor.track_event({"type": "b"})
        self.monitor.reset()
        self.assertEqual(self.monitor.metrics, {})
        self.assertEqual(self.monitor.history, [])
        self.assertEqual(self.monitor.event_count, 0)

    def test_invalid_history_limit(self):
        """Test that the history limit must be positive."""
        with self.assertRaises(ValueError):
            RuntimeMonitor(history_limit=0)

    def test_thread_safety(self):
        """Test concurrent counter updates from several threads."""
        monitor = RuntimeMonitor()

        def worker():
            for _ in range(500):
                monitor.increment("shared")
                monitor.track_event({"type": "worker"})

        threads = [Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(monitor.get_metric("shared"), 2000)
        self.assertEqual(monitor.event_count, 2000)
        self.assertEqual(len(monitor.history), 1000)


if __name__ == "__main__":
    unittest.main()
