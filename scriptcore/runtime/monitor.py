# scriptcore/runtime/monitor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import bisect
import threading
import time
from typing import Any, Dict, List, Optional


class RuntimeMonitor:
    """Collects runtime counters and a bounded history of notable runtime events.

    The scheduler, bridge and dispatcher report into a monitor: task counts,
    timer firings, isolated errors and bridge settlements.

    Class Invariants:
    1. Counters only grow until ``reset`` is called
    2. History holds at most ``history_limit`` entries, oldest dropped first
    3. History entries are kept in timestamp order

    Threading/Concurrency Guarantees:
    1. Counter updates are atomic
    2. History may be appended from worker threads
    """

    def __init__(self, history_limit: int = 1000, clock=time.monotonic):
        """Initialize the runtime monitor.

        Args:
            history_limit: Maximum number of history entries retained
            clock: Source of timestamps, seconds as float
        """
        if history_limit < 1:
            raise ValueError("history_limit must be positive")
        self._history_limit = history_limit
        self._clock = clock
        self._metrics: Dict[str, int] = {}
        self._history: List[Dict[str, Any]] = []
        self._timestamps: List[float] = []
        self._event_count = 0
        self._metrics_lock = threading.Lock()
        self._history_lock = threading.Lock()

    @property
    def metrics(self) -> Dict[str, int]:
        """A copy of the current counters."""
        with self._metrics_lock:
            return self._metrics.copy()

    @property
    def history(self) -> List[Dict[str, Any]]:
        with self._history_lock:
            return [entry.copy() for entry in self._history]

    @property
    def event_count(self) -> int:
        """Total number of events tracked, including ones evicted from history."""
        with self._history_lock:
            return self._event_count

    def increment(self, name: str, value: int = 1) -> None:
        """Add ``value`` to the named counter, creating it at zero if needed.

        Args:
            name: Counter name, dotted by convention (``tasks.microtask``)
            value: Amount to add
        """
        with self._metrics_lock:
            self._metrics[name] = self._metrics.get(name, 0) + value

    def get_metric(self, name: str) -> int:
        """Get a counter value.

        Raises:
            KeyError: If the counter was never incremented
        """
        with self._metrics_lock:
            return self._metrics[name]

    def track_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Append an entry to the history.

        Args:
            event: Entry data; ``type`` names its category (``task_error``, ``listener_error``...)

        Returns:
            The stored entry
        """
        entry = event.copy()
        entry.setdefault("timestamp", self._clock())
        with self._history_lock:
            # Out of order timestamps are inserted in place to keep the index sorted
            position = bisect.bisect_right(self._timestamps, entry["timestamp"])
            self._timestamps.insert(position, entry["timestamp"])
            self._history.insert(position, entry)
            self._event_count += 1
            overflow = len(self._history) - self._history_limit
            if overflow > 0:
                del self._history[:overflow]
                del self._timestamps[:overflow]
        return entry

    def record_error(self, source: str, error: BaseException, **data: Any) -> None:
        """Count an isolated error and keep it in the history.

        Args:
            source: Component that isolated the error (``task``, ``listener``...)
            error: The exception that was caught
        """
        self.increment(f"errors.{source}")
        entry = dict(data)
        entry.update(type=f"{source}_error", error=error, error_type=type(error).__name__)
        self.track_event(entry)

    def query_events(
        self, event_type: Optional[str] = None, start_time: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """Query history with optional filtering.

        Args:
            event_type: Only return entries of this type
            start_time: Only return entries at or after this timestamp

        Returns:
            Matching entries in chronological order
        """
        with self._history_lock:
            start = 0
            if start_time is not None:
                start = bisect.bisect_left(self._timestamps, start_time)
            return [
                entry.copy()
                for entry in self._history[start:]
                if event_type is None or entry.get("type") == event_type
            ]

    def reset(self) -> None:
        """Drop all counters and history."""
        with self._metrics_lock:
            self._metrics.clear()
        with self._history_lock:
            self._history.clear()
            self._timestamps.clear()
            self._event_count = 0
