# scriptcore/runtime/scheduler.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Task scheduling for the single script thread.

Responsibilities:
- Owns the microtask FIFO, the macrotask FIFO and the timer heap
- Implements the tick step: drain microtasks, promote due timers, run one macrotask
- Isolates task failures and reports them to an error sink

The macrotask queue is the only structure touched from other threads. Timers
are checked on the script thread inside ``tick``.
"""

from __future__ import annotations

import heapq
import logging
import time
from collections import deque
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from scriptcore.core.errors import TaskError
from scriptcore.interfaces.types import TimerID
from scriptcore.runtime.event_queue import Task, TaskKind, TaskQueue
from scriptcore.runtime.monitor import RuntimeMonitor

logger = logging.getLogger(__name__)

TimeSource = Callable[[], float]
ErrorSink = Callable[[BaseException], None]

DEFAULT_MIN_INTERVAL_MS = 4


class TimerStatus(Enum):
    """Lifecycle of a timer."""

    ARMED = auto()  # Waiting for its due time
    QUEUED = auto()  # Moved to the macrotask queue, not yet run
    CANCELLED = auto()  # Will never run again
    EXPIRED = auto()  # One-shot timer that has run


class Timer:
    """
    A callable scheduled to run as a macrotask once its due time is reached.

    :param timer_id: Unique identifier handed back to script.
    :param due: Monotonic due time, in seconds.
    :param callback: Callable invoked when the timer fires.
    :param args: Positional arguments bound to the callable.
    :param interval: Repeat interval in seconds, None for one-shot timers.
    """

    def __init__(
        self,
        timer_id: int,
        due: float,
        callback: Callable[..., Any],
        args: Tuple[Any, ...] = (),
        interval: Optional[float] = None,
    ) -> None:
        self.id = timer_id
        self.due = due
        self.callback = callback
        self.args = args
        self.interval = interval
        self.status = TimerStatus.ARMED

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    @property
    def cancelled(self) -> bool:
        return self.status is TimerStatus.CANCELLED

    def __repr__(self) -> str:
        return f"Timer(id={self.id}, due={self.due:.6f}, status={self.status.name})"


class TaskScheduler:
    """
    Drives microtasks, macrotasks and timers for one script thread.

    Class Invariants:
    1. Microtasks queued while draining are drained in the same tick
    2. At most one macrotask runs per tick
    3. Timers due at the same instant fire in id order
    4. A cancelled timer never invokes its callable

    Threading/Concurrency Guarantees:
    1. ``queue_macrotask`` may be called from any thread
    2. Every other method must be called from the script thread
    """

    def __init__(
        self,
        min_interval_ms: float = DEFAULT_MIN_INTERVAL_MS,
        clock: Optional[TimeSource] = None,
        error_sink: Optional[ErrorSink] = None,
        monitor: Optional[RuntimeMonitor] = None,
    ) -> None:
        """
        :param min_interval_ms: Floor applied to repeating timer intervals.
        :param clock: Monotonic time source in seconds. Defaults to time.monotonic.
        :param error_sink: Receives a TaskError for every failing task.
        :param monitor: Optional monitor receiving task counters.
        """
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms cannot be negative")
        self._min_interval = min_interval_ms / 1000.0
        self._clock = clock or time.monotonic
        self._error_sink = error_sink
        self._monitor = monitor
        self._microtasks: Deque[Task] = deque()
        self._macrotasks = TaskQueue()
        self._timers: Dict[int, Timer] = {}
        self._timer_heap: List[Tuple[float, int]] = []
        self._next_timer_id = 1

    @property
    def clock(self) -> TimeSource:
        return self._clock

    def set_error_sink(self, error_sink: Optional[ErrorSink]) -> None:
        self._error_sink = error_sink

    def queue_microtask(self, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """
        Append a microtask. It never runs synchronously.
        """
        self._microtasks.append(Task(TaskKind.MICROTASK, callback, args, kwargs))

    def queue_macrotask(self, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """
        Append a macrotask. Safe to call from any thread.
        """
        self._macrotasks.enqueue(Task(TaskKind.MACROTASK, callback, args, kwargs))

    def arm_timer(
        self,
        callback: Callable[..., Any],
        delay_ms: Optional[float] = 0,
        args: Tuple[Any, ...] = (),
        repeating: bool = False,
    ) -> TimerID:
        """
        Schedule ``callback`` to run as a macrotask after ``delay_ms``.

        Negative or missing delays are treated as zero. Repeating timers never
        fire more often than the configured minimum interval.

        :return: The timer id, usable with ``cancel_timer``.
        """
        if not callable(callback):
            raise TypeError("Timer callback must be callable")
        delay = self._normalize_delay(delay_ms)
        if repeating and delay < self._min_interval:
            delay = self._min_interval

        timer_id = self._next_timer_id
        self._next_timer_id += 1
        timer = Timer(timer_id, self._clock() + delay, callback, tuple(args), delay if repeating else None)
        self._timers[timer_id] = timer
        heapq.heappush(self._timer_heap, (timer.due, timer_id))
        logger.debug("Armed %r", timer)
        return timer_id

    def cancel_timer(self, timer_id: Optional[TimerID]) -> None:
        """
        Cancel a timer. Unknown or already cancelled ids are ignored.
        """
        timer = self._timers.pop(timer_id, None) if timer_id is not None else None
        if timer is not None:
            timer.status = TimerStatus.CANCELLED
            logger.debug("Cancelled %r", timer)

    def tick(self) -> bool:
        """
        Run one scheduler step.

        :return: True if more work remains (queued tasks or armed timers).
        """
        self._drain_microtasks()
        self._promote_due_timers()
        task = self._macrotasks.dequeue()
        if task is not None:
            self._run_task(task)
            self._count("tasks.macrotask")
        return self.has_pending_work()

    def has_pending_work(self) -> bool:
        return bool(self._microtasks) or not self._macrotasks.is_empty() or bool(self._timers)

    def has_runnable_work(self) -> bool:
        """
        True if a tick would run something right now.
        """
        if self._microtasks or not self._macrotasks.is_empty():
            return True
        delay = self.next_timer_delay()
        return delay is not None and delay <= 0

    def next_timer_delay(self) -> Optional[float]:
        """
        Seconds until the earliest armed timer is due, or None without timers.
        """
        self._discard_stale_heap_entries()
        if not self._timer_heap:
            return None
        return max(0.0, self._timer_heap[0][0] - self._clock())

    def wait_for_work(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a macrotask is queued or ``timeout`` seconds pass.
        """
        return self._macrotasks.wait(timeout)

    def wake(self) -> None:
        self._macrotasks.wake()

    def pending_timer_count(self) -> int:
        return len(self._timers)

    def clear(self) -> None:
        """
        Drop every queued task and timer.
        """
        self._microtasks.clear()
        self._macrotasks.clear()
        for timer in self._timers.values():
            timer.status = TimerStatus.CANCELLED
        self._timers.clear()
        self._timer_heap.clear()

    def _drain_microtasks(self) -> None:
        while self._microtasks:
            task = self._microtasks.popleft()
            self._run_task(task)
            self._count("tasks.microtask")

    def _promote_due_timers(self) -> None:
        now = self._clock()
        while self._timer_heap and self._timer_heap[0][0] <= now:
            due, timer_id = heapq.heappop(self._timer_heap)
            timer = self._timers.get(timer_id)
            if timer is None or timer.due != due or timer.status is not TimerStatus.ARMED:
                continue
            timer.status = TimerStatus.QUEUED
            self._macrotasks.enqueue(Task(TaskKind.MACROTASK, self._fire_timer, (timer,), label=f"timer-{timer.id}"))

    def _fire_timer(self, timer: Timer) -> None:
        # Cancellation may happen after the timer was queued
        if timer.cancelled:
            return
        if timer.repeating:
            timer.status = TimerStatus.ARMED
            timer.due = self._clock() + timer.interval
            heapq.heappush(self._timer_heap, (timer.due, timer.id))
        else:
            timer.status = TimerStatus.EXPIRED
            self._timers.pop(timer.id, None)
        self._count("timers.fired")
        timer.callback(*timer.args)

    def _discard_stale_heap_entries(self) -> None:
        while self._timer_heap:
            due, timer_id = self._timer_heap[0]
            timer = self._timers.get(timer_id)
            if timer is not None and timer.due == due and timer.status is TimerStatus.ARMED:
                return
            heapq.heappop(self._timer_heap)

    def _run_task(self, task: Task) -> None:
        try:
            task.run()
        except Exception as exc:
            self._report(task, exc)

    def _report(self, task: Task, exc: Exception) -> None:
        error = TaskError(f"Uncaught error in {task.label}: {exc}", task=task)
        error.__cause__ = exc
        if self._monitor is not None:
            self._monitor.record_error("task", exc, task=task.label)
        if self._error_sink is None:
            logger.error("Uncaught error in task %s", task.label, exc_info=exc)
            return
        try:
            self._error_sink(error)
        except Exception:
            logger.exception("Error sink failed while reporting task %s", task.label)

    def _count(self, name: str) -> None:
        if self._monitor is not None:
            self._monitor.increment(name)

    @staticmethod
    def _normalize_delay(delay_ms: Optional[float]) -> float:
        if delay_ms is None:
            return 0.0
        try:
            delay = float(delay_ms)
        except (TypeError, ValueError):
            return 0.0
        if delay != delay or delay < 0:  # NaN or negative
            return 0.0
        return delay / 1000.0
