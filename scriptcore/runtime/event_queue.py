# scriptcore/runtime/event_queue.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from collections import deque
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from scriptcore.runtime.concurrency import get_condition, get_lock


class TaskKind(Enum):
    """Queue a task belongs to."""

    MICROTASK = auto()  # Runs before the next macrotask
    MACROTASK = auto()  # Runs one per scheduler tick


class Task:
    """
    A deferred unit of work: a callable with bound arguments. Host functions
    are plain zero-argument callables.

    A task is owned by the queue holding it and is invoked exactly once after
    it has been dequeued.
    """

    __slots__ = ("kind", "callback", "args", "kwargs", "label")

    def __init__(
        self,
        kind: TaskKind,
        callback: Callable[..., Any],
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
        label: Optional[str] = None,
    ) -> None:
        if not callable(callback):
            raise TypeError("Task callback must be callable")
        self.kind = kind
        self.callback = callback
        self.args = tuple(args)
        self.kwargs = kwargs or {}
        self.label = label or getattr(callback, "__qualname__", repr(callback))

    def run(self) -> Any:
        return self.callback(*self.args, **self.kwargs)

    def __repr__(self) -> str:
        return f"Task(kind={self.kind.name}, label={self.label!r})"


class TaskQueue:
    """
    Thread-safe FIFO of tasks. Producers on any thread may enqueue; only the
    script thread dequeues. Consumers can block in ``wait`` until a task is
    available.
    """

    def __init__(self) -> None:
        self._lock = get_lock()
        self._not_empty = get_condition(self._lock)
        self._tasks: Deque[Task] = deque()

    def enqueue(self, task: Task) -> None:
        """
        Append a task and wake any waiting consumer.

        :param task: The task to enqueue.
        """
        with self._not_empty:
            self._tasks.append(task)
            self._not_empty.notify_all()

    def dequeue(self) -> Optional[Task]:
        """
        Remove and return the oldest task, or None if the queue is empty.
        """
        with self._lock:
            if self._tasks:
                return self._tasks.popleft()
            return None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the queue is non-empty, ``wake`` is called or the timeout
        elapses.

        :param timeout: Maximum number of seconds to wait, None to wait indefinitely.
        :return: True if a task is available.
        """
        with self._not_empty:
            if not self._tasks:
                self._not_empty.wait(timeout)
            return bool(self._tasks)

    def wake(self) -> None:
        """Release any thread blocked in ``wait``."""
        with self._not_empty:
            self._not_empty.notify_all()

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()

    def is_empty(self) -> bool:
        with self._lock:
            return not self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
