# scriptcore/runtime/concurrency.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Optional


class _LockFactory:
    """
    Internal factory for the synchronization primitives shared between the
    script thread and worker threads.
    """

    def create_lock(self) -> threading.Lock:
        return threading.Lock()

    def create_condition(self, lock: Optional[threading.Lock] = None) -> threading.Condition:
        return threading.Condition(lock if lock is not None else self.create_lock())


def get_lock() -> threading.Lock:
    """
    Provide a new lock instance to be used for synchronization.
    """
    return _LockFactory().create_lock()


def get_condition(lock: Optional[threading.Lock] = None) -> threading.Condition:
    """
    Provide a condition variable, optionally bound to an existing lock.

    :param lock: Lock the condition should share. A new one is created if omitted.
    """
    return _LockFactory().create_condition(lock)


@contextmanager
def with_lock(lock: threading.Lock):
    """
    Acquire the given lock upon entry and release it upon exit.
    """
    lock.acquire()
    try:
        yield
    finally:
        lock.release()
