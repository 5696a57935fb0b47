# scriptcore/runtime/bridge.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Hand-off between worker threads and the script thread.

Responsibilities:
- Runs blocking operations on a thread pool
- Races natural completion against signal cancellation under a settle-once guard
- Delivers exactly one outcome to script, always through a macrotask

Workers never touch script-visible state. They only call
``TaskScheduler.queue_macrotask``.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from scriptcore.core.errors import AbortError, InvalidStateError
from scriptcore.core.signals import AbortSignal
from scriptcore.runtime.concurrency import get_lock, with_lock
from scriptcore.runtime.monitor import RuntimeMonitor
from scriptcore.runtime.promise import Promise
from scriptcore.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

Operation = Callable[["CancelContext"], Any]


class Disposition(Enum):
    """How a pending operation ended."""

    SUCCESS = auto()
    ERROR = auto()
    ABORTED = auto()


class CancelContext:
    """
    Cooperative cancellation handed to the worker. Cancelling is advisory:
    workers check ``cancelled`` or register ``on_cancel`` callbacks.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = get_lock()
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with with_lock(self._lock):
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancel callback failed")

    def on_cancel(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` when cancelled, immediately if already cancelled."""
        with with_lock(self._lock):
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AbortError("The operation was aborted.")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class PendingOperation:
    """
    Bookkeeping for one in-flight operation. ``settle`` is the only place
    the worker and the script thread synchronize.
    """

    def __init__(self, signal: Optional[AbortSignal], cancel_context: CancelContext) -> None:
        self.signal = signal
        self.cancel_context = cancel_context
        self._lock = get_lock()
        self._disposition: Optional[Disposition] = None
        self.abort_listener: Optional[Callable[[], None]] = None

    @property
    def disposition(self) -> Optional[Disposition]:
        with with_lock(self._lock):
            return self._disposition

    @property
    def settled(self) -> bool:
        return self.disposition is not None

    def settle(self, disposition: Disposition) -> bool:
        """
        Claim the outcome.

        :return: True for the first caller only.
        """
        with with_lock(self._lock):
            if self._disposition is not None:
                return False
            self._disposition = disposition
            return True


class AsyncBridge:
    """
    Starts operations on worker threads and settles their promises on the
    script thread.

    :param scheduler: Scheduler receiving settlement macrotasks.
    :param max_workers: Size of the worker pool.
    :param monitor: Optional monitor receiving bridge counters.
    """

    def __init__(self, scheduler: TaskScheduler, max_workers: int = 4, monitor: Optional[RuntimeMonitor] = None):
        self._scheduler = scheduler
        self._monitor = monitor
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scriptcore-io")
        self._lock = get_lock()
        self._in_flight: Dict[PendingOperation, Promise] = {}
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Operations whose outcome has not been claimed yet."""
        with with_lock(self._lock):
            return len(self._in_flight)

    def start_operation(
        self,
        operation: Operation,
        signal: Optional[AbortSignal] = None,
        on_success: Optional[Callable[[Any], Any]] = None,
    ) -> Promise:
        """
        Run ``operation(cancel_context)`` on a worker and return a promise for
        its result. Never raises: every failure becomes a rejection.

        :param operation: Blocking callable executed on a worker thread.
        :param signal: Optional signal cancelling the operation.
        :param on_success: Converts the worker result on the script thread
            before the promise is fulfilled.
        """
        promise = Promise(self._scheduler)
        if signal is not None and signal.aborted:
            promise.reject(signal.reason)
            return promise
        if self._closed:
            promise.reject(InvalidStateError("The bridge has been shut down"))
            return promise

        pending = PendingOperation(signal, CancelContext())
        with with_lock(self._lock):
            self._in_flight[pending] = promise
        self._count("bridge.started")

        if signal is not None:

            def _on_abort() -> None:
                if pending.settle(Disposition.ABORTED):
                    pending.cancel_context.cancel()
                    self._scheduler.queue_macrotask(self._deliver_abort, pending, promise)
                    self._finish(pending)

            pending.abort_listener = _on_abort
            signal.add_abort_listener(_on_abort)

        try:
            self._pool.submit(self._run, operation, pending, promise, on_success)
        except RuntimeError as exc:
            # Pool already shut down
            if pending.settle(Disposition.ERROR):
                self._finish(pending)
                self._detach(pending)
                promise.reject(InvalidStateError(f"Could not start operation: {exc}"))
        return promise

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting operations, abort every operation still in flight and
        release the worker pool. Aborted promises reject with ``AbortError``
        once their settlement macrotask runs.
        """
        self._closed = True
        with with_lock(self._lock):
            in_flight = list(self._in_flight.items())
        for pending, promise in in_flight:
            if pending.settle(Disposition.ABORTED):
                pending.cancel_context.cancel()
                self._scheduler.queue_macrotask(self._deliver_shutdown, pending, promise)
                self._finish(pending)
        if in_flight:
            logger.debug("Aborted %d in-flight operations on shutdown", len(in_flight))
        self._pool.shutdown(wait=wait)

    def _run(self, operation: Operation, pending: PendingOperation, promise: Promise, on_success) -> None:
        # Worker thread
        if pending.settled:
            return
        try:
            result = operation(pending.cancel_context)
        except Exception as exc:
            if pending.settle(Disposition.ERROR):
                self._scheduler.queue_macrotask(self._deliver_error, pending, promise, exc)
                self._finish(pending)
            else:
                logger.debug("Dropping error of settled operation: %r", exc)
            return
        if pending.settle(Disposition.SUCCESS):
            self._scheduler.queue_macrotask(self._deliver_success, pending, promise, result, on_success)
            self._finish(pending)
        else:
            logger.debug("Dropping result of settled operation")

    def _deliver_success(self, pending: PendingOperation, promise: Promise, result: Any, on_success) -> None:
        self._detach(pending)
        self._count("bridge.fulfilled")
        if on_success is None:
            promise.resolve(result)
            return
        try:
            value = on_success(result)
        except Exception as exc:
            promise.reject(exc)
            return
        promise.resolve(value)

    def _deliver_error(self, pending: PendingOperation, promise: Promise, error: Exception) -> None:
        self._detach(pending)
        self._count("bridge.rejected")
        promise.reject(error)

    def _deliver_abort(self, pending: PendingOperation, promise: Promise) -> None:
        self._detach(pending)
        self._count("bridge.aborted")
        promise.reject(pending.signal.reason)

    def _deliver_shutdown(self, pending: PendingOperation, promise: Promise) -> None:
        self._detach(pending)
        self._count("bridge.aborted")
        promise.reject(AbortError("The bridge has been shut down"))

    def _detach(self, pending: PendingOperation) -> None:
        if pending.signal is not None and pending.abort_listener is not None:
            pending.signal.remove_abort_listener(pending.abort_listener)

    def _finish(self, pending: PendingOperation) -> None:
        with with_lock(self._lock):
            self._in_flight.pop(pending, None)

    def _count(self, name: str) -> None:
        if self._monitor is not None:
            self._monitor.increment(name)
