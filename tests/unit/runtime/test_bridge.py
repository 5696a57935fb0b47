# tests/unit/runtime/test_bridge.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import threading
import time

import pytest

from scriptcore.core.errors import AbortError, InvalidStateError
from scriptcore.core.signals import AbortController, AbortSignal
from scriptcore.runtime.bridge import AsyncBridge, CancelContext, Disposition, PendingOperation
from scriptcore.runtime.monitor import RuntimeMonitor
from scriptcore.runtime.promise import PromiseState

# -----------------------------------------------------------------------------
# TEST FIXTURES
# -----------------------------------------------------------------------------


@pytest.fixture
def monitor() -> RuntimeMonitor:
    return RuntimeMonitor()


@pytest.fixture
def bridge(scheduler, monitor):
    bridge = AsyncBridge(scheduler, max_workers=2, monitor=monitor)
    yield bridge
    bridge.shutdown(wait=True)


def settle(scheduler, promise, timeout: float = 5.0) -> None:
    """Tick until ``promise`` settles, waiting for worker deliveries."""
    deadline = time.monotonic() + timeout
    while not promise.settled:
        assert time.monotonic() < deadline, "promise did not settle"
        if not scheduler.has_runnable_work():
            scheduler.wait_for_work(0.05)
        scheduler.tick()


# -----------------------------------------------------------------------------
# SETTLEMENT
# -----------------------------------------------------------------------------


def test_success_is_delivered_by_macrotask(bridge, scheduler, monitor) -> None:
    done = threading.Event()

    def operation(cancel_context):
        done.set()
        return 42

    promise = bridge.start_operation(operation)
    assert done.wait(5.0)
    # Completion on the worker never settles the promise directly
    assert promise.state is PromiseState.PENDING

    settle(scheduler, promise)
    assert promise.value == 42
    assert bridge.in_flight == 0
    assert monitor.get_metric("bridge.started") == 1
    assert monitor.get_metric("bridge.fulfilled") == 1


def test_worker_error_rejects(bridge, scheduler, monitor) -> None:
    def operation(cancel_context):
        raise ConnectionError("down")

    promise = bridge.start_operation(operation)
    settle(scheduler, promise)

    assert isinstance(promise.reason, ConnectionError)
    assert monitor.get_metric("bridge.rejected") == 1


def test_on_success_converts_on_script_thread(bridge, scheduler) -> None:
    threads = []

    def convert(result):
        threads.append(threading.current_thread())
        return result.upper()

    promise = bridge.start_operation(lambda cancel_context: "body", on_success=convert)
    settle(scheduler, promise)

    assert promise.value == "BODY"
    assert threads == [threading.current_thread()]


def test_on_success_error_rejects(bridge, scheduler) -> None:
    def convert(result):
        raise ValueError("cannot convert")

    promise = bridge.start_operation(lambda cancel_context: "body", on_success=convert)
    settle(scheduler, promise)
    assert isinstance(promise.reason, ValueError)


# -----------------------------------------------------------------------------
# CANCELLATION
# -----------------------------------------------------------------------------


def test_pre_aborted_signal_rejects_without_starting(bridge) -> None:
    calls = []
    reason = ValueError("custom reason")
    signal = AbortSignal.aborted_with(reason)

    promise = bridge.start_operation(lambda cancel_context: calls.append(1), signal)

    assert promise.reason is reason
    assert calls == []
    assert bridge.in_flight == 0


def test_abort_wins_over_later_completion(bridge, scheduler, monitor) -> None:
    started = threading.Event()
    finished = threading.Event()
    observed = []

    def operation(cancel_context):
        started.set()
        cancel_context.wait(5.0)
        observed.append(cancel_context.cancelled)
        finished.set()
        return "too late"

    controller = AbortController()
    promise = bridge.start_operation(operation, controller.signal)
    assert started.wait(5.0)

    controller.abort()
    # The abort is delivered by a macrotask, not synchronously
    assert promise.state is PromiseState.PENDING
    assert bridge.in_flight == 0

    settle(scheduler, promise)
    assert isinstance(promise.reason, AbortError)
    assert promise.reason.name == "AbortError"

    assert finished.wait(5.0)
    assert observed == [True]
    scheduler.tick()
    assert promise.reason.name == "AbortError"
    assert monitor.get_metric("bridge.aborted") == 1
    assert "bridge.fulfilled" not in monitor.metrics


def test_abort_after_delivery_has_no_effect(bridge, scheduler) -> None:
    controller = AbortController()
    promise = bridge.start_operation(lambda cancel_context: "value", controller.signal)
    settle(scheduler, promise)

    controller.abort()
    scheduler.tick()

    assert promise.value == "value"
    assert controller.signal._abort_listeners == []


def test_shutdown_bridge_rejects_new_operations(bridge, scheduler) -> None:
    bridge.shutdown()
    promise = bridge.start_operation(lambda cancel_context: "never")
    assert isinstance(promise.reason, InvalidStateError)


def test_shutdown_aborts_in_flight_operations(bridge, scheduler, monitor) -> None:
    started = threading.Event()
    observed = []

    def operation(cancel_context):
        started.set()
        observed.append(cancel_context.wait(5.0))
        return "late"

    promise = bridge.start_operation(operation)
    assert started.wait(5.0)

    begin = time.monotonic()
    bridge.shutdown(wait=True)

    assert time.monotonic() - begin < 1.0
    assert observed == [True]
    assert bridge.in_flight == 0
    settle(scheduler, promise)
    assert isinstance(promise.reason, AbortError)
    assert monitor.get_metric("bridge.aborted") == 1


# -----------------------------------------------------------------------------
# BUILDING BLOCKS
# -----------------------------------------------------------------------------


def test_pending_operation_settles_once() -> None:
    pending = PendingOperation(None, CancelContext())
    results = []

    def race(disposition):
        results.append(pending.settle(disposition))

    threads = [
        threading.Thread(target=race, args=(Disposition.SUCCESS if i % 2 else Disposition.ABORTED,))
        for i in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert pending.settled


def test_cancel_context_callbacks() -> None:
    context = CancelContext()
    calls = []
    context.on_cancel(lambda: calls.append("registered"))
    context.raise_if_cancelled()

    context.cancel()
    context.cancel()
    context.on_cancel(lambda: calls.append("late"))

    assert calls == ["registered", "late"]
    with pytest.raises(AbortError):
        context.raise_if_cancelled()
    assert context.wait(0) is True
