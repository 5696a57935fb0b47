# tests/unit/runtime/test_executor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import threading
import time

import pytest

from scriptcore.runtime.executor import AsyncExecutor, Executor


def test_run_until_idle_runs_timers_in_order(context, executor) -> None:
    order = []
    context.set_timeout(order.append, 20, "late")
    context.set_timeout(order.append, 5, "early")
    context.queue_microtask(order.append, "micro")

    assert executor.run_until_idle(timeout=5.0) is True
    assert order == ["micro", "early", "late"]
    assert executor.running is False


def test_run_until_idle_times_out_with_live_interval(context, executor) -> None:
    fired = []
    context.set_interval(fired.append, 1, "tick")

    assert executor.run_until_idle(timeout=0.1) is False
    assert len(fired) >= 1


def test_run_until_predicate(context, executor) -> None:
    counter = []
    timer_id = context.set_interval(lambda: counter.append(1), 1)

    assert executor.run_until(lambda: len(counter) >= 3, timeout=5.0) is True
    context.clear_interval(timer_id)
    assert executor.run_until_idle(timeout=1.0) is True


def test_waits_for_in_flight_operations(context, executor) -> None:
    promise = context.bridge.start_operation(lambda cancel_context: time.sleep(0.05) or "slow")

    assert executor.run_until_idle(timeout=5.0) is True
    assert promise.value == "slow"


def test_stop_from_another_thread(context, executor) -> None:
    context.set_interval(lambda: None, 10)
    stopper = threading.Timer(0.1, executor.stop)
    stopper.start()

    executor.run()

    stopper.join()
    assert executor.running is False


@pytest.mark.asyncio
async def test_async_executor_runs_until_idle(context) -> None:
    order = []
    context.set_timeout(order.append, 5, "timer")
    promise = context.promise()
    promise.then(order.append)
    promise.resolve("reaction")

    executor = AsyncExecutor(context)
    assert await executor.run_until_idle(timeout=5.0) is True
    assert order == ["reaction", "timer"]


@pytest.mark.asyncio
async def test_async_executor_run_until_timeout(context) -> None:
    context.set_interval(lambda: None, 1)
    executor = AsyncExecutor(context, poll_interval=0.005)

    assert await executor.run_until(lambda: False, timeout=0.05) is False
    assert executor.running is False
