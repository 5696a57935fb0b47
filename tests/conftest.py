# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import threading

import httpx
import pytest


class FakeClock:
    """Monotonic clock advanced by hand, in seconds."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


def default_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"OK")


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests driving a full ScriptContext")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reported_errors():
    return []


@pytest.fixture
def scheduler(clock, reported_errors):
    from scriptcore.runtime.scheduler import TaskScheduler

    return TaskScheduler(clock=clock, error_sink=reported_errors.append)


@pytest.fixture
def drain():
    """Tick a scheduler until nothing is runnable right now."""

    def _drain(scheduler, limit: int = 1000) -> int:
        ticks = 0
        while scheduler.has_runnable_work():
            scheduler.tick()
            ticks += 1
            assert ticks < limit, "scheduler did not settle"
        return ticks

    return _drain


@pytest.fixture
def make_context():
    """
    Factory for ScriptContexts whose fetch goes to an ``httpx.MockTransport``.
    Every context created is closed after the test.
    """
    from scriptcore.config import RuntimeConfig
    from scriptcore.runtime.context import ScriptContext
    from scriptcore.runtime.transport import HttpxTransport

    created = []

    def _factory(handler=None, clock=None, **config):
        transport = HttpxTransport(transport=httpx.MockTransport(handler or default_handler))
        context = ScriptContext(RuntimeConfig(**config), transport=transport, clock=clock)
        created.append((context, transport))
        return context

    yield _factory
    for context, transport in created:
        context.close()
        transport.close()


@pytest.fixture
def context(make_context):
    return make_context()


@pytest.fixture
def executor(context):
    from scriptcore.runtime.executor import Executor

    return Executor(context)


@pytest.fixture(autouse=True)
def cleanup_threads():
    yield
    # Cleanup any remaining threads after each test
    for thread in threading.enumerate():
        if thread != threading.current_thread() and thread.is_alive() and not thread.daemon:
            thread.join(timeout=1.0)
