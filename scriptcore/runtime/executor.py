# scriptcore/runtime/executor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from scriptcore.runtime.context import ScriptContext

logger = logging.getLogger(__name__)


class Executor:
    """
    Drives a ScriptContext's scheduler from the thread that owns the script.
    Blocks between ticks while only future timers or in-flight I/O remain.
    """

    def __init__(self, context: ScriptContext) -> None:
        """
        :param context: Context whose scheduler is driven.
        """
        self.context = context
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def run(self) -> None:
        """
        Tick until ``stop()`` is called, sleeping while there is nothing to run.
        """
        with self._lock:
            self._running = True
        while self.running:
            if not self._step():
                self._idle(None)

    def run_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Tick until no queued work, armed timers or in-flight operations remain.

        :param timeout: Maximum seconds to run, None for no limit.
        :return: True if the context became idle, False on timeout or stop.
        """
        return self.run_until(lambda: not self.context.has_pending_work(), timeout)

    def run_until(self, predicate: Callable[[], bool], timeout: Optional[float] = None) -> bool:
        """
        Tick until ``predicate()`` is true. The predicate is checked between ticks.

        :return: True if the predicate became true, False on timeout or stop.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            self._running = True
        try:
            while self.running:
                if predicate():
                    return True
                if deadline is not None and time.monotonic() >= deadline:
                    logger.debug("run_until timed out after %ss", timeout)
                    return False
                if not self._step():
                    self._idle(deadline)
            return False
        finally:
            with self._lock:
                self._running = False

    def stop(self) -> None:
        """
        Signal the loop to stop after the current tick. Safe from any thread.
        """
        with self._lock:
            self._running = False
        self.context.scheduler.wake()

    def _step(self) -> bool:
        """Tick if anything is runnable. Returns False when the loop should wait."""
        scheduler = self.context.scheduler
        if not scheduler.has_runnable_work():
            return False
        scheduler.tick()
        return True

    def _idle(self, deadline: Optional[float]) -> None:
        wait = self.context.config.idle_poll_interval
        timer_delay = self.context.scheduler.next_timer_delay()
        if timer_delay is not None:
            wait = min(wait, timer_delay)
        if deadline is not None:
            wait = min(wait, max(0.0, deadline - time.monotonic()))
        self.context.scheduler.wait_for_work(wait)


class AsyncExecutor:
    """
    Asyncio flavour of Executor: yields to the event loop between ticks
    instead of blocking the thread.
    """

    def __init__(self, context: ScriptContext, poll_interval: Optional[float] = None) -> None:
        self.context = context
        self._poll_interval = poll_interval or context.config.idle_poll_interval
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_until_idle(self, timeout: Optional[float] = None) -> bool:
        return await self.run_until(lambda: not self.context.has_pending_work(), timeout)

    async def run_until(self, predicate: Callable[[], bool], timeout: Optional[float] = None) -> bool:
        """
        Tick until ``predicate()`` is true, sleeping on the event loop while
        only timers or in-flight I/O remain.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        scheduler = self.context.scheduler
        self._running = True
        try:
            while self._running:
                if predicate():
                    return True
                if deadline is not None and time.monotonic() >= deadline:
                    return False
                if scheduler.has_runnable_work():
                    scheduler.tick()
                    await asyncio.sleep(0)
                    continue
                delay = scheduler.next_timer_delay()
                wait = self._poll_interval if delay is None else min(self._poll_interval, delay)
                await asyncio.sleep(wait)
            return False
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False
