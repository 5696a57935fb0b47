# scriptcore/core/signals.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Cancellation signals.

An AbortSignal aborts at most once. Abort notification always runs on the
script thread: timeout signals abort from a scheduler timer, never from a
background thread.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional

from scriptcore.core.errors import AbortError, ListenerRuntimeError, SignalTimeoutError
from scriptcore.core.events import Event
from scriptcore.core.targets import EventTarget
from scriptcore.interfaces.types import AbortListener

if TYPE_CHECKING:
    from scriptcore.core.dispatcher import EventDispatcher
    from scriptcore.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

_NOT_GIVEN = object()


def default_abort_reason() -> AbortError:
    return AbortError("signal is aborted without reason")


class AbortSignal(EventTarget):
    """
    Observable, one-way cancellation flag.

    Class Invariants:
    1. ``aborted`` never goes back to False
    2. ``reason`` is set exactly once, when the signal aborts
    3. Abort listeners run in registration order, before the ``abort`` event
    """

    def __init__(self, dispatcher: Optional["EventDispatcher"] = None) -> None:
        super().__init__(dispatcher)
        self._aborted = False
        self._reason: Any = None
        self._abort_listeners: List[AbortListener] = []
        self.onabort: Optional[Callable[[Event], Any]] = None

    @classmethod
    def aborted_with(cls, reason: Any = _NOT_GIVEN, dispatcher: Optional["EventDispatcher"] = None) -> "AbortSignal":
        """
        Create a signal that is already aborted. No abort event is fired.
        """
        signal = cls(dispatcher)
        signal._aborted = True
        signal._reason = default_abort_reason() if reason is _NOT_GIVEN or reason is None else reason
        return signal

    @classmethod
    def timeout(
        cls, scheduler: "TaskScheduler", milliseconds: float, dispatcher: Optional["EventDispatcher"] = None
    ) -> "AbortSignal":
        """
        Create a signal that aborts with a ``TimeoutError`` after ``milliseconds``.
        """
        if milliseconds is None or milliseconds < 0:
            raise TypeError("AbortSignal.timeout requires a non-negative delay")
        signal = cls(dispatcher)
        scheduler.arm_timer(signal.abort, milliseconds, args=(SignalTimeoutError("signal timed out"),))
        return signal

    @classmethod
    def any(cls, signals: Iterable["AbortSignal"], dispatcher: Optional["EventDispatcher"] = None) -> "AbortSignal":
        """
        Create a signal that aborts as soon as any of ``signals`` aborts.
        """
        sources = list(signals)
        for source in sources:
            if source.aborted:
                return cls.aborted_with(source.reason, dispatcher)

        combined = cls(dispatcher)
        for source in sources:
            source.add_abort_listener(lambda source=source: combined.abort(source.reason))
        return combined

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def abort(self, reason: Any = _NOT_GIVEN) -> None:
        """
        Abort the signal. Only the first call has an effect.
        """
        if self._aborted:
            return
        self._aborted = True
        self._reason = default_abort_reason() if reason is _NOT_GIVEN or reason is None else reason
        logger.debug("Signal aborted: %r", self._reason)

        listeners, self._abort_listeners = self._abort_listeners, []
        for listener in listeners:
            self._call_isolated(listener)

        event = Event("abort")
        self._get_dispatcher().dispatch(self, event, trusted=True)
        if self.onabort is not None:
            self._call_isolated(self.onabort, event)

    def add_abort_listener(self, listener: AbortListener) -> None:
        if listener not in self._abort_listeners:
            self._abort_listeners.append(listener)

    def remove_abort_listener(self, listener: AbortListener) -> None:
        if listener in self._abort_listeners:
            self._abort_listeners.remove(listener)

    def throw_if_aborted(self) -> None:
        """
        :raises: The abort reason if aborted. Non-exception reasons are wrapped in AbortError.
        """
        if not self._aborted:
            return
        if isinstance(self._reason, BaseException):
            raise self._reason
        raise AbortError(str(self._reason), details={"reason": self._reason})

    def _call_isolated(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:
            error = ListenerRuntimeError(f"Uncaught error in abort handler: {exc}", callback)
            error.__cause__ = exc
            self._get_dispatcher().report_error(error)

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self._aborted}, reason={self._reason!r})"


class AbortController:
    """
    Owns an AbortSignal and aborts it on request.
    """

    def __init__(self, dispatcher: Optional["EventDispatcher"] = None) -> None:
        self._signal = AbortSignal(dispatcher)

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def abort(self, reason: Any = _NOT_GIVEN) -> None:
        self._signal.abort(reason)
