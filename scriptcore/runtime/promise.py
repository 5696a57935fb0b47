# scriptcore/runtime/promise.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Tuple

if TYPE_CHECKING:
    from scriptcore.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


class PromiseState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


_Reaction = Tuple[Optional[Callable[[Any], Any]], Optional[Callable[[Any], Any]], "Promise"]


class Promise:
    """
    Script-visible eventual value. Reactions always run as microtasks on the
    owning scheduler, never synchronously from ``resolve`` or ``then``.

    Resolving with another Promise adopts its eventual state.
    """

    def __init__(
        self,
        scheduler: "TaskScheduler",
        executor: Optional[Callable[[Callable[[Any], None], Callable[[Any], None]], Any]] = None,
    ) -> None:
        """
        :param scheduler: Scheduler used to run reactions.
        :param executor: Optional ``executor(resolve, reject)`` run immediately.
            An exception raised by it rejects the promise.
        """
        self._scheduler = scheduler
        self._state = PromiseState.PENDING
        self._result: Any = None
        self._reactions: List[_Reaction] = []
        self._locked = False
        if executor is not None:
            try:
                executor(self.resolve, self.reject)
            except Exception as exc:
                self.reject(exc)

    @classmethod
    def resolved(cls, scheduler: "TaskScheduler", value: Any = None) -> "Promise":
        promise = cls(scheduler)
        promise.resolve(value)
        return promise

    @classmethod
    def rejected(cls, scheduler: "TaskScheduler", reason: Any) -> "Promise":
        promise = cls(scheduler)
        promise.reject(reason)
        return promise

    @property
    def state(self) -> PromiseState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state is not PromiseState.PENDING

    @property
    def value(self) -> Any:
        """Fulfillment value, None unless fulfilled."""
        return self._result if self._state is PromiseState.FULFILLED else None

    @property
    def reason(self) -> Any:
        """Rejection reason, None unless rejected."""
        return self._result if self._state is PromiseState.REJECTED else None

    def resolve(self, value: Any = None) -> None:
        """
        Fulfill with ``value``, or adopt its state when it is a Promise.
        Calls after the first are ignored.
        """
        if self._locked or self.settled:
            return
        if value is self:
            self._settle(PromiseState.REJECTED, TypeError("Chaining cycle detected for promise"))
            return
        if isinstance(value, Promise):
            self._locked = True
            self._scheduler.queue_microtask(value._adopt_into, self)
            return
        self._settle(PromiseState.FULFILLED, value)

    def reject(self, reason: Any = None) -> None:
        if self._locked or self.settled:
            return
        self._settle(PromiseState.REJECTED, reason)

    def then(
        self,
        on_fulfilled: Optional[Callable[[Any], Any]] = None,
        on_rejected: Optional[Callable[[Any], Any]] = None,
    ) -> "Promise":
        """
        Register reactions and return the derived promise.
        """
        child = Promise(self._scheduler)
        reaction = (on_fulfilled, on_rejected, child)
        if self.settled:
            self._scheduler.queue_microtask(self._run_reaction, reaction)
        else:
            self._reactions.append(reaction)
        return child

    def catch(self, on_rejected: Callable[[Any], Any]) -> "Promise":
        return self.then(None, on_rejected)

    def finally_(self, on_finally: Callable[[], Any]) -> "Promise":
        """
        Run ``on_finally`` on either outcome and pass the original outcome
        through, unless ``on_finally`` itself raises.
        """

        def _fulfilled(value: Any) -> Any:
            on_finally()
            return value

        def _rejected(reason: Any) -> Any:
            on_finally()
            raise _PassThroughRejection(reason)

        return self.then(_fulfilled, _rejected)

    def _adopt_into(self, other: "Promise") -> None:
        self.then(other._settle_fulfilled, other._settle_rejected)

    def _settle_fulfilled(self, value: Any) -> None:
        self._locked = False
        self.resolve(value)

    def _settle_rejected(self, reason: Any) -> None:
        self._locked = False
        self.reject(reason)

    def _settle(self, state: PromiseState, result: Any) -> None:
        self._state = state
        self._result = result
        reactions, self._reactions = self._reactions, []
        for reaction in reactions:
            self._scheduler.queue_microtask(self._run_reaction, reaction)

    def _run_reaction(self, reaction: _Reaction) -> None:
        on_fulfilled, on_rejected, child = reaction
        handler = on_fulfilled if self._state is PromiseState.FULFILLED else on_rejected
        if handler is None:
            if self._state is PromiseState.FULFILLED:
                child.resolve(self._result)
            else:
                child.reject(self._result)
            return
        try:
            outcome = handler(self._result)
        except _PassThroughRejection as passthrough:
            child.reject(passthrough.reason)
            return
        except Exception as exc:
            child.reject(exc)
            return
        child.resolve(outcome)

    def __repr__(self) -> str:
        if self._state is PromiseState.PENDING:
            return "Promise(<pending>)"
        return f"Promise(<{self._state.value}>: {self._result!r})"


class _PassThroughRejection(Exception):
    """Carries a non-exception rejection reason through ``finally_``."""

    def __init__(self, reason: Any) -> None:
        super().__init__(repr(reason))
        self.reason = reason
