# scriptcore/core/targets.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Script-visible event targets and their listener registries.

Architecture:
- EventTarget keeps per-type listener lists in registration order
- NodeHandle is the script-visible wrapper of a tree node
- Window is the top of every main-document propagation path and the error channel

Listener identity is the (type, callback, capture) triple. Registries are only
touched from the script thread.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Union

from scriptcore.core.errors import ListenerRuntimeError
from scriptcore.core.events import ErrorEvent, Event

if TYPE_CHECKING:
    from scriptcore.core.dispatcher import EventDispatcher
    from scriptcore.core.signals import AbortSignal

logger = logging.getLogger(__name__)

ListenerOptions = Union[bool, Mapping[str, Any], None]


class ListenerEntry:
    """
    One registered listener. ``callback`` is either a callable or an object
    whose ``handle_event`` is looked up when the listener is invoked.
    """

    __slots__ = ("type", "callback", "capture", "once", "passive", "signal", "removed")

    def __init__(
        self,
        type: str,
        callback: Any,
        capture: bool = False,
        once: bool = False,
        passive: bool = False,
        signal: Optional["AbortSignal"] = None,
    ) -> None:
        self.type = type
        self.callback = callback
        self.capture = capture
        self.once = once
        self.passive = passive
        self.signal = signal
        self.removed = False

    def matches(self, type: str, callback: Any, capture: bool) -> bool:
        return self.type == type and self.callback == callback and self.capture == capture

    def __repr__(self) -> str:
        return f"ListenerEntry(type={self.type!r}, capture={self.capture}, once={self.once}, passive={self.passive})"


def _flatten_options(options: ListenerOptions, overrides: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(options, bool):
        flat: Dict[str, Any] = {"capture": options}
    elif options is None:
        flat = {}
    else:
        flat = dict(options)
    flat.update({key: value for key, value in overrides.items() if value is not None})
    return flat


class EventTarget:
    """
    Object that listeners can be registered on and events dispatched to.

    :param dispatcher: Dispatcher used by ``dispatch_event``. A standalone
        dispatcher without tree or window is created on demand if omitted.
    """

    def __init__(self, dispatcher: Optional["EventDispatcher"] = None) -> None:
        self._listeners: Dict[str, List[ListenerEntry]] = {}
        self._dispatcher = dispatcher

    def add_event_listener(
        self,
        type: str,
        listener: Any,
        options: ListenerOptions = None,
        *,
        capture: Optional[bool] = None,
        once: Optional[bool] = None,
        passive: Optional[bool] = None,
        signal: Optional["AbortSignal"] = None,
    ) -> None:
        """
        Register a listener. Registering an identical (type, listener, capture)
        triple again is a no-op, as is registering with an aborted signal.

        :param options: A bool meaning ``capture`` or a mapping of option names.
        """
        if listener is None:
            return
        flat = _flatten_options(options, {"capture": capture, "once": once, "passive": passive, "signal": signal})
        entry_signal = flat.get("signal")
        if entry_signal is not None and entry_signal.aborted:
            return

        entry = ListenerEntry(
            str(type),
            listener,
            capture=bool(flat.get("capture", False)),
            once=bool(flat.get("once", False)),
            passive=bool(flat.get("passive", False)),
            signal=entry_signal,
        )
        entries = self._listeners.setdefault(entry.type, [])
        if any(existing.matches(entry.type, listener, entry.capture) for existing in entries):
            return
        entries.append(entry)
        if entry_signal is not None:
            entry_signal.add_abort_listener(lambda: self._remove_entry(entry))

    def remove_event_listener(
        self, type: str, listener: Any, options: ListenerOptions = None, *, capture: Optional[bool] = None
    ) -> None:
        flat = _flatten_options(options, {"capture": capture})
        wanted_capture = bool(flat.get("capture", False))
        for entry in self._listeners.get(str(type), []):
            if entry.matches(str(type), listener, wanted_capture):
                self._remove_entry(entry)
                return

    def dispatch_event(self, event: Event) -> bool:
        """
        Dispatch a script-created event to this target.

        :return: False if a listener cancelled the event.
        :raises InvalidStateError: If the event is already being dispatched.
        """
        return self._get_dispatcher().dispatch(self, event)

    def listeners_for(self, type: str) -> List[ListenerEntry]:
        """Snapshot of the listeners currently registered for ``type``."""
        return list(self._listeners.get(type, ()))

    def _remove_entry(self, entry: ListenerEntry) -> None:
        entry.removed = True
        entries = self._listeners.get(entry.type)
        if entries and entry in entries:
            entries.remove(entry)
            if not entries:
                del self._listeners[entry.type]

    def _get_dispatcher(self) -> "EventDispatcher":
        if self._dispatcher is None:
            from scriptcore.core.dispatcher import EventDispatcher

            self._dispatcher = EventDispatcher()
        return self._dispatcher


class NodeHandle(EventTarget):
    """
    Script-visible wrapper around a tree node. At most one live handle exists
    per node, handed out by the identity cache.
    """

    def __init__(self, node: Any, dispatcher: Optional["EventDispatcher"] = None) -> None:
        super().__init__(dispatcher)
        self.node = node

    def __repr__(self) -> str:
        return f"NodeHandle({self.node!r})"


class Window(EventTarget):
    """
    Top-level target of the main document. Exposes the event currently being
    dispatched and reports uncaught errors as ``error`` events.
    """

    def __init__(self, dispatcher: Optional["EventDispatcher"] = None) -> None:
        super().__init__(dispatcher)
        self.document: Optional[NodeHandle] = None
        self.onerror: Optional[Callable[[ErrorEvent], Any]] = None
        self._current_event: Optional[Event] = None
        self._reporting = False

    @property
    def event(self) -> Optional[Event]:
        """The event being dispatched, None inside shadow trees and between dispatches."""
        return self._current_event

    def _set_current_event(self, event: Optional[Event]) -> Optional[Event]:
        previous = self._current_event
        self._current_event = event
        return previous

    def report_error(self, error: BaseException) -> None:
        """
        Fire a cancelable ``error`` ErrorEvent for an uncaught error, then
        call ``onerror``. Errors raised while reporting are only logged.
        """
        if self._reporting:
            logger.error("Error raised while reporting an error", exc_info=error)
            return
        cause = error.__cause__ if isinstance(error, ListenerRuntimeError) and error.__cause__ else error
        event = ErrorEvent("error", message=str(cause), error=cause)
        self._reporting = True
        try:
            self._get_dispatcher().dispatch(self, event, trusted=True)
            if self.onerror is not None:
                self.onerror(event)
        except Exception:
            logger.exception("Window error handler failed")
        finally:
            self._reporting = False
        if not event.default_prevented:
            logger.error("Uncaught error: %s", cause, exc_info=cause)
