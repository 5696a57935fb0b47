# scriptcore/core/dispatcher.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Event dispatch across the node tree.

Responsibilities:
- Builds propagation paths, crossing shadow roots for composed events
- Runs capture, at-target and bubble phases with DOM stop/cancel semantics
- Retargets ``target`` and ``related_target`` so shadow internals stay hidden
- Runs activation behavior for mouse clicks
- Isolates listener failures and routes them to the error reporter

Dependencies:
- TreeAdapter for parent and shadow lookups
- A bind callable mapping nodes to their NodeHandle
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, List, NamedTuple, Optional

from scriptcore.core.errors import InvalidStateError, ListenerRuntimeError
from scriptcore.core.events import Event, EventPhase
from scriptcore.core.targets import EventTarget, ListenerEntry, NodeHandle, Window
from scriptcore.interfaces.protocols import ActivationBehavior, TreeAdapter

if TYPE_CHECKING:
    from scriptcore.runtime.monitor import RuntimeMonitor

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[BaseException], None]


class PathEntry(NamedTuple):
    """One step of a propagation path."""

    target: EventTarget
    in_shadow_tree: bool


class _Activation(NamedTuple):
    target: EventTarget
    node: Any
    saved_state: Any


class EventDispatcher:
    """
    Dispatches events to EventTargets.

    Class Invariants:
    1. An event is never dispatched while it is already dispatching
    2. Listener errors never escape ``dispatch``
    3. Event flags are reset when dispatch returns

    :param tree: Tree collaborator. Without it every path is the target alone.
    :param bind: Maps a tree node to its script-visible NodeHandle.
    :param window: Window appended above the main document.
    :param main_document: The node whose parent resolves to ``window``.
    :param activation: Activation behavior provider for click events.
    :param error_reporter: Receives ListenerRuntimeError instances.
    :param monitor: Optional monitor receiving dispatch counters.
    """

    def __init__(
        self,
        tree: Optional[TreeAdapter] = None,
        bind: Optional[Callable[[Any], NodeHandle]] = None,
        window: Optional[Window] = None,
        main_document: Any = None,
        activation: Optional[ActivationBehavior] = None,
        error_reporter: Optional[ErrorReporter] = None,
        monitor: Optional["RuntimeMonitor"] = None,
    ) -> None:
        self._tree = tree
        self._bind = bind
        self._window = window
        self._main_document = main_document
        self._activation = activation
        self._error_reporter = error_reporter
        self._monitor = monitor

    def set_error_reporter(self, error_reporter: Optional[ErrorReporter]) -> None:
        self._error_reporter = error_reporter

    def set_main_document(self, document: Any) -> None:
        self._main_document = document

    def dispatch(self, target: EventTarget, event: Event, trusted: bool = False) -> bool:
        """
        Dispatch ``event`` to ``target``.

        :param trusted: True for events fired by the runtime itself.
        :return: False if the event was cancelled.
        :raises InvalidStateError: If the event is already being dispatched.
        """
        if event.dispatching:
            raise InvalidStateError("The event is already being dispatched")

        event._dispatching = True
        event.is_trusted = trusted
        event._target = target
        related_target = getattr(event, "related_target", None)
        clear_targets = self._in_shadow_tree(target) or self._in_shadow_tree(related_target)
        previous_window_event = self._window.event if self._window is not None else None
        activation = None
        try:
            path = self.build_path(target, event)
            event._path = [entry.target for entry in path]
            activation = self._pre_activate(path, event)
            self._run_phases(path, event, related_target)
        finally:
            if self._window is not None:
                self._window._set_current_event(previous_window_event)
            event._dispatching = False
            event._phase = EventPhase.NONE
            event._current_target = None
            event._stop_propagation = False
            event._stop_immediate = False
            event._path = []
            if clear_targets:
                # Shadow internals are not exposed once dispatch ends
                event._target = None
                related_target = None
            else:
                event._target = target
            if hasattr(event, "_related_target"):
                event._related_target = related_target
        if self._monitor is not None:
            self._monitor.increment("events.dispatched")

        not_cancelled = not event.default_prevented
        if activation is not None:
            self._finish_activation(activation, event)
        return not_cancelled

    def build_path(self, target: EventTarget, event: Event) -> List[PathEntry]:
        """
        Target first, then each ancestor outward. The main document is followed
        by the window.
        """
        path = [PathEntry(target, self._in_shadow_tree(target))]
        if not isinstance(target, NodeHandle) or self._tree is None or self._bind is None:
            return path

        node = target.node
        while True:
            if self._tree.is_shadow_root(node):
                if not event.composed:
                    break
                parent = self._tree.shadow_host(node)
            else:
                parent = self._tree.parent_of(node)
            if parent is None:
                if self._window is not None and node is self._main_document:
                    path.append(PathEntry(self._window, False))
                break
            handle = self._bind(parent)
            path.append(PathEntry(handle, self._in_shadow_tree(handle)))
            node = parent
        return path

    def report_error(self, error: BaseException) -> None:
        """Route an isolated error to the configured reporter, or log it."""
        if self._error_reporter is None:
            logger.error("Uncaught listener error: %s", error, exc_info=error)
            return
        try:
            self._error_reporter(error)
        except Exception:
            logger.exception("Error reporter failed")

    def _run_phases(self, path: List[PathEntry], event: Event, related_target: Optional[EventTarget] = None) -> None:
        target_entry = path[0]
        origin = target_entry.target

        event._phase = EventPhase.CAPTURING_PHASE
        for entry in reversed(path[1:]):
            self._invoke(entry, event, True, origin, related_target)
            if event._stop_propagation:
                return

        event._phase = EventPhase.AT_TARGET
        self._invoke(target_entry, event, True, origin, related_target)
        if event._stop_propagation:
            return
        self._invoke(target_entry, event, False, origin, related_target)
        if event._stop_propagation or not event.bubbles:
            return

        event._phase = EventPhase.BUBBLING_PHASE
        for entry in path[1:]:
            self._invoke(entry, event, False, origin, related_target)
            if event._stop_propagation:
                return

    def _invoke(
        self,
        entry: PathEntry,
        event: Event,
        capture: bool,
        origin: EventTarget,
        related_target: Optional[EventTarget],
    ) -> None:
        event._current_target = entry.target
        event._target = self.retarget(origin, entry.target)
        if related_target is not None:
            event._related_target = self.retarget(related_target, entry.target)
        for listener in entry.target.listeners_for(event.type):
            if listener.removed or listener.capture != capture:
                continue
            if listener.once:
                entry.target._remove_entry(listener)
            self._call_listener(listener, entry, event)
            if event._stop_immediate:
                return

    def _call_listener(self, listener: ListenerEntry, entry: PathEntry, event: Event) -> None:
        if self._window is not None:
            self._window._set_current_event(None if entry.in_shadow_tree else event)
        event._in_passive_listener = listener.passive
        try:
            callback = listener.callback
            if not callable(callback):
                # Handler objects are resolved on every invocation
                callback = getattr(listener.callback, "handle_event", None)
                if not callable(callback):
                    raise TypeError("Listener has no callable handle_event")
            callback(event)
        except Exception as exc:
            error = ListenerRuntimeError(f"Uncaught error in {event.type!r} listener: {exc}", listener, event)
            error.__cause__ = exc
            if self._monitor is not None:
                self._monitor.record_error("listener", exc, event_type=event.type)
            self.report_error(error)
        finally:
            event._in_passive_listener = False

    def _pre_activate(self, path: List[PathEntry], event: Event) -> Optional[_Activation]:
        if self._activation is None or event.type != "click" or getattr(event, "button", None) is None:
            return None
        candidates = path if event.bubbles else path[:1]
        for entry in candidates:
            if not isinstance(entry.target, NodeHandle):
                continue
            node = entry.target.node
            if self._activation.has_activation_behavior(node):
                return _Activation(entry.target, node, self._activation.pre_activate(node))
        return None

    def _finish_activation(self, activation: _Activation, event: Event) -> None:
        if event.default_prevented:
            self._activation.cancel_activation(activation.node, activation.saved_state)
            return
        if not self._activation.post_activate(activation.node, activation.saved_state):
            return
        for event_type in ("input", "change"):
            self.dispatch(activation.target, Event(event_type, bubbles=True, cancelable=False), trusted=True)

    def retarget(self, target: Any, against: Any) -> Any:
        """
        Hide shadow internals of ``target`` from listeners on ``against``.

        Walks ``target`` out to its shadow hosts until its root is not a
        shadow root, or that root is a shadow-including ancestor of ``against``.
        """
        if not isinstance(target, NodeHandle) or self._tree is None or self._bind is None:
            return target
        other = against.node if isinstance(against, NodeHandle) else None
        node = target.node
        while True:
            root = self._tree.root_of(node)
            if not self._tree.is_shadow_root(root):
                break
            if other is not None and self._is_shadow_including_ancestor(root, other):
                break
            node = self._tree.shadow_host(root)
        return target if node is target.node else self._bind(node)

    def _is_shadow_including_ancestor(self, ancestor: Any, node: Any) -> bool:
        while node is not None:
            if node is ancestor:
                return True
            if self._tree.is_shadow_root(node):
                node = self._tree.shadow_host(node)
            else:
                node = self._tree.parent_of(node)
        return False

    def _in_shadow_tree(self, target: EventTarget) -> bool:
        if self._tree is None or not isinstance(target, NodeHandle):
            return False
        return bool(self._tree.is_shadow_root(self._tree.root_of(target.node)))
