# scriptcore/core/events.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Event records passed to listeners during dispatch.

Architecture:
- Event holds the per-dispatch flags the dispatcher drives
- CustomEvent, MouseEvent and ErrorEvent add their payloads

Flags are owned by the dispatcher while ``dispatching`` is True. Script may
only influence them through prevent_default and the stop methods.
"""

from __future__ import annotations

import time
from enum import IntEnum
from typing import Any, List, Optional


class EventPhase(IntEnum):
    """Dispatch phase reported by ``Event.event_phase``."""

    NONE = 0
    CAPTURING_PHASE = 1
    AT_TARGET = 2
    BUBBLING_PHASE = 3


class Event:
    """
    A dispatchable event.

    :param type: Event type, such as ``click``.
    :param bubbles: Whether the bubbling phase runs.
    :param cancelable: Whether prevent_default has an effect.
    :param composed: Whether propagation crosses shadow roots to their host.
    """

    NONE = EventPhase.NONE
    CAPTURING_PHASE = EventPhase.CAPTURING_PHASE
    AT_TARGET = EventPhase.AT_TARGET
    BUBBLING_PHASE = EventPhase.BUBBLING_PHASE

    def __init__(self, type: str, bubbles: bool = False, cancelable: bool = False, composed: bool = False) -> None:
        if type is None:
            raise TypeError("Event type is required")
        self._type = str(type)
        self.bubbles = bool(bubbles)
        self.cancelable = bool(cancelable)
        self.composed = bool(composed)
        self.is_trusted = False
        self.time_stamp = time.time() * 1000.0
        self._target: Any = None
        self._current_target: Any = None
        self._phase = EventPhase.NONE
        self._path: List[Any] = []
        self._canceled = False
        self._stop_propagation = False
        self._stop_immediate = False
        self._dispatching = False
        self._in_passive_listener = False

    @property
    def type(self) -> str:
        return self._type

    @property
    def target(self) -> Any:
        return self._target

    @property
    def src_element(self) -> Any:
        return self._target

    @property
    def current_target(self) -> Any:
        return self._current_target

    @property
    def event_phase(self) -> EventPhase:
        return self._phase

    @property
    def default_prevented(self) -> bool:
        return self._canceled

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    def prevent_default(self) -> None:
        # Ignored for non-cancelable events and inside passive listeners
        if self.cancelable and not self._in_passive_listener:
            self._canceled = True

    def stop_propagation(self) -> None:
        self._stop_propagation = True

    def stop_immediate_propagation(self) -> None:
        self._stop_propagation = True
        self._stop_immediate = True

    @property
    def propagation_stopped(self) -> bool:
        return self._stop_propagation

    @property
    def cancel_bubble(self) -> bool:
        return self._stop_propagation

    @cancel_bubble.setter
    def cancel_bubble(self, value: bool) -> None:
        # Legacy setter can only stop propagation, never resume it
        if value:
            self._stop_propagation = True

    @property
    def return_value(self) -> bool:
        return not self._canceled

    @return_value.setter
    def return_value(self, value: bool) -> None:
        if not value:
            self.prevent_default()

    def composed_path(self) -> List[Any]:
        """
        Targets the event propagates through, target first. Empty outside dispatch.
        """
        if not self._dispatching:
            return []
        return list(self._path)

    def init_event(self, type: str, bubbles: bool = False, cancelable: bool = False) -> None:
        """
        Legacy re-initialization. Has no effect while the event is being dispatched.
        """
        if self._dispatching:
            return
        self._type = str(type)
        self.bubbles = bool(bubbles)
        self.cancelable = bool(cancelable)
        self._target = None
        self._canceled = False
        self._stop_propagation = False
        self._stop_immediate = False
        self.is_trusted = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self._type!r}, phase={self._phase.name})"


class CustomEvent(Event):
    """Event carrying an arbitrary ``detail`` payload."""

    def __init__(
        self, type: str, detail: Any = None, bubbles: bool = False, cancelable: bool = False, composed: bool = False
    ) -> None:
        super().__init__(type, bubbles, cancelable, composed)
        self.detail = detail

    def init_custom_event(self, type: str, bubbles: bool = False, cancelable: bool = False, detail: Any = None) -> None:
        if self._dispatching:
            return
        self.init_event(type, bubbles, cancelable)
        self.detail = detail


class MouseEvent(Event):
    """
    Pointer event. The presence of ``button`` is what enables activation
    behavior for ``click``.
    """

    def __init__(
        self,
        type: str,
        bubbles: bool = False,
        cancelable: bool = False,
        composed: bool = False,
        button: int = 0,
        buttons: int = 0,
        client_x: float = 0,
        client_y: float = 0,
        ctrl_key: bool = False,
        shift_key: bool = False,
        alt_key: bool = False,
        meta_key: bool = False,
        related_target: Any = None,
    ) -> None:
        super().__init__(type, bubbles, cancelable, composed)
        self._related_target = related_target
        self.button = button
        self.buttons = buttons
        self.client_x = client_x
        self.client_y = client_y
        self.ctrl_key = ctrl_key
        self.shift_key = shift_key
        self.alt_key = alt_key
        self.meta_key = meta_key

    @property
    def related_target(self) -> Any:
        """Secondary target, retargeted against each current target during dispatch."""
        return self._related_target


class ErrorEvent(Event):
    """Reports an uncaught error on the window."""

    def __init__(
        self,
        type: str = "error",
        message: str = "",
        filename: str = "",
        lineno: int = 0,
        colno: int = 0,
        error: Optional[BaseException] = None,
        bubbles: bool = False,
        cancelable: bool = True,
    ) -> None:
        super().__init__(type, bubbles, cancelable)
        self.message = message
        self.filename = filename
        self.lineno = lineno
        self.colno = colno
        self.error = error
