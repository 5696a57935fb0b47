"""
Core package providing event and mutation semantics.

Architecture:
- Event records and script-visible targets
- EventDispatcher for propagation, activation and listener isolation
- AbortSignal and AbortController for cancellation
- ObjectIdentityCache for stable wrapper identity
- MutationQueue for batched observer delivery

Cross-cutting:
- Single-threaded: everything here runs on the script thread
- Errors are reported through injected reporters
"""

# Import order matters to avoid circular dependencies
from .errors import (
    AbortError,
    ConfigurationError,
    DOMException,
    InvalidStateError,
    ListenerRuntimeError,
    NetworkError,
    NotSupportedError,
    RedirectPolicyError,
    ScriptCoreError,
    SignalTimeoutError,
    TaskError,
    TransportError,
)
from .events import CustomEvent, ErrorEvent, Event, EventPhase, MouseEvent
from .targets import EventTarget, ListenerEntry, NodeHandle, Window
from .dispatcher import EventDispatcher
from .signals import AbortController, AbortSignal
from .identity import ObjectIdentityCache
from .mutations import MutationObserver, MutationQueue, MutationRecord, ObserverOptions

__all__ = [
    "AbortError",
    "ConfigurationError",
    "DOMException",
    "InvalidStateError",
    "ListenerRuntimeError",
    "NetworkError",
    "NotSupportedError",
    "RedirectPolicyError",
    "ScriptCoreError",
    "SignalTimeoutError",
    "TaskError",
    "TransportError",
    "CustomEvent",
    "ErrorEvent",
    "Event",
    "EventPhase",
    "MouseEvent",
    "EventTarget",
    "ListenerEntry",
    "NodeHandle",
    "Window",
    "EventDispatcher",
    "AbortController",
    "AbortSignal",
    "ObjectIdentityCache",
    "MutationObserver",
    "MutationQueue",
    "MutationRecord",
    "ObserverOptions",
]
