# scriptcore/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Any, Dict, Optional

# Legacy numeric codes exposed on DOMException.code. Names without a legacy
# code report 0.
DOM_EXCEPTION_CODES: Dict[str, int] = {
    "IndexSizeError": 1,
    "HierarchyRequestError": 3,
    "WrongDocumentError": 4,
    "InvalidCharacterError": 5,
    "NoModificationAllowedError": 7,
    "NotFoundError": 8,
    "NotSupportedError": 9,
    "InvalidStateError": 11,
    "SyntaxError": 12,
    "InvalidModificationError": 13,
    "NamespaceError": 14,
    "InvalidAccessError": 15,
    "TypeMismatchError": 17,
    "SecurityError": 18,
    "NetworkError": 19,
    "AbortError": 20,
    "URLMismatchError": 21,
    "QuotaExceededError": 22,
    "TimeoutError": 23,
    "InvalidNodeTypeError": 24,
    "DataCloneError": 25,
}


class ScriptCoreError(Exception):
    """
    Base exception class for errors raised by the script coordination core.

    :param message: Human readable description.
    :param details: Optional structured context for logging and monitoring.
    """

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def name(self) -> str:
        return type(self).__name__


class DOMException(ScriptCoreError):
    """
    Script-visible exception carrying a DOM error name and its legacy code.
    """

    default_name = "Error"

    def __init__(
        self, message: str = "", name: Optional[str] = None, details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, details)
        self._name = name or self.default_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def code(self) -> int:
        return DOM_EXCEPTION_CODES.get(self._name, 0)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, message={self.message!r})"


class AbortError(DOMException):
    """
    Raised or used as a rejection reason when an operation is cancelled by a signal.
    """

    default_name = "AbortError"


class SignalTimeoutError(DOMException):
    """
    Abort reason of a signal created with a timeout. Reports the name
    ``TimeoutError`` to script.
    """

    default_name = "TimeoutError"


class InvalidStateError(DOMException):
    """
    Raised when an object is used in a state that does not allow the operation,
    such as re-dispatching an event mid-dispatch or reading a body twice.
    """

    default_name = "InvalidStateError"


class NotSupportedError(DOMException):
    """
    Raised when a value is syntactically valid but not supported.
    """

    default_name = "NotSupportedError"


class TransportError(ScriptCoreError):
    """
    Base class for failures of the transport collaborator.
    """


class NetworkError(TransportError):
    """
    Raised when a request could not be completed by the transport.
    """


class RedirectPolicyError(TransportError):
    """
    Raised when a redirect response is received while redirect mode is ``error``.
    """


class TaskError(ScriptCoreError):
    """
    Wraps an exception raised by a scheduled task. The original exception is
    available as ``__cause__``.
    """

    def __init__(self, message: str, task: Any = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.task = task


class ListenerRuntimeError(ScriptCoreError):
    """
    Wraps an exception raised inside an event listener. The original exception
    is available as ``__cause__``.
    """

    def __init__(self, message: str, listener: Any = None, event: Any = None) -> None:
        super().__init__(message, {"event_type": getattr(event, "type", None)})
        self.listener = listener
        self.event = event


class ConfigurationError(ScriptCoreError, ValueError):
    """
    Raised when runtime configuration values are invalid.
    """
