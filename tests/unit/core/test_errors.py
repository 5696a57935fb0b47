# tests/unit/core/test_errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from scriptcore.core.errors import (
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


def test_base_error_details() -> None:
    error = ScriptCoreError("failed", {"key": "value"})
    assert str(error) == "failed"
    assert error.details == {"key": "value"}
    assert error.name == "ScriptCoreError"
    assert ScriptCoreError().details == {}


@pytest.mark.parametrize(
    "error_class, name, code",
    [
        (AbortError, "AbortError", 20),
        (SignalTimeoutError, "TimeoutError", 23),
        (InvalidStateError, "InvalidStateError", 11),
        (NotSupportedError, "NotSupportedError", 9),
    ],
)
def test_dom_exception_names_and_codes(error_class, name, code) -> None:
    error = error_class("message")
    assert isinstance(error, DOMException)
    assert error.name == name
    assert error.code == code


def test_dom_exception_custom_name() -> None:
    error = DOMException("missing", name="NotFoundError")
    assert error.name == "NotFoundError"
    assert error.code == 8
    assert DOMException("plain").code == 0
    assert "NotFoundError" in repr(error)


def test_transport_error_hierarchy() -> None:
    assert issubclass(NetworkError, TransportError)
    assert issubclass(RedirectPolicyError, TransportError)
    assert issubclass(TransportError, ScriptCoreError)


def test_wrapping_errors_keep_context() -> None:
    task_error = TaskError("task failed", task="task-1")
    assert task_error.task == "task-1"

    class FakeEvent:
        type = "click"

    listener_error = ListenerRuntimeError("listener failed", listener=print, event=FakeEvent())
    assert listener_error.details == {"event_type": "click"}
    assert listener_error.listener is print


def test_configuration_error_is_value_error() -> None:
    assert issubclass(ConfigurationError, ValueError)
