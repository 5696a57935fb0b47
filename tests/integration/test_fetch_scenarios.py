# tests/integration/test_fetch_scenarios.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import json
import threading

import httpx
import pytest

from scriptcore.core.errors import AbortError, NetworkError, RedirectPolicyError, SignalTimeoutError
from scriptcore.runtime.executor import Executor

pytestmark = pytest.mark.integration


def test_fetch_created_response(make_context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, content=b"Created", headers={"X-Custom": "custom-value"})

    context = make_context(handler)
    executor = Executor(context)
    observed = {}

    def on_response(response):
        observed["status"] = response.status
        observed["ok"] = response.ok
        observed["status_text"] = response.status_text
        observed["header"] = response.headers.get("x-custom")
        return response.text()

    context.fetch("https://api.example.com/items", method="POST", body="{}").then(on_response).then(
        lambda text: observed.setdefault("text", text)
    )

    assert executor.run_until_idle(timeout=5.0) is True
    assert observed == {
        "status": 201,
        "ok": True,
        "status_text": "Created",
        "header": "custom-value",
        "text": "Created",
    }


def test_fetch_json_round_trip_through_handler(make_context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        return httpx.Response(200, json={"echo": payload, "agent": request.headers["user-agent"]})

    context = make_context(handler, user_agent="scriptcore-tests")
    result = context.fetch("https://api.example.com/echo", method="POST", body=json.dumps({"n": 1})).then(
        lambda response: response.json()
    )

    assert Executor(context).run_until_idle(timeout=5.0) is True
    assert result.value == {"echo": {"n": 1}, "agent": "scriptcore-tests"}


def test_abort_before_response_rejects_first(make_context) -> None:
    release = threading.Event()
    handler_returned = []

    def handler(request: httpx.Request) -> httpx.Response:
        release.wait(5.0)
        handler_returned.append(True)
        return httpx.Response(200, content=b"late")

    context = make_context(handler)
    executor = Executor(context)
    controller = context.abort_controller()
    promise = context.fetch("https://api.example.com/slow", signal=controller.signal)
    controller.abort()

    try:
        assert executor.run_until(lambda: promise.settled, timeout=5.0) is True
        assert handler_returned == []
        assert isinstance(promise.reason, AbortError)
        assert promise.reason.name == "AbortError"
    finally:
        release.set()

    assert executor.run_until_idle(timeout=5.0) is True
    assert isinstance(promise.reason, AbortError)


def test_pre_aborted_signal_never_reaches_network(make_context) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    context = make_context(handler)
    signal = context.abort_signal_aborted()
    promise = context.fetch("https://api.example.com/", signal=signal)

    assert promise.reason is signal.reason
    assert Executor(context).run_until_idle(timeout=5.0) is True
    assert calls == []


def test_timeout_signal_aborts_slow_fetch(make_context) -> None:
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        release.wait(5.0)
        return httpx.Response(200)

    context = make_context(handler)
    executor = Executor(context)
    promise = context.fetch("https://api.example.com/slow", signal=context.abort_signal_timeout(20))

    try:
        assert executor.run_until(lambda: promise.settled, timeout=5.0) is True
    finally:
        release.set()

    assert isinstance(promise.reason, SignalTimeoutError)
    assert promise.reason.name == "TimeoutError"


def test_network_failure_rejects(make_context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    context = make_context(handler)
    caught = []
    context.fetch("https://down.example.com/").catch(caught.append)

    assert Executor(context).run_until_idle(timeout=5.0) is True
    assert isinstance(caught[0], NetworkError)


def test_redirect_modes(make_context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://api.example.com/new"})
        return httpx.Response(200, content=b"new")

    context = make_context(handler)
    followed = context.fetch("https://api.example.com/old")
    manual = context.fetch("https://api.example.com/old", redirect="manual")
    refused = context.fetch("https://api.example.com/old", redirect="error")

    assert Executor(context).run_until_idle(timeout=5.0) is True
    assert followed.value.status == 200
    assert followed.value.redirected is True
    assert followed.value.url == "https://api.example.com/new"
    assert manual.value.status == 301
    assert isinstance(refused.reason, RedirectPolicyError)


def test_bridge_counters_after_fetches(make_context) -> None:
    context = make_context()
    context.fetch("https://api.example.com/a")
    context.fetch("https://api.example.com/b")

    assert Executor(context).run_until_idle(timeout=5.0) is True
    assert context.monitor.get_metric("bridge.started") == 2
    assert context.monitor.get_metric("bridge.fulfilled") == 2
    assert context.bridge.in_flight == 0
