# tests/unit/runtime/test_context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import threading
import time

import httpx
import pytest

from scriptcore.core.errors import InvalidStateError, SignalTimeoutError, TaskError
from scriptcore.core.events import CustomEvent, ErrorEvent, MouseEvent
from scriptcore.runtime.fetch import Headers, Request, Response
from scriptcore.runtime.promise import Promise


def test_main_document_is_bound_to_window(context) -> None:
    assert context.window.document is context.bind(context.main_document.document)
    assert context.documents == [context.main_document]


def test_bind_is_stable_until_adoption(context) -> None:
    tree = context.main_document
    node = tree.append_child(tree.document, tree.create_element("div"))
    handle = context.bind(node)
    assert context.bind(node) is handle

    tree.remove_child(tree.document, node)
    assert context.bind(node) is handle

    other = context.create_document()
    other.append_child(other.document, node)
    moved = context.bind(node)
    assert moved is not handle
    assert moved.node is node


def test_each_document_has_its_own_mutation_queue(context, drain) -> None:
    other = context.create_document()
    assert context.mutation_queue_for(other) is not context.mutation_queue_for(context.main_document)

    batches = []
    observer = context.mutation_observer(lambda records, obs: batches.append(records), document=other)
    observer.observe(other.document, child_list=True)
    other.append_child(other.document, other.create_element("p"))
    context.main_document.append_child(context.main_document.document, context.main_document.create_element("p"))
    drain(context.scheduler)

    assert len(batches) == 1
    assert batches[0][0].target is context.bind(other.document)


def test_timer_helpers(make_context, clock, drain) -> None:
    context = make_context(clock=clock)
    fired = []
    timeout_id = context.set_timeout(fired.append, 10, "timeout")
    interval_id = context.set_interval(fired.append, 10, "interval")
    context.clear_timeout(timeout_id)

    clock.advance(10)
    drain(context.scheduler)
    context.clear_interval(interval_id)
    clock.advance(10)
    drain(context.scheduler)

    assert fired == ["interval"]
    assert context.has_pending_work() is False


def test_uncaught_task_error_reaches_window(context, drain) -> None:
    errors = []
    context.window.add_event_listener("error", lambda event: errors.append(event))

    def broken():
        raise KeyError("missing")

    context.queue_microtask(broken)
    drain(context.scheduler)

    assert len(errors) == 1
    assert isinstance(errors[0], ErrorEvent)
    assert isinstance(errors[0].error, TaskError)
    assert isinstance(errors[0].error.__cause__, KeyError)
    assert context.monitor.get_metric("errors.task") == 1


def test_factories(context) -> None:
    assert isinstance(context.promise(), Promise)
    assert isinstance(context.headers({"a": "1"}), Headers)
    assert isinstance(context.request("https://example.com/"), Request)
    assert context.response("x", status=202).status == 202
    assert isinstance(context.create_custom_event("x", detail=1), CustomEvent)
    assert isinstance(context.create_mouse_event("click", button=0), MouseEvent)
    assert context.create_event("x", bubbles=True).bubbles is True
    assert context.abort_signal_aborted("why").reason == "why"
    assert context.abort_signal_any([context.abort_controller().signal]).aborted is False


def test_abort_signal_timeout_uses_context_scheduler(make_context, clock, drain) -> None:
    context = make_context(clock=clock)
    signal = context.abort_signal_timeout(5)
    clock.advance(6)
    drain(context.scheduler)
    assert isinstance(signal.reason, SignalTimeoutError)


def test_relative_request_uses_base_url(make_context) -> None:
    context = make_context(base_url="https://example.com/api/")
    assert context.request("items").url == "https://example.com/api/items"


def test_close_is_idempotent_and_final(make_context) -> None:
    context = make_context()
    context.set_timeout(lambda: None, 1000)
    context.close()
    context.close()

    assert context.closed is True
    assert context.has_pending_work() is False
    with pytest.raises(InvalidStateError):
        context.create_document()


def test_context_manager_closes(make_context) -> None:
    with make_context() as context:
        assert context.closed is False
    assert context.closed is True


def test_listener_error_is_isolated_with_monitor_attached(context) -> None:
    tree = context.main_document
    target = context.bind(tree.append_child(tree.document, tree.create_element("div")))
    log = []
    context.window.onerror = lambda event: log.append(type(event.error).__name__)

    def broken(event):
        raise ValueError("broken")

    target.add_event_listener("ping", broken)
    target.add_event_listener("ping", lambda event: log.append("second"))

    assert target.dispatch_event(context.create_event("ping")) is True
    assert log == ["ValueError", "second"]
    assert context.monitor.get_metric("errors.listener") == 1
    assert context.monitor.query_events("listener_error")[0]["event_type"] == "ping"


def test_close_does_not_wait_for_stalled_fetch(make_context) -> None:
    entered = threading.Event()
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        release.wait(5.0)
        return httpx.Response(200)

    context = make_context(handler)
    context.fetch("https://example.com/slow")
    assert entered.wait(5.0)

    begin = time.monotonic()
    try:
        context.close(wait=False)
    finally:
        release.set()
    assert time.monotonic() - begin < 1.0
    assert context.bridge.in_flight == 0
