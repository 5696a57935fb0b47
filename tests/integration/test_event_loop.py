# tests/integration/test_event_loop.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import threading

import httpx
import pytest

from scriptcore.core.events import CustomEvent, MouseEvent
from scriptcore.runtime.executor import AsyncExecutor, Executor

pytestmark = pytest.mark.integration


def test_microtasks_timers_and_io_interleave(make_context) -> None:
    timer_ran = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        # Hold the response until the timer has run so the ordering is deterministic
        timer_ran.wait(5.0)
        return httpx.Response(200, content=b"io")

    context = make_context(handler)
    executor = Executor(context)
    order = []

    def on_timeout():
        order.append("timeout")
        timer_ran.set()

    context.set_timeout(on_timeout, 0)
    context.queue_microtask(lambda: order.append("microtask"))
    context.promise(lambda resolve, reject: resolve("promise")).then(order.append)
    context.fetch("https://example.com/").then(lambda response: order.append("fetch"))
    order.append("sync")

    assert executor.run_until_idle(timeout=5.0) is True
    assert order[:4] == ["sync", "microtask", "promise", "timeout"]
    assert order[-1] == "fetch"


def test_two_mutations_in_one_turn_deliver_one_batch(context, executor) -> None:
    tree = context.main_document
    container = tree.append_child(tree.document, tree.create_element("div"))
    batches = []

    observer = context.mutation_observer(lambda records, obs: batches.append((records, obs)))
    observer.observe(context.bind(container), child_list=True, attributes=True)

    def script():
        paragraph = tree.append_child(container, tree.create_element("p"))
        tree.set_attribute(container, "data-state", "filled")
        return paragraph

    context.set_timeout(lambda: batches.append(("added", script())), 0)
    assert executor.run_until_idle(timeout=5.0) is True

    added, paragraph = batches[0]
    assert added == "added"
    records, delivered_to = batches[1]
    assert len(batches) == 2
    assert delivered_to is observer
    assert [record.type for record in records] == ["childList", "attributes"]
    assert records[0].target is context.bind(container)
    assert records[0].added_nodes == (context.bind(paragraph),)
    assert records[1].attribute_name == "data-state"


def test_listener_error_does_not_stop_loop(context, executor) -> None:
    tree = context.main_document
    button = context.bind(tree.append_child(tree.document, tree.create_element("button")))
    log = []
    context.window.onerror = lambda event: log.append(("onerror", type(event.error).__name__))

    def broken(event):
        raise ValueError("broken listener")

    button.add_event_listener("click", broken)
    button.add_event_listener("click", lambda event: log.append(("clicked", event.detail)))

    context.set_timeout(lambda: button.dispatch_event(CustomEvent("click", detail=1, bubbles=True)), 0)
    context.set_timeout(lambda: log.append(("next-timer", None)), 1)

    assert executor.run_until_idle(timeout=5.0) is True
    assert log == [("onerror", "ValueError"), ("clicked", 1), ("next-timer", None)]


def test_click_activation_inside_event_loop(context, executor) -> None:
    tree = context.main_document
    form = tree.append_child(tree.document, tree.create_element("form"))
    checkbox = tree.append_child(form, tree.create_element("input", type="checkbox"))
    changes = []
    context.bind(form).add_event_listener("change", lambda event: changes.append(checkbox.checked))

    handle = context.bind(checkbox)
    context.set_timeout(lambda: handle.dispatch_event(MouseEvent("click", bubbles=True, cancelable=True)), 0)
    context.set_timeout(lambda: handle.dispatch_event(MouseEvent("click", bubbles=True, cancelable=True)), 5)

    assert executor.run_until_idle(timeout=5.0) is True
    assert changes == [True, False]


def test_interval_cleared_by_promise_reaction(context, executor) -> None:
    ticks = []
    state = {}

    def on_tick():
        ticks.append(len(ticks))
        if len(ticks) == 3:
            context.promise(lambda resolve, reject: resolve(state["id"])).then(context.clear_interval)

    state["id"] = context.set_interval(on_tick, 1)

    assert executor.run_until_idle(timeout=5.0) is True
    assert ticks == [0, 1, 2]


@pytest.mark.asyncio
async def test_async_executor_with_fetch(make_context) -> None:
    context = make_context(lambda request: httpx.Response(200, content=b"async body"))
    texts = []
    context.fetch("https://example.com/").then(lambda response: response.text()).then(texts.append)

    assert await AsyncExecutor(context).run_until_idle(timeout=5.0) is True
    assert texts == ["async body"]
