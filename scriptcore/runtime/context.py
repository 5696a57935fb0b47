# scriptcore/runtime/context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Per-runtime context wiring the scheduler, bridge, dispatcher and documents
together. Each context is independent; nothing here is process-wide.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from scriptcore.config import RuntimeConfig
from scriptcore.core.dispatcher import EventDispatcher
from scriptcore.core.errors import InvalidStateError
from scriptcore.core.events import CustomEvent, Event, MouseEvent
from scriptcore.core.identity import ObjectIdentityCache
from scriptcore.core.mutations import MutationObserver, MutationQueue, MutationRecord
from scriptcore.core.signals import AbortController, AbortSignal
from scriptcore.core.targets import NodeHandle, Window
from scriptcore.dom.tree import CheckableActivation, DocumentTree, Node, NodeTreeAdapter
from scriptcore.interfaces.protocols import Transport
from scriptcore.runtime.bridge import AsyncBridge
from scriptcore.runtime.fetch import FetchClient, Headers, Request, Response
from scriptcore.runtime.monitor import RuntimeMonitor
from scriptcore.runtime.promise import Promise
from scriptcore.runtime.scheduler import TaskScheduler, TimeSource
from scriptcore.runtime.transport import HttpxTransport

logger = logging.getLogger(__name__)


class ScriptContext:
    """
    Owns everything one script runtime needs: the scheduler and I/O bridge,
    the window, the documents with their mutation queues, and the identity
    cache shared by their nodes.

    The first document created is the main document; its parent in
    propagation paths is the window.

    :param config: Runtime settings.
    :param transport: Transport for fetch. Defaults to an HttpxTransport.
    :param clock: Monotonic time source for timers, mainly for tests.
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        transport: Optional[Transport] = None,
        clock: Optional[TimeSource] = None,
    ) -> None:
        self.config = config or RuntimeConfig()
        self.monitor = RuntimeMonitor(history_limit=self.config.history_limit)
        self.scheduler = TaskScheduler(
            min_interval_ms=self.config.min_interval_ms, clock=clock, monitor=self.monitor
        )
        self.bridge = AsyncBridge(self.scheduler, max_workers=self.config.max_workers, monitor=self.monitor)
        self._owns_transport = transport is None
        self.transport = transport or HttpxTransport(timeout=self.config.request_timeout)

        self.tree_adapter = NodeTreeAdapter()
        self.identity = ObjectIdentityCache(self._create_handle)
        self.window = Window()
        self.dispatcher = EventDispatcher(
            tree=self.tree_adapter,
            bind=self.identity.bind,
            window=self.window,
            activation=CheckableActivation(self.tree_adapter),
            error_reporter=self.window.report_error,
            monitor=self.monitor,
        )
        self.window._dispatcher = self.dispatcher
        self.scheduler.set_error_sink(self.window.report_error)

        self.fetch_client = FetchClient(
            self.bridge,
            self.scheduler,
            self.transport,
            base_url=self.config.base_url,
            user_agent=self.config.user_agent,
            default_redirect=self.config.default_redirect,
        )
        self._documents: List[DocumentTree] = []
        self._mutation_queues: Dict[int, MutationQueue] = {}
        self._closed = False
        self.main_document = self.create_document()

    # ---- documents ----

    def create_document(self) -> DocumentTree:
        """
        Create a document with its own mutation queue. The first one becomes
        the main document.
        """
        self._check_open()
        tree = DocumentTree(on_adopt=self._forget_handle)
        queue = MutationQueue(self.scheduler, self.tree_adapter, self.identity.bind, self.window.report_error)
        tree.set_mutation_sink(queue.record)
        self._documents.append(tree)
        self._mutation_queues[id(tree.document)] = queue
        if len(self._documents) == 1:
            self.dispatcher.set_main_document(tree.document)
            self.window.document = self.bind(tree.document)
        return tree

    @property
    def documents(self) -> List[DocumentTree]:
        return list(self._documents)

    def mutation_queue_for(self, document: Union[DocumentTree, Node]) -> MutationQueue:
        node = document.document if isinstance(document, DocumentTree) else document
        return self._mutation_queues[id(node)]

    def bind(self, node: Optional[Node]) -> Optional[NodeHandle]:
        """The script-visible handle of ``node``."""
        return self.identity.bind(node)

    def record_mutation(self, record: MutationRecord, document: Optional[DocumentTree] = None) -> None:
        self.mutation_queue_for(document or self.main_document).record(record)

    # ---- script surface ----

    def queue_microtask(self, callback: Callable[..., Any], *args: Any) -> None:
        self.scheduler.queue_microtask(callback, *args)

    def set_timeout(self, callback: Callable[..., Any], delay_ms: float = 0, *args: Any) -> int:
        return self.scheduler.arm_timer(callback, delay_ms, args)

    def set_interval(self, callback: Callable[..., Any], delay_ms: float = 0, *args: Any) -> int:
        return self.scheduler.arm_timer(callback, delay_ms, args, repeating=True)

    def clear_timeout(self, timer_id: Optional[int]) -> None:
        self.scheduler.cancel_timer(timer_id)

    def clear_interval(self, timer_id: Optional[int]) -> None:
        self.scheduler.cancel_timer(timer_id)

    def fetch(self, resource: Union[str, Request], init: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Promise:
        return self.fetch_client.fetch(resource, init, **kwargs)

    def promise(self, executor: Optional[Callable[..., Any]] = None) -> Promise:
        return Promise(self.scheduler, executor)

    def headers(self, init: Any = None) -> Headers:
        return Headers(init)

    def request(self, resource: Union[str, Request], init: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Request:
        return Request(resource, init, base_url=self.config.base_url, scheduler=self.scheduler, **kwargs)

    def response(self, body: Any = None, status: int = 200, status_text: str = "", headers: Any = None) -> Response:
        return Response(body, status, status_text, headers, scheduler=self.scheduler)

    def abort_controller(self) -> AbortController:
        return AbortController(self.dispatcher)

    def abort_signal_timeout(self, milliseconds: float) -> AbortSignal:
        return AbortSignal.timeout(self.scheduler, milliseconds, self.dispatcher)

    def abort_signal_any(self, signals: List[AbortSignal]) -> AbortSignal:
        return AbortSignal.any(signals, self.dispatcher)

    def abort_signal_aborted(self, reason: Any = None) -> AbortSignal:
        return AbortSignal.aborted_with(reason, self.dispatcher)

    def mutation_observer(
        self, callback: Callable[[List[MutationRecord], MutationObserver], Any], document: Optional[DocumentTree] = None
    ) -> MutationObserver:
        return self.mutation_queue_for(document or self.main_document).create_observer(callback)

    def create_event(self, type: str, **init: Any) -> Event:
        return Event(type, **init)

    def create_custom_event(self, type: str, detail: Any = None, **init: Any) -> CustomEvent:
        return CustomEvent(type, detail, **init)

    def create_mouse_event(self, type: str, **init: Any) -> MouseEvent:
        return MouseEvent(type, **init)

    # ---- lifecycle ----

    @property
    def closed(self) -> bool:
        return self._closed

    def has_pending_work(self) -> bool:
        return self.scheduler.has_pending_work() or self.bridge.in_flight > 0

    def close(self, wait: bool = True) -> None:
        """
        Drop queued work, stop the worker pool and forget cached handles.
        """
        if self._closed:
            return
        self._closed = True
        # Abort in-flight I/O first; its settlement tasks are dropped with the rest
        self.bridge.shutdown(wait=wait)
        self.scheduler.clear()
        self.scheduler.wake()
        for queue in self._mutation_queues.values():
            queue.clear()
        self.identity.clear()
        if self._owns_transport and isinstance(self.transport, HttpxTransport):
            self.transport.close()
        logger.debug("Script context closed")

    def __enter__(self) -> "ScriptContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _create_handle(self, node: Node) -> NodeHandle:
        handle = NodeHandle(node, self.dispatcher)
        node.handle = handle
        return handle

    def _forget_handle(self, node: Node) -> None:
        # Adopted nodes get a fresh handle; listeners on the old one stay behind
        node.handle = None
        self.identity.invalidate(node)

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidStateError("The script context is closed")
