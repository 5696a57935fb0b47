# scriptcore/core/mutations.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Mutation record delivery.

Architecture:
- One MutationQueue per document holds its observers in registration order
- ``record`` queues a record to every interested observer
- The first record since the last flush schedules exactly one microtask that
  hands each observer its whole batch in a single callback call

Everything here runs on the script thread.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

from scriptcore.core.errors import ListenerRuntimeError
from scriptcore.core.targets import NodeHandle
from scriptcore.interfaces.protocols import TreeAdapter
from scriptcore.interfaces.types import ObserverCallback

if TYPE_CHECKING:
    from scriptcore.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

CHILD_LIST = "childList"
ATTRIBUTES = "attributes"
CHARACTER_DATA = "characterData"


@dataclass(frozen=True)
class MutationRecord:
    """A single change to the tree."""

    type: str
    target: Any
    added_nodes: Tuple[Any, ...] = ()
    removed_nodes: Tuple[Any, ...] = ()
    previous_sibling: Any = None
    next_sibling: Any = None
    attribute_name: Optional[str] = None
    attribute_namespace: Optional[str] = None
    old_value: Optional[str] = None


@dataclass
class ObserverOptions:
    """
    What an observer registration listens for. Old-value and filter options
    imply their base option.
    """

    child_list: bool = False
    attributes: Optional[bool] = None
    character_data: Optional[bool] = None
    subtree: bool = False
    attribute_old_value: bool = False
    character_data_old_value: bool = False
    attribute_filter: Optional[List[str]] = field(default=None)

    def __post_init__(self) -> None:
        if self.attributes is None:
            self.attributes = self.attribute_old_value or self.attribute_filter is not None
        if self.character_data is None:
            self.character_data = self.character_data_old_value
        if self.attribute_old_value and not self.attributes:
            raise TypeError("attribute_old_value requires attributes")
        if self.attribute_filter is not None and not self.attributes:
            raise TypeError("attribute_filter requires attributes")
        if self.character_data_old_value and not self.character_data:
            raise TypeError("character_data_old_value requires character_data")
        if not (self.child_list or self.attributes or self.character_data):
            raise TypeError("The options must set at least one of 'attributes', 'character_data', or 'child_list'")
        if self.attribute_filter is not None:
            self.attribute_filter = list(self.attribute_filter)

    def wants(self, record: MutationRecord) -> bool:
        if record.type == CHILD_LIST:
            return self.child_list
        if record.type == ATTRIBUTES:
            if not self.attributes:
                return False
            return self.attribute_filter is None or record.attribute_name in self.attribute_filter
        if record.type == CHARACTER_DATA:
            return bool(self.character_data)
        return False

    def keeps_old_value(self, record: MutationRecord) -> bool:
        if record.type == ATTRIBUTES:
            return self.attribute_old_value
        if record.type == CHARACTER_DATA:
            return self.character_data_old_value
        return False


class MutationObserver:
    """
    Receives batches of mutation records for the nodes it observes.

    :param queue: The document's mutation queue.
    :param callback: Called as ``callback(records, observer)``.
    """

    def __init__(self, queue: "MutationQueue", callback: ObserverCallback):
        if not callable(callback):
            raise TypeError("MutationObserver callback must be callable")
        self._queue = queue
        self._callback = callback
        self._targets: Dict[int, Tuple[Any, ObserverOptions]] = {}
        self._pending: List[MutationRecord] = []

    def observe(self, target: Any, options: Optional[ObserverOptions] = None, **kwargs: Any) -> None:
        """
        Start observing ``target`` (a node or NodeHandle). Observing the same
        node again replaces its options.

        :raises TypeError: If the options select no mutation type.
        """
        node = target.node if isinstance(target, NodeHandle) else target
        if node is None:
            raise TypeError("MutationObserver.observe target must be a node")
        resolved = options if options is not None else ObserverOptions(**kwargs)
        self._targets[id(node)] = (node, resolved)
        self._queue._register(self)

    def disconnect(self) -> None:
        """Stop observing everything and drop pending records."""
        self._targets.clear()
        self._pending.clear()
        self._queue._unregister(self)

    def take_records(self) -> List[MutationRecord]:
        """Return and clear the pending records."""
        records, self._pending = self._pending, []
        return [self._queue._to_script(record) for record in records]

    def _registrations_for(self, node: Any, tree: Optional[TreeAdapter]) -> List[ObserverOptions]:
        # Direct registration plus subtree registrations on ancestors
        found = []
        registered = self._targets.get(id(node))
        if registered is not None:
            found.append(registered[1])
        if tree is None:
            return found
        ancestor = tree.parent_of(node)
        while ancestor is not None:
            registered = self._targets.get(id(ancestor))
            if registered is not None and registered[1].subtree:
                found.append(registered[1])
            ancestor = tree.parent_of(ancestor)
        return found

    def _interest(self, record: MutationRecord, tree: Optional[TreeAdapter]) -> Optional[bool]:
        """
        Whether any registration wants ``record``.

        :return: None when no registration matches, otherwise whether any
            matching registration asks for the old value.
        """
        matching = [options for options in self._registrations_for(record.target, tree) if options.wants(record)]
        if not matching:
            return None
        return any(options.keeps_old_value(record) for options in matching)

    def _deliver(self, records: List[MutationRecord]) -> None:
        self._callback(records, self)


class MutationQueue:
    """
    Per-document mutation buffer and observer registry.

    Class Invariants:
    1. At most one flush microtask is scheduled at a time
    2. Each observer receives its records in append order
    3. A flush calls each observer with pending records exactly once

    :param scheduler: Scheduler used to queue the flush microtask.
    :param tree: Tree collaborator used for subtree observation.
    :param bind: Maps nodes to script-visible handles in delivered records.
    :param error_reporter: Receives errors raised by observer callbacks.
    """

    def __init__(
        self,
        scheduler: "TaskScheduler",
        tree: Optional[TreeAdapter] = None,
        bind: Optional[Callable[[Any], Any]] = None,
        error_reporter: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self._tree = tree
        self._bind = bind
        self._error_reporter = error_reporter
        self._observers: List[MutationObserver] = []
        self._flush_scheduled = False

    def create_observer(self, callback: ObserverCallback) -> MutationObserver:
        return MutationObserver(self, callback)

    def record(self, record: MutationRecord) -> None:
        """
        Queue ``record`` for every observer interested in its target.
        """
        queued = False
        for observer in self._observers:
            keep_old_value = observer._interest(record, self._tree)
            if keep_old_value is None:
                continue
            if record.old_value is not None and not keep_old_value:
                observer._pending.append(dataclasses.replace(record, old_value=None))
            else:
                observer._pending.append(record)
            queued = True
        if queued and not self._flush_scheduled:
            self._flush_scheduled = True
            self._scheduler.queue_microtask(self.flush)

    def flush(self) -> None:
        """Deliver every observer's pending records."""
        self._flush_scheduled = False
        for observer in list(self._observers):
            records = observer.take_records()
            if not records:
                continue
            try:
                observer._deliver(records)
            except Exception as exc:
                self._report(exc)

    @property
    def observers(self) -> List[MutationObserver]:
        return list(self._observers)

    def clear(self) -> None:
        for observer in self._observers:
            observer._pending.clear()
            observer._targets.clear()
        self._observers.clear()

    def _register(self, observer: MutationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _unregister(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _to_script(self, record: MutationRecord) -> MutationRecord:
        if self._bind is None:
            return record
        return dataclasses.replace(
            record,
            target=self._bind(record.target),
            added_nodes=self._bind_all(record.added_nodes),
            removed_nodes=self._bind_all(record.removed_nodes),
            previous_sibling=self._bind(record.previous_sibling),
            next_sibling=self._bind(record.next_sibling),
        )

    def _bind_all(self, nodes: Iterable[Any]) -> Tuple[Any, ...]:
        return tuple(self._bind(node) for node in nodes)

    def _report(self, exc: Exception) -> None:
        error = ListenerRuntimeError(f"Uncaught error in MutationObserver callback: {exc}")
        error.__cause__ = exc
        if self._error_reporter is None:
            logger.error("Uncaught error in MutationObserver callback", exc_info=exc)
            return
        self._error_reporter(error)
