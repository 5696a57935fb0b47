# scriptcore/dom/tree.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Minimal node tree used as the default tree collaborator.

Nodes share one relational core (parent, children, owner document) and carry
a kind-specific payload. Structural and attribute changes made through a
DocumentTree are reported as mutation records to the owning document.
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from scriptcore.core.errors import DOMException, InvalidStateError
from scriptcore.core.mutations import ATTRIBUTES, CHARACTER_DATA, CHILD_LIST, MutationRecord

logger = logging.getLogger(__name__)

MutationSink = Callable[[MutationRecord], None]


class NodeKind(Enum):
    DOCUMENT = auto()
    ELEMENT = auto()
    DOCUMENT_FRAGMENT = auto()
    SHADOW_ROOT = auto()
    TEXT = auto()
    COMMENT = auto()


_CONTAINER_KINDS = (NodeKind.DOCUMENT, NodeKind.ELEMENT, NodeKind.DOCUMENT_FRAGMENT, NodeKind.SHADOW_ROOT)
_CHARACTER_DATA_KINDS = (NodeKind.TEXT, NodeKind.COMMENT)


class Node:
    """
    A tree node. ``name`` is the lower-cased tag for elements, ``data`` the
    text of character data nodes.
    """

    def __init__(
        self, kind: NodeKind, name: Optional[str] = None, data: str = "", owner_document: Optional["Node"] = None
    ) -> None:
        self.kind = kind
        self.name = name.lower() if name else None
        self.data = data
        self.owner_document = owner_document
        self.parent: Optional[Node] = None
        self.children: List[Node] = []
        self.attributes: Dict[str, str] = {}
        self.checked = False
        self.shadow_root: Optional[Node] = None
        self.host: Optional[Node] = None
        # Set on document nodes only
        self.tree: Optional["DocumentTree"] = None
        # Script wrapper, kept alive as long as the node
        self.handle: Any = None

    @property
    def is_element(self) -> bool:
        return self.kind is NodeKind.ELEMENT

    @property
    def input_type(self) -> Optional[str]:
        if self.name != "input":
            return None
        return self.attributes.get("type", "text").lower()

    @property
    def previous_sibling(self) -> Optional["Node"]:
        if self.parent is None:
            return None
        index = self.parent.children.index(self)
        return self.parent.children[index - 1] if index > 0 else None

    @property
    def next_sibling(self) -> Optional["Node"]:
        if self.parent is None:
            return None
        siblings = self.parent.children
        index = siblings.index(self)
        return siblings[index + 1] if index + 1 < len(siblings) else None

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name.lower())

    def iter_subtree(self) -> Iterator["Node"]:
        """This node and its descendants in tree order. Shadow trees are not entered."""
        yield self
        for child in self.children:
            yield from child.iter_subtree()

    def __repr__(self) -> str:
        if self.kind is NodeKind.ELEMENT:
            return f"<{self.name}>"
        if self.kind in _CHARACTER_DATA_KINDS:
            return f"{self.kind.name.lower()}({self.data!r})"
        return f"#{self.kind.name.lower()}"


class NodeTreeAdapter:
    """
    Pure lookups over Node trees. Works for nodes of any document.
    """

    def parent_of(self, node: Node) -> Optional[Node]:
        return node.parent

    def root_of(self, node: Node) -> Node:
        while node.parent is not None:
            node = node.parent
        return node

    def is_shadow_root(self, node: Any) -> bool:
        return isinstance(node, Node) and node.kind is NodeKind.SHADOW_ROOT

    def shadow_host(self, shadow_root: Node) -> Optional[Node]:
        return shadow_root.host

    def ancestors(self, node: Node) -> Iterator[Node]:
        parent = self.parent_of(node)
        while parent is not None:
            yield parent
            parent = self.parent_of(parent)


class DocumentTree(NodeTreeAdapter):
    """
    One document and the mutation operations on its nodes.

    :param mutation_sink: Receives records for mutations in this document.
    :param on_adopt: Called for every node adopted into this document.
    """

    def __init__(self, mutation_sink: Optional[MutationSink] = None, on_adopt: Optional[Callable[[Node], None]] = None):
        self.document = Node(NodeKind.DOCUMENT)
        self.document.tree = self
        self._mutation_sink = mutation_sink
        self._on_adopt = on_adopt

    def set_mutation_sink(self, mutation_sink: Optional[MutationSink]) -> None:
        self._mutation_sink = mutation_sink

    def set_adopt_hook(self, on_adopt: Optional[Callable[[Node], None]]) -> None:
        self._on_adopt = on_adopt

    # ---- node creation ----

    def create_element(self, tag: str, **attributes: str) -> Node:
        element = Node(NodeKind.ELEMENT, tag, owner_document=self.document)
        for name, value in attributes.items():
            element.attributes[name.lower()] = str(value)
        element.checked = "checked" in element.attributes
        return element

    def create_text(self, data: str) -> Node:
        return Node(NodeKind.TEXT, data=data, owner_document=self.document)

    def create_comment(self, data: str) -> Node:
        return Node(NodeKind.COMMENT, data=data, owner_document=self.document)

    def create_fragment(self) -> Node:
        return Node(NodeKind.DOCUMENT_FRAGMENT, owner_document=self.document)

    def attach_shadow(self, host: Node) -> Node:
        """
        Attach a shadow root to an element.

        :raises NotSupportedError-named DOMException: If host already has one.
        """
        if not host.is_element:
            raise DOMException("Only elements can host a shadow root", name="NotSupportedError")
        if host.shadow_root is not None:
            raise DOMException("Element already hosts a shadow root", name="NotSupportedError")
        shadow = Node(NodeKind.SHADOW_ROOT, owner_document=host.owner_document)
        shadow.host = host
        host.shadow_root = shadow
        return shadow

    # ---- structural mutations ----

    def append_child(self, parent: Node, child: Node) -> Node:
        return self.insert_before(parent, child, None)

    def insert_before(self, parent: Node, child: Node, reference: Optional[Node]) -> Node:
        """
        Insert ``child`` before ``reference`` (append when None). Fragments
        insert their children instead. Returns ``child``.
        """
        self._check_insertion(parent, child, reference)
        if reference is child:
            reference = child.next_sibling
        if child.kind is NodeKind.DOCUMENT_FRAGMENT:
            nodes = list(child.children)
            if nodes:
                for node in nodes:
                    node.parent = None
                child.children.clear()
                self._emit(child, MutationRecord(CHILD_LIST, child, removed_nodes=tuple(nodes)))
        else:
            if child.parent is not None:
                self.remove_child(child.parent, child)
            nodes = [child]
        if not nodes:
            return child

        document = parent if parent.kind is NodeKind.DOCUMENT else parent.owner_document
        for node in nodes:
            if node.owner_document is not document:
                self._adopt_subtree(node, document)

        index = len(parent.children) if reference is None else parent.children.index(reference)
        previous = parent.children[index - 1] if index > 0 else None
        for offset, node in enumerate(nodes):
            node.parent = parent
            parent.children.insert(index + offset, node)
        self._emit(
            parent,
            MutationRecord(CHILD_LIST, parent, added_nodes=tuple(nodes), previous_sibling=previous, next_sibling=reference),
        )
        return child

    def remove_child(self, parent: Node, child: Node) -> Node:
        """
        :raises DOMException: NotFoundError if ``child`` is not a child of ``parent``.
        """
        if child.parent is not parent:
            raise DOMException("The node to be removed is not a child of this node", name="NotFoundError")
        previous, following = child.previous_sibling, child.next_sibling
        parent.children.remove(child)
        child.parent = None
        self._emit(
            parent,
            MutationRecord(CHILD_LIST, parent, removed_nodes=(child,), previous_sibling=previous, next_sibling=following),
        )
        return child

    def adopt(self, node: Node) -> Node:
        """
        Move ``node`` and its subtree into this document, detaching it from its
        current parent first.
        """
        if node.kind is NodeKind.DOCUMENT:
            raise DOMException("Documents cannot be adopted", name="NotSupportedError")
        if node.kind is NodeKind.SHADOW_ROOT:
            raise DOMException("Shadow roots cannot be adopted", name="HierarchyRequestError")
        if node.parent is not None:
            self.remove_child(node.parent, node)
        if node.owner_document is not self.document:
            self._adopt_subtree(node, self.document)
        return node

    # ---- attribute and data mutations ----

    def set_attribute(self, element: Node, name: str, value: str, namespace: Optional[str] = None) -> None:
        if not element.is_element:
            raise InvalidStateError("Attributes can only be set on elements")
        key = name.lower()
        old_value = element.attributes.get(key)
        element.attributes[key] = str(value)
        self._emit(
            element,
            MutationRecord(ATTRIBUTES, element, attribute_name=key, attribute_namespace=namespace, old_value=old_value),
        )

    def remove_attribute(self, element: Node, name: str) -> None:
        key = name.lower()
        if key not in element.attributes:
            return
        old_value = element.attributes.pop(key)
        self._emit(element, MutationRecord(ATTRIBUTES, element, attribute_name=key, old_value=old_value))

    def set_data(self, node: Node, data: str) -> None:
        if node.kind not in _CHARACTER_DATA_KINDS:
            raise InvalidStateError("Only text and comment nodes carry character data")
        old_value = node.data
        node.data = str(data)
        self._emit(node, MutationRecord(CHARACTER_DATA, node, old_value=old_value))

    # ---- internals ----

    def _check_insertion(self, parent: Node, child: Node, reference: Optional[Node]) -> None:
        if parent.kind not in _CONTAINER_KINDS:
            raise DOMException("This node type does not support children", name="HierarchyRequestError")
        if child.kind in (NodeKind.DOCUMENT, NodeKind.SHADOW_ROOT):
            raise DOMException("This node type cannot be inserted", name="HierarchyRequestError")
        if child is parent or child in self.ancestors(parent):
            raise DOMException("The new child contains the parent", name="HierarchyRequestError")
        if reference is not None and reference.parent is not parent:
            raise DOMException("The reference node is not a child of this node", name="NotFoundError")

    def _adopt_subtree(self, node: Node, document: Node) -> None:
        for descendant in node.iter_subtree():
            descendant.owner_document = document
            if descendant.shadow_root is not None:
                for shadow_node in descendant.shadow_root.iter_subtree():
                    shadow_node.owner_document = document
                    self._notify_adopted(shadow_node, document)
            self._notify_adopted(descendant, document)

    def _notify_adopted(self, node: Node, document: Node) -> None:
        owner = document.tree if document.tree is not None else self
        if owner._on_adopt is not None:
            owner._on_adopt(node)

    def _emit(self, target: Node, record: MutationRecord) -> None:
        document = target if target.kind is NodeKind.DOCUMENT else target.owner_document
        owner = document.tree if document is not None and document.tree is not None else self
        if owner._mutation_sink is not None:
            owner._mutation_sink(record)


class CheckableActivation:
    """
    Activation behavior of checkbox and radio inputs.

    Checkboxes toggle. Radios become checked and uncheck the other radios of
    their group; a click on an already checked radio fires no change events.
    """

    def __init__(self, tree: Optional[NodeTreeAdapter] = None) -> None:
        self._tree = tree or NodeTreeAdapter()

    def has_activation_behavior(self, node: Any) -> bool:
        return (
            isinstance(node, Node)
            and node.input_type in ("checkbox", "radio")
            and "disabled" not in node.attributes
        )

    def pre_activate(self, node: Node) -> Tuple[bool, List[Node]]:
        previous = node.checked
        if node.input_type == "checkbox":
            node.checked = not previous
            return previous, []
        unchecked = [radio for radio in self._radio_group(node) if radio.checked]
        for radio in unchecked:
            radio.checked = False
        node.checked = True
        return previous, unchecked

    def cancel_activation(self, node: Node, saved: Tuple[bool, List[Node]]) -> None:
        previous, unchecked = saved
        node.checked = previous
        for radio in unchecked:
            radio.checked = True

    def post_activate(self, node: Node, saved: Tuple[bool, List[Node]]) -> bool:
        previous, _ = saved
        if node.input_type == "radio":
            return not previous
        return True

    def _radio_group(self, node: Node) -> List[Node]:
        group = node.get_attribute("name")
        if not group:
            return []
        root = self._tree.root_of(node)
        return [
            other
            for other in root.iter_subtree()
            if other is not node and other.input_type == "radio" and other.get_attribute("name") == group
        ]
