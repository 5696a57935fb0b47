"""
Reference node tree implementing the tree collaborator.
"""

from .tree import CheckableActivation, DocumentTree, Node, NodeKind, NodeTreeAdapter

__all__ = ["CheckableActivation", "DocumentTree", "Node", "NodeKind", "NodeTreeAdapter"]
