# scriptcore/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from scriptcore.interfaces.types import HeaderPairs, TransportResponse


@runtime_checkable
class TreeAdapter(Protocol):
    """
    Read-only view of the document tree used by event dispatch and mutation
    observation.

    Methods:
        parent_of(node): Parent node, None for roots. Shadow roots report None.
        root_of(node): Topmost ancestor reachable through parent_of.
        is_shadow_root(node): Whether node is a shadow root.
        shadow_host(shadow_root): Element the shadow root is attached to.

    Runtime Invariants:
    - Lookups are pure; they never mutate the tree.
    - Only called from the script thread.
    """

    def parent_of(self, node: Any) -> Optional[Any]:
        ...

    def root_of(self, node: Any) -> Any:
        ...

    def is_shadow_root(self, node: Any) -> bool:
        ...

    def shadow_host(self, shadow_root: Any) -> Any:
        ...


@runtime_checkable
class ActivationBehavior(Protocol):
    """
    Activation steps run around the dispatch of a mouse ``click``.

    Methods:
        has_activation_behavior(node): Whether node defines activation behavior.
        pre_activate(node): Apply the pre-activation change, return state to undo it.
        cancel_activation(node, saved): Undo pre-activation after a cancelled click.
        post_activate(node, saved): Complete activation. Returns True when
            ``input`` and ``change`` events should be fired.
    """

    def has_activation_behavior(self, node: Any) -> bool:
        ...

    def pre_activate(self, node: Any) -> Any:
        ...

    def cancel_activation(self, node: Any, saved: Any) -> None:
        ...

    def post_activate(self, node: Any, saved: Any) -> bool:
        ...


@runtime_checkable
class CancelToken(Protocol):
    """
    Cooperative cancellation handed to transports. Cancellation is advisory:
    the transport should stop as soon as practical.
    """

    @property
    def cancelled(self) -> bool:
        ...

    def on_cancel(self, callback: Callable[[], Any]) -> None:
        ...


@runtime_checkable
class Transport(Protocol):
    """
    Performs one HTTP exchange on a worker thread.

    Error Handling:
    - Failures are raised as TransportError subclasses.
    - A cancelled exchange may raise AbortError; the caller ignores the outcome.
    """

    def perform_request(
        self,
        method: str,
        url: str,
        headers: HeaderPairs,
        body: Optional[bytes],
        cancel_context: CancelToken,
        follow_redirects: bool = True,
    ) -> TransportResponse:
        ...
