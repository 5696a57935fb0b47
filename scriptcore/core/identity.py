# scriptcore/core/identity.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import weakref
from typing import Any, Optional

from scriptcore.interfaces.types import WrapperFactory

logger = logging.getLogger(__name__)


class ObjectIdentityCache:
    """
    Maps host entities to their script-visible wrappers so that repeated binds
    of the same entity return the identical wrapper.

    Entries are held weakly: once script drops every reference to a wrapper,
    its entry disappears and the next bind builds a fresh one. Wrappers must
    keep a strong reference to their entity, which keeps the ``id`` key unique
    for as long as the entry lives.

    :param factory: Builds a wrapper for an entity on first bind.
    """

    def __init__(self, factory: WrapperFactory) -> None:
        self._factory = factory
        self._wrappers: "weakref.WeakValueDictionary[int, Any]" = weakref.WeakValueDictionary()

    def bind(self, entity: Any) -> Any:
        """
        Return the live wrapper for ``entity``, creating it if needed.
        """
        if entity is None:
            return None
        key = id(entity)
        wrapper = self._wrappers.get(key)
        if wrapper is not None:
            return wrapper
        wrapper = self._factory(entity)
        self._wrappers[key] = wrapper
        return wrapper

    def lookup(self, entity: Any) -> Optional[Any]:
        """Return the existing wrapper for ``entity`` without creating one."""
        if entity is None:
            return None
        return self._wrappers.get(id(entity))

    def invalidate(self, entity: Any) -> None:
        """
        Drop the mapping for ``entity``. The next bind produces a new wrapper.
        """
        if self._wrappers.pop(id(entity), None) is not None:
            logger.debug("Invalidated wrapper for %r", entity)

    def clear(self) -> None:
        self._wrappers.clear()

    def __contains__(self, entity: Any) -> bool:
        return id(entity) in self._wrappers

    def __len__(self) -> int:
        return len(self._wrappers)
