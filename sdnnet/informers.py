"""Informer event handlers built from add/update and delete callbacks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kind of change seen by a watch."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Placeholder for an object deleted while the watch was disconnected."""

    key: str
    obj: Any


@dataclass
class ResourceEventHandlers:
    """Callbacks for object additions, updates and deletions."""

    on_add: Callable[[Any], None] | None = None
    on_update: Callable[[Any, Any], None] | None = None
    on_delete: Callable[[Any], None] | None = None


def informer_funcs(
    obj_type: type,
    add_or_update_func: Callable[[Any, Any, EventType], None] | None,
    delete_func: Callable[[Any], None] | None,
) -> ResourceEventHandlers:
    """Build handlers; deletes are unwrapped from tombstones and type-checked."""
    handlers = ResourceEventHandlers()
    if add_or_update_func is not None:
        handlers.on_add = lambda obj: add_or_update_func(obj, None, EventType.ADDED)
        handlers.on_update = lambda old, cur: add_or_update_func(cur, old, EventType.MODIFIED)

    if delete_func is not None:

        def on_delete(obj: Any) -> None:
            if type(obj) is not obj_type:
                if not isinstance(obj, DeletedFinalStateUnknown):
                    logger.error("Couldn't get object from tombstone: %r", obj)
                    return
                obj = obj.obj
                if type(obj) is not obj_type:
                    logger.error(
                        "Tombstone contained object, expected resource type: %s but got: %s",
                        obj_type.__name__,
                        type(obj).__name__,
                    )
                    return
            delete_func(obj)

        handlers.on_delete = on_delete
    return handlers