"""Out-of-graph write tracking for existing objects.

enhance(obj) moves obj onto a generated subclass of its own class that puts
a write-tracking mixin in front, so direct writes (not through a wrapper)
notify listeners too. The generated class reports the original class as its
origin, and isinstance() checks against the original class keep working.

Exact dict, list and set instances cannot change their class. Use
WriteTrackedDict, WriteTrackedList and WriteTrackedSet for data that must be
tracked without going through a wrapper.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from deepwatch import obsolete as _obsolete
from deepwatch._util import ORIGIN_ATTR, is_object, raw
from deepwatch.errors import UnsupportedOperationError
from deepwatch.tracked import (
    TRACKER_MIXINS,
    WriteTrackedDict,
    WriteTrackedList,
    WriteTrackedObject,
    WriteTrackedSet,
)

logger = logging.getLogger("deepwatch.enhance")

T = TypeVar("T")

# original class -> generated tracking subclass
_tracker_classes: dict[type, type] = {}

_BUILTIN_REPLACEMENTS = {
    dict: WriteTrackedDict,
    list: WriteTrackedList,
    set: WriteTrackedSet,
}


def is_enhanced(obj: Any) -> bool:
    """Are direct writes to obj tracked?"""
    return isinstance(raw(obj), TRACKER_MIXINS)


def enhance(obj: T) -> T:
    """Track writes made directly on obj from now on. Idempotent.

    Wrappers are looked through: enhancing a wrapper enhances its target.
    Returns the unwrapped object.
    """
    target = raw(obj)
    _obsolete.check_alive(target)
    if is_enhanced(target):
        return target

    cls = type(target)
    if cls in _BUILTIN_REPLACEMENTS:
        raise UnsupportedOperationError(
            f"Cannot track direct writes to a plain {cls.__name__}. "
            f"Use {_BUILTIN_REPLACEMENTS[cls].__name__} for data that is modified "
            f"outside of a WatchedGraph, or modify it through a wrapper."
        )
    if not is_object(target):
        raise UnsupportedOperationError(
            f"Cannot track writes to {cls.__name__} values: they carry no instance state"
        )

    try:
        target.__class__ = _tracker_class_for(cls)
    except TypeError as e:
        raise UnsupportedOperationError(
            f"Cannot track direct writes to {cls.__name__} instances: {e}"
        ) from e
    logger.debug("Enhanced %s instance at 0x%x", cls.__name__, id(target))
    return target


def _tracker_class_for(cls: type) -> type:
    tracker = _tracker_classes.get(cls)
    if tracker is not None:
        return tracker

    if issubclass(cls, list):
        mixin: type = WriteTrackedList
    elif issubclass(cls, dict):
        mixin = WriteTrackedDict
    elif issubclass(cls, set):
        mixin = WriteTrackedSet
    else:
        mixin = WriteTrackedObject

    tracker = type(
        f"WriteTracked{cls.__name__}",
        (mixin, cls),
        {
            "__slots__": (),
            "__module__": cls.__module__,
            "__qualname__": f"WriteTracked{cls.__qualname__}",
            ORIGIN_ATTR: cls,
        },
    )
    _tracker_classes[cls] = tracker
    return tracker


def delete_property(obj: Any, key: Any) -> None:
    """Delete key from obj: a dict key, a list index or an attribute.

    Goes through the object's own deletion hooks, so enhanced objects,
    write-tracked containers and wrappers all report it.
    """
    if isinstance(obj, (dict, list)):
        del obj[key]
    else:
        delattr(obj, key)
