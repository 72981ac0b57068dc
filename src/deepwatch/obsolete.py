"""Invalidation of objects that reconcile() discarded.

An obsolete object has its content removed. Heap instances are moved onto a
generated class on which every attribute access, item access and iteration
raises ObsoleteObjectError. Exact dict, list and set instances cannot change
class; they are emptied and remembered, and deepwatch refuses to wrap,
enhance or reconcile them afterwards.
"""

from __future__ import annotations

import traceback
from typing import Any, NoReturn

from deepwatch import _anchor
from deepwatch._util import ORIGIN_ATTR, raw
from deepwatch.errors import ObsoleteObjectError

_BUILTIN_CONTAINERS = (dict, list, set)

# original class -> generated obsolete subclass
_obsolete_classes: dict[type, type] = {}


class CallSite(Exception):
    """Carries the stack of the call that made an object obsolete."""

    @classmethod
    def capture(cls, description: str) -> CallSite:
        stack = "".join(traceback.format_stack()[:-2])
        return cls(f"{description}\n{stack}")


def is_obsolete(obj: Any) -> bool:
    handle = _anchor.handle_of(raw(obj))
    return handle is not None and handle in _anchor.obsolete


def check_alive(obj: Any) -> None:
    """Raise ObsoleteObjectError if obj was invalidated."""
    handle = _anchor.handle_of(obj)
    if handle is not None and handle in _anchor.obsolete:
        _raise_obsolete(obj)


def _raise_obsolete(obj: Any) -> NoReturn:
    message, cause = _anchor.obsolete[_anchor.handle_of(obj)]
    raise ObsoleteObjectError(message) from cause


class ObsoleteObject:
    """Methods installed on the generated class of invalidated instances."""

    __slots__ = ()

    def __getattribute__(self, name: str) -> Any:
        if name in ("__class__", "__reduce_ex__"):
            return object.__getattribute__(self, name)
        _raise_obsolete(self)

    def __setattr__(self, name: str, value: Any) -> None:
        _raise_obsolete(self)

    def __delattr__(self, name: str) -> None:
        _raise_obsolete(self)

    def __getitem__(self, key):
        _raise_obsolete(self)

    def __setitem__(self, key, value):
        _raise_obsolete(self)

    def __delitem__(self, key):
        _raise_obsolete(self)

    def __iter__(self):
        _raise_obsolete(self)

    def __len__(self):
        _raise_obsolete(self)

    def __contains__(self, item):
        _raise_obsolete(self)

    def __repr__(self) -> str:
        origin = type(self).__dict__[ORIGIN_ATTR]
        return f"<obsolete {origin.__name__} object at 0x{id(self):x}>"


# The generated class derives from the original class alone and adds no
# slots, so __class__ assignment accepts it for any instance layout.
_OBSOLETE_METHODS = {
    name: attr for name, attr in vars(ObsoleteObject).items() if callable(attr)
}


def _obsolete_class_for(cls: type) -> type:
    obsolete_cls = _obsolete_classes.get(cls)
    if obsolete_cls is None:
        origin = cls.__dict__.get(ORIGIN_ATTR, cls)
        obsolete_cls = _obsolete_classes[cls] = type(
            f"Obsolete{origin.__name__}",
            (cls,),
            {
                **_OBSOLETE_METHODS,
                "__slots__": (),
                "__module__": origin.__module__,
                ORIGIN_ATTR: origin,
            },
        )
    return obsolete_cls


def invalidate_object(obj: Any, message: str, cause: BaseException | None = None) -> None:
    """Empty obj and make any further use of it raise ObsoleteObjectError(message)."""
    target = raw(obj)
    handle = _anchor.handle_of(target, create=True)
    for table in (_anchor.object_listeners, _anchor.map_listeners, _anchor.set_listeners):
        table.pop(handle, None)
    _anchor.obsolete[handle] = (message, cause)

    cls = type(target)
    if isinstance(target, _BUILTIN_CONTAINERS):
        for builtin in _BUILTIN_CONTAINERS:
            if isinstance(target, builtin):
                builtin.clear(target)
        if cls in _BUILTIN_CONTAINERS:
            return
    try:
        object.__getattribute__(target, "__dict__").clear()
    except AttributeError:
        pass  # container subclass declaring __slots__
    target.__class__ = _obsolete_class_for(cls)
