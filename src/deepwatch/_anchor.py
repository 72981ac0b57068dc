"""Data anchor: plain Python structures that hold all per-object tracking state.

Every object that gets listeners or an obsolete marker
is given a stable integer handle here, and all state is keyed by that handle.
Separating data from behavior means the behavior modules never have to attach
anything to the tracked objects themselves.

dict, list and set cannot be weakly referenced. For those the arena holds a
strong reference (which keeps id(obj) from being reused) until retire() is
called. Everything else is dropped automatically once garbage collected.
"""

from __future__ import annotations

import itertools
import weakref

# id(obj) -> handle
_handles: dict[int, int] = {}

# handle -> strong reference or weakref.finalize for the object
_anchors: dict[int, object] = {}

# Per-handle state
object_listeners: dict[int, object] = {}  # handle -> ObjectWriteListeners
map_listeners: dict[int, object] = {}  # handle -> MapWriteListeners
set_listeners: dict[int, object] = {}  # handle -> SetWriteListeners
obsolete: dict[int, tuple[str, BaseException | None]] = {}  # handle -> (message, cause)

_TABLES = (object_listeners, map_listeners, set_listeners, obsolete)

# itertools.count is atomic under the GIL
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def handle_of(obj: object, create: bool = False) -> int | None:
    """Return the handle for obj, allocating one when create is set."""
    handle = _handles.get(id(obj))
    if handle is not None or not create:
        return handle

    handle = new_id()
    _handles[id(obj)] = handle
    try:
        _anchors[handle] = weakref.finalize(obj, _forget, id(obj), handle)
    except TypeError:
        _anchors[handle] = obj
    return handle


def retire(obj: object) -> None:
    """Drop every piece of state held for obj and release its handle."""
    handle = _handles.get(id(obj))
    if handle is None:
        return
    anchor = _anchors.get(handle)
    if isinstance(anchor, weakref.finalize):
        anchor.detach()
    _forget(id(obj), handle)


def _forget(obj_id: int, handle: int) -> None:
    if _handles.get(obj_id) != handle:
        return  # id was re-registered after an explicit retire()
    del _handles[obj_id]
    _anchors.pop(handle, None)
    for table in _TABLES:
        table.pop(handle, None)
