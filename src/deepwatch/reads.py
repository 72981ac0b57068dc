"""Recorded reads.

Every read through a wrapper is reported to the graph's read listeners as one
of these records. A record knows the value it saw, can tell whether the
underlying data has changed since (is_changed), and can subscribe a listener
to exactly the writes that could change it.

Records compare equal when they describe the same read on the same graph, so
callers can de-duplicate them in a set or dict.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Hashable

from deepwatch import listeners as _listeners
from deepwatch._util import HOLE, MISSING, get_own, lookup_class_attribute, own_keys, same_value
from deepwatch.errors import UnsupportedOperationError

if TYPE_CHECKING:
    from deepwatch.graph import WatchedGraph

Listener = Callable[[], None]


def _current_value(obj: object, key: Hashable) -> Any:
    value = get_own(obj, key)
    if value is MISSING and isinstance(key, str) and not isinstance(obj, (dict, list)):
        value = lookup_class_attribute(type(obj), key)
    return value


class RecordedRead:
    """Base class for read records."""

    __slots__ = ()

    @property
    def is_changed(self) -> bool:
        raise NotImplementedError

    def subscribe(self, listener: Listener, track_original: bool = False) -> None:
        """Call listener after writes that may change this read.

        With track_original, direct writes to the plain object count too (see
        deepwatch.enhance). Plain dict, list and set objects can't be enhanced
        and raise UnsupportedOperationError; hold the data in WriteTrackedDict,
        WriteTrackedList or WriteTrackedSet instead.
        """
        raise NotImplementedError

    def unsubscribe(self, listener: Listener) -> None:
        raise NotImplementedError


class RecordedValueRead(RecordedRead):
    """A value produced outside of any tracked object. Cannot be subscribed to."""

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    @property
    def is_changed(self) -> bool:
        return False

    def subscribe(self, listener: Listener, track_original: bool = False) -> None:
        raise UnsupportedOperationError("A value read has no object to watch for changes")

    def unsubscribe(self, listener: Listener) -> None:
        pass

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.value is self.value

    def __hash__(self) -> int:
        return hash((RecordedValueRead, id(self.value)))

    def __repr__(self) -> str:
        return f"RecordedValueRead({self.value!r})"


class RecordedReadOnProxiedObject(RecordedRead):
    """A read on a tracked object. obj is the unwrapped target."""

    __slots__ = ("graph", "obj")

    def __init__(self, graph: WatchedGraph, obj: object) -> None:
        self.graph = graph
        self.obj = obj

    def _listener_sets(self, create: bool) -> list:
        """The listener sets this read subscribes to: plain sets or (keyed, key) pairs."""
        raise NotImplementedError

    def subscribe(self, listener: Listener, track_original: bool = False) -> None:
        if track_original:
            from deepwatch.enhance import enhance

            enhance(self.obj)
        for entry in self._listener_sets(create=True):
            if isinstance(entry, tuple):
                keyed, key = entry
                keyed.add(key, listener)
            else:
                entry.add(listener)

    def unsubscribe(self, listener: Listener) -> None:
        for entry in self._listener_sets(create=False):
            if isinstance(entry, tuple):
                keyed, key = entry
                keyed.discard(key, listener)
            else:
                entry.discard(listener)
        _listeners.prune(self.obj)

    def _identity(self) -> tuple:
        return (type(self), id(self.graph), id(self.obj))

    def __eq__(self, other: object) -> bool:
        return (
            type(other) is type(self)
            and other.graph is self.graph
            and other.obj is self.obj
            and other._identity() == self._identity()
        )

    def __hash__(self) -> int:
        return hash(self._identity())

    def _object_listeners(self, create: bool) -> _listeners.ObjectWriteListeners | None:
        if create:
            return _listeners.get_write_listeners_for_object(self.obj)
        return _listeners.write_listeners_for_object(self.obj)


class RecordedPropertyRead(RecordedReadOnProxiedObject):
    """obj[key] or obj.key was read and produced value (MISSING when absent)."""

    __slots__ = ("key", "value")

    def __init__(self, graph: WatchedGraph, obj: object, key: Hashable, value: Any) -> None:
        super().__init__(graph, obj)
        self.key = key
        self.value = value

    @property
    def is_changed(self) -> bool:
        return not same_value(_current_value(self.obj, self.key), self.value)

    def _listener_sets(self, create: bool) -> list:
        result: list = []
        listeners = self._object_listeners(create)
        if listeners is not None:
            result += [
                (listeners.after_change_specific_property, self.key),
                (listeners.after_setter_invoke, self.key),
                listeners.after_unspecific_write,
            ]
        if isinstance(self.obj, dict):
            map_listeners = (
                _listeners.get_write_listeners_for_map(self.obj)
                if create
                else _listeners.write_listeners_for_map(self.obj)
            )
            if map_listeners is not None:
                result.append((map_listeners.after_specific_key_added_or_removed, self.key))
        return result

    def _identity(self) -> tuple:
        return (*super()._identity(), self.key, id(self.value))

    def __repr__(self) -> str:
        return f"RecordedPropertyRead({type(self.obj).__name__}, {self.key!r}, {self.value!r})"


class RecordedOwnKeysRead(RecordedReadOnProxiedObject):
    """The set of keys / attribute names of obj was read."""

    __slots__ = ("keys",)

    def __init__(self, graph: WatchedGraph, obj: object, keys: list) -> None:
        super().__init__(graph, obj)
        self.keys = tuple(keys)

    @property
    def is_changed(self) -> bool:
        return tuple(own_keys(self.obj)) != self.keys

    def _listener_sets(self, create: bool) -> list:
        listeners = self._object_listeners(create)
        if listeners is None:
            return []
        return [listeners.after_change_own_keys, listeners.after_unspecific_write]

    def _identity(self) -> tuple:
        return (*super()._identity(), self.keys)

    def __repr__(self) -> str:
        return f"RecordedOwnKeysRead({type(self.obj).__name__}, {list(self.keys)!r})"


class RecordedArrayValuesRead(RecordedReadOnProxiedObject):
    """The whole content of a list was read (iteration, len, in, slicing, ...)."""

    __slots__ = ("values",)

    def __init__(self, graph: WatchedGraph, obj: list, values: list) -> None:
        super().__init__(graph, obj)
        self.values = tuple(values)

    @property
    def is_changed(self) -> bool:
        current = self.obj
        return len(current) != len(self.values) or any(
            not same_value(a, b) for a, b in zip(current, self.values)
        )

    def _listener_sets(self, create: bool) -> list:
        listeners = self._object_listeners(create)
        if listeners is None:
            return []
        return [
            listeners.after_change_own_keys,
            listeners.after_change_any_property,
            listeners.after_unspecific_write,
        ]

    def _identity(self) -> tuple:
        return (*super()._identity(), tuple(id(v) for v in self.values))

    def __repr__(self) -> str:
        shown = ["<hole>" if v is HOLE else v for v in self.values]
        return f"RecordedArrayValuesRead({shown!r})"


class RecordedUnspecificRead(RecordedReadOnProxiedObject):
    """Something about obj was read that isn't modelled in detail. Any write affects it."""

    __slots__ = ()

    @property
    def is_changed(self) -> bool:
        return True

    def _listener_sets(self, create: bool) -> list:
        listeners = self._object_listeners(create)
        if listeners is None:
            return []
        return [listeners.after_any_write]

    def __repr__(self) -> str:
        return f"RecordedUnspecificRead({type(self.obj).__name__})"


__all__ = [
    "RecordedRead",
    "RecordedValueRead",
    "RecordedReadOnProxiedObject",
    "RecordedPropertyRead",
    "RecordedOwnKeysRead",
    "RecordedArrayValuesRead",
    "RecordedUnspecificRead",
]
