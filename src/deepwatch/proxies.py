"""Wrapper classes handed out by WatchedGraph.

ObjectProxy wraps plain instances. Attribute reads and writes, vars() and
dir() are routed through the graph, and the special methods the interpreter
looks up on the type are forwarded to the target. ListProxy, DictProxy and
SetProxy model the container APIs: each read records what it saw, each
mutation runs on the target and fires exactly the affected listener
categories.

A wrapper reports its target's class as __class__, so isinstance() checks
pass. Equality and hashing follow the target.
"""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Any, Callable

from deepwatch import listeners as _listeners
from deepwatch._tracking import run_once_after
from deepwatch._util import MISSING, is_dunder, own_keys, raw
from deepwatch.reads import (
    RecordedArrayValuesRead,
    RecordedOwnKeysRead,
    RecordedPropertyRead,
    RecordedUnspecificRead,
)

if TYPE_CHECKING:
    from deepwatch.graph import WatchedGraph

_INTERNAL = frozenset({"_dw_target", "_dw_graph"})

# Defined on the wrapper classes but never served as attributes of the target.
_NOT_SERVED = frozenset(
    {
        "__init__",
        "__init_subclass__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
        "__slots__",
        "__module__",
        "__qualname__",
        "__doc__",
        "__weakref__",
    }
)


def _parts(proxy: ObjectProxy) -> tuple[Any, WatchedGraph]:
    graph = object.__getattribute__(proxy, "_dw_graph")
    return graph._target_of(proxy), graph


def _served_names(cls: type) -> frozenset:
    names = set()
    for klass in cls.__mro__:
        if klass is object:
            continue
        names.update(
            name
            for name, value in vars(klass).items()
            if name not in _NOT_SERVED and (callable(value) or value is None)
        )
    return frozenset(names)


class ObjectProxy:
    """Wrapper for a plain instance."""

    __slots__ = ("_dw_target", "_dw_graph", "__weakref__")

    _dw_is_proxy = True
    _dw_served: frozenset = frozenset()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._dw_served = _served_names(cls)

    def __init__(self, target: object, graph: WatchedGraph) -> None:
        object.__setattr__(self, "_dw_target", target)
        object.__setattr__(self, "_dw_graph", graph)

    def __getattribute__(self, name: str) -> Any:
        if name in _INTERNAL:
            return object.__getattribute__(self, name)
        graph = object.__getattribute__(self, "_dw_graph")
        if name == "__class__":
            return graph._target_of(self).__class__
        if name == "__dict__":
            return graph._vars(self)
        if name in type(self)._dw_served:
            return object.__getattribute__(self, name)
        if is_dunder(name):
            return getattr(graph._target_of(self), name)
        return graph._get_attribute(self, name)

    def __setattr__(self, name: str, value: Any) -> None:
        object.__getattribute__(self, "_dw_graph")._set_attribute(self, name, value)

    def __delattr__(self, name: str) -> None:
        object.__getattribute__(self, "_dw_graph")._delete_attribute(self, name)

    def __dir__(self) -> list[str]:
        return object.__getattribute__(self, "_dw_graph")._dir(self)


def _forward(name: str) -> Callable:
    def method(self, *args):
        return object.__getattribute__(self, "_dw_graph")._call_dunder(self, name, args)

    method.__name__ = name
    method.__qualname__ = f"ObjectProxy.{name}"
    return method


for _name in (
    "__repr__",
    "__str__",
    "__format__",
    "__eq__",
    "__ne__",
    "__lt__",
    "__le__",
    "__gt__",
    "__ge__",
    "__hash__",
    "__bool__",
    "__len__",
    "__iter__",
    "__contains__",
    "__getitem__",
    "__setitem__",
    "__delitem__",
    "__call__",
    "__enter__",
    "__exit__",
):
    setattr(ObjectProxy, _name, _forward(_name))
del _name
ObjectProxy._dw_served = _served_names(ObjectProxy)


# ─── Read recording helpers ──────────────────────────────────────────────────


def _record_keys(graph: WatchedGraph, target: Any) -> None:
    if graph.has_read_listeners:
        graph._fire_after_read(RecordedOwnKeysRead(graph, target, own_keys(target)))


def _record_values(graph: WatchedGraph, target: list) -> None:
    if graph.has_read_listeners:
        graph._fire_after_read(RecordedArrayValuesRead(graph, target, list(target)))


def _record_unspecific(graph: WatchedGraph, target: Any) -> None:
    if graph.has_read_listeners:
        graph._fire_after_read(RecordedUnspecificRead(graph, target))


def _record_item(graph: WatchedGraph, target: Any, key: Any, value: Any) -> None:
    if graph.has_read_listeners:
        graph._fire_after_read(RecordedPropertyRead(graph, target, key, value))


# ─── list ────────────────────────────────────────────────────────────────────


def _mutate_list(target: list, operation: Callable, *args: Any, **kwargs: Any) -> Any:
    length_before = len(target)

    def body(collect):
        result = operation(*args, **kwargs)
        _listeners.list_mutated(collect, target, length_before)
        return result

    return run_once_after(target, body)


class ListProxy(ObjectProxy):
    """Wrapper for a list."""

    __slots__ = ()
    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        target, _ = _parts(self)
        return repr(target)

    def __len__(self) -> int:
        target, graph = _parts(self)
        _record_values(graph, target)
        return len(target)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __iter__(self):
        target, graph = _parts(self)
        _record_values(graph, target)
        return (graph.wrap(value) for value in list(target))

    def __reversed__(self):
        target, graph = _parts(self)
        _record_values(graph, target)
        return (graph.wrap(value) for value in list(reversed(target)))

    def __contains__(self, value: Any) -> bool:
        target, graph = _parts(self)
        _record_values(graph, target)
        return raw(value) in target

    def __getitem__(self, index: Any) -> Any:
        target, graph = _parts(self)
        if isinstance(index, slice):
            _record_values(graph, target)
            return [graph.wrap(value) for value in target[index]]

        index = operator.index(index)
        if index < 0:
            index += len(target)
        if not 0 <= index < len(target):
            _record_values(graph, target)
            raise IndexError("list index out of range")
        value = target[index]
        _record_item(graph, target, index, value)
        return graph.wrap(value)

    def __setitem__(self, index: Any, value: Any) -> None:
        target, graph = _parts(self)
        if isinstance(index, slice):
            _mutate_list(target, operator.setitem, target, index, [raw(v) for v in value])
            return
        index = operator.index(index)
        if index < 0:
            index += len(target)
        if not 0 <= index < len(target):
            raise IndexError("list assignment index out of range")
        graph._write_item(target, index, value)

    def __delitem__(self, index: Any) -> None:
        target, _ = _parts(self)
        _mutate_list(target, operator.delitem, target, index)

    def __iadd__(self, values: Any):
        self.extend(values)
        return self

    def __imul__(self, count: int):
        target, _ = _parts(self)
        _mutate_list(target, operator.imul, target, count)
        return self

    def __add__(self, other: Any):
        target, graph = _parts(self)
        _record_values(graph, target)
        return graph.wrap(target + raw(other))

    def __radd__(self, other: Any):
        target, graph = _parts(self)
        _record_values(graph, target)
        return graph.wrap(raw(other) + target)

    def __mul__(self, count: int):
        target, graph = _parts(self)
        _record_values(graph, target)
        return graph.wrap(target * count)

    __rmul__ = __mul__

    def _dw_compare(self, other: Any, op: Callable[[Any, Any], bool]) -> bool:
        target, graph = _parts(self)
        _record_values(graph, target)
        return op(target, raw(other))

    def __eq__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.eq)

    def __ne__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.ne)

    def __lt__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.lt)

    def __le__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.le)

    def __gt__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.gt)

    def __ge__(self, other: Any) -> bool:
        return self._dw_compare(other, operator.ge)

    def append(self, value: Any) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.append, raw(value))

    def extend(self, values: Any) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.extend, [raw(v) for v in values])

    def insert(self, index: int, value: Any) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.insert, index, raw(value))

    def pop(self, index: int = -1) -> Any:
        target, graph = _parts(self)
        return graph.wrap(_mutate_list(target, target.pop, index))

    def remove(self, value: Any) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.remove, raw(value))

    def clear(self) -> None:
        target, _ = _parts(self)
        if target:
            _mutate_list(target, target.clear)

    def reverse(self) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.reverse)

    def sort(self, *, key: Callable | None = None, reverse: bool = False) -> None:
        target, _ = _parts(self)
        _mutate_list(target, target.sort, key=key, reverse=reverse)

    def index(self, value: Any, *args: int) -> int:
        target, graph = _parts(self)
        _record_values(graph, target)
        return target.index(raw(value), *args)

    def count(self, value: Any) -> int:
        target, graph = _parts(self)
        _record_values(graph, target)
        return target.count(raw(value))

    def copy(self) -> list:
        target, graph = _parts(self)
        _record_values(graph, target)
        return graph.wrap(target.copy())


# ─── dict ────────────────────────────────────────────────────────────────────


class DictProxy(ObjectProxy):
    """Wrapper for a dict. Keys work like properties of a plain object."""

    __slots__ = ()
    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        target, _ = _parts(self)
        return repr(target)

    def __getitem__(self, key: Any) -> Any:
        target, graph = _parts(self)
        key = raw(key)
        present = key in target
        try:
            value = target[key]
        except KeyError:
            _record_item(graph, target, key, MISSING)
            raise
        if not present and key in target:
            # __missing__ (defaultdict) inserted the key
            run_once_after(
                target,
                lambda collect: _listeners.property_changed(collect, target, key, new_key=True),
            )
        _record_item(graph, target, key, value)
        return graph.wrap(value)

    def get(self, key: Any, default: Any = None) -> Any:
        target, graph = _parts(self)
        key = raw(key)
        value = target.get(key, MISSING)
        _record_item(graph, target, key, value)
        return default if value is MISSING else graph.wrap(value)

    def __contains__(self, key: Any) -> bool:
        target, graph = _parts(self)
        _record_keys(graph, target)
        return raw(key) in target

    def __iter__(self):
        target, graph = _parts(self)
        _record_keys(graph, target)
        return (graph.wrap(key) for key in list(target))

    def __reversed__(self):
        target, graph = _parts(self)
        _record_keys(graph, target)
        return (graph.wrap(key) for key in list(reversed(target)))

    def __len__(self) -> int:
        target, graph = _parts(self)
        _record_keys(graph, target)
        return len(target)

    def __bool__(self) -> bool:
        return len(self) > 0

    def keys(self):
        target, graph = _parts(self)
        _record_keys(graph, target)
        return target.keys()

    def values(self) -> list:
        return [value for _, value in self.items()]

    def items(self) -> list:
        target, graph = _parts(self)
        _record_keys(graph, target)
        result = []
        for key, value in list(target.items()):
            _record_item(graph, target, key, value)
            result.append((graph.wrap(key), graph.wrap(value)))
        return result

    def __eq__(self, other: Any) -> bool:
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return target == raw(other)

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __or__(self, other: Any):
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return graph.wrap(target | raw(other))

    def __ror__(self, other: Any):
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return graph.wrap(raw(other) | target)

    def copy(self) -> dict:
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return graph.wrap(target.copy())

    def __setitem__(self, key: Any, value: Any) -> None:
        target, graph = _parts(self)
        graph._write_item(target, raw(key), value)

    def __delitem__(self, key: Any) -> None:
        target, graph = _parts(self)
        key = raw(key)
        if key not in target:
            raise KeyError(key)
        graph._delete_item(target, key)

    def __ior__(self, other: Any):
        self.update(other)
        return self

    def pop(self, key: Any, *default: Any) -> Any:
        target, graph = _parts(self)
        key = raw(key)
        if key in target:
            value = target[key]
            graph._delete_item(target, key)
            return graph.wrap(value)
        if default:
            return default[0]
        raise KeyError(key)

    def popitem(self) -> tuple:
        target, graph = _parts(self)
        if not target:
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(target))
        return graph.wrap(key), self.pop(key)

    def setdefault(self, key: Any, default: Any = None) -> Any:
        target, graph = _parts(self)
        key = raw(key)
        if key not in target:
            graph._write_item(target, key, default)
        return self[key]

    def update(self, *args: Any, **kwargs: Any) -> None:
        target, graph = _parts(self)
        items = dict(*args, **kwargs)

        def write_all(collect):
            for key, value in items.items():
                graph._write_item(target, raw(key), value)

        run_once_after(target, write_all)

    def clear(self) -> None:
        target, graph = _parts(self)

        def delete_all(collect):
            for key in list(target):
                graph._delete_item(target, key)

        run_once_after(target, delete_all)


# ─── set ─────────────────────────────────────────────────────────────────────


def _mutate_set(target: set, operation: Callable, *args: Any) -> Any:
    before = set(target)

    def body(collect):
        result = operation(*args)
        _listeners.set_mutated(collect, target, before)
        return result

    return run_once_after(target, body)


class SetProxy(ObjectProxy):
    """Wrapper for a set. Every read is recorded as unspecific."""

    __slots__ = ()
    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        target, _ = _parts(self)
        return repr(target)

    def _dw_read(self) -> set:
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return target

    def __len__(self) -> int:
        return len(self._dw_read())

    def __bool__(self) -> bool:
        return bool(self._dw_read())

    def __iter__(self):
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return (graph.wrap(member) for member in list(target))

    def __contains__(self, member: Any) -> bool:
        return raw(member) in self._dw_read()

    def __eq__(self, other: Any) -> bool:
        return self._dw_read() == raw(other)

    def __ne__(self, other: Any) -> bool:
        return self._dw_read() != raw(other)

    def __lt__(self, other: Any) -> bool:
        return self._dw_read() < raw(other)

    def __le__(self, other: Any) -> bool:
        return self._dw_read() <= raw(other)

    def __gt__(self, other: Any) -> bool:
        return self._dw_read() > raw(other)

    def __ge__(self, other: Any) -> bool:
        return self._dw_read() >= raw(other)

    def _dw_combine(self, operation: Callable, *others: Any) -> set:
        target, graph = _parts(self)
        _record_unspecific(graph, target)
        return graph.wrap(operation(target, *(raw(other) for other in others)))

    def __or__(self, other: Any):
        return self._dw_combine(operator.or_, other)

    def __and__(self, other: Any):
        return self._dw_combine(operator.and_, other)

    def __sub__(self, other: Any):
        return self._dw_combine(operator.sub, other)

    def __xor__(self, other: Any):
        return self._dw_combine(operator.xor, other)

    def __ror__(self, other: Any):
        return self._dw_combine(lambda target, o: o | target, other)

    def __rand__(self, other: Any):
        return self._dw_combine(lambda target, o: o & target, other)

    def __rsub__(self, other: Any):
        return self._dw_combine(lambda target, o: o - target, other)

    def __rxor__(self, other: Any):
        return self._dw_combine(lambda target, o: o ^ target, other)

    def union(self, *others: Any) -> set:
        return self._dw_combine(set.union, *others)

    def intersection(self, *others: Any) -> set:
        return self._dw_combine(set.intersection, *others)

    def difference(self, *others: Any) -> set:
        return self._dw_combine(set.difference, *others)

    def symmetric_difference(self, other: Any) -> set:
        return self._dw_combine(set.symmetric_difference, other)

    def issubset(self, other: Any) -> bool:
        return self._dw_read().issubset(raw(other))

    def issuperset(self, other: Any) -> bool:
        return self._dw_read().issuperset(raw(other))

    def isdisjoint(self, other: Any) -> bool:
        return self._dw_read().isdisjoint(raw(other))

    def copy(self) -> set:
        return self._dw_combine(set.copy)

    def add(self, member: Any) -> None:
        target, _ = _parts(self)
        member = raw(member)
        if member in target:
            return

        def write(collect):
            target.add(member)
            _listeners.set_member_changed(collect, target, member)

        run_once_after(target, write)

    def remove(self, member: Any) -> None:
        target, _ = _parts(self)
        member = raw(member)
        if member not in target:
            raise KeyError(member)

        def write(collect):
            target.remove(member)
            _listeners.set_member_changed(collect, target, member)

        run_once_after(target, write)

    def discard(self, member: Any) -> None:
        target, _ = _parts(self)
        if raw(member) in target:
            self.remove(member)

    def pop(self) -> Any:
        target, graph = _parts(self)
        if not target:
            raise KeyError("pop from an empty set")
        member = next(iter(target))
        self.remove(member)
        return graph.wrap(member)

    def clear(self) -> None:
        target, _ = _parts(self)
        _mutate_set(target, target.clear)

    def update(self, *others: Any) -> None:
        target, _ = _parts(self)
        _mutate_set(target, target.update, *(raw(other) for other in others))

    def difference_update(self, *others: Any) -> None:
        target, _ = _parts(self)
        _mutate_set(target, target.difference_update, *(raw(other) for other in others))

    def intersection_update(self, *others: Any) -> None:
        target, _ = _parts(self)
        _mutate_set(target, target.intersection_update, *(raw(other) for other in others))

    def symmetric_difference_update(self, other: Any) -> None:
        target, _ = _parts(self)
        _mutate_set(target, target.symmetric_difference_update, raw(other))

    def __ior__(self, other: Any):
        self.update(other)
        return self

    def __iand__(self, other: Any):
        self.intersection_update(other)
        return self

    def __isub__(self, other: Any):
        self.difference_update(other)
        return self

    def __ixor__(self, other: Any):
        self.symmetric_difference_update(other)
        return self


def proxy_class_for(value: object) -> type[ObjectProxy]:
    """The wrapper class for the plain object value."""
    if isinstance(value, list):
        return ListProxy
    if isinstance(value, dict):
        return DictProxy
    if isinstance(value, set):
        return SetProxy
    return ObjectProxy
