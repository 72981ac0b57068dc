"""WatchedGraph: hands out read-tracking wrappers for object graphs.

graph.wrap(obj) returns a wrapper that behaves like obj. isinstance() checks,
equality, hashing and every read and write go through to obj. Whatever is
read through the wrapper is reported to the graph's read listeners as a
RecordedRead. Object values come back wrapped as well, so tracking follows
the caller down the graph. Writes go to obj and notify the write listeners
registered for it.

Each target has at most one live wrapper per graph, so wrapping is
idempotent and wrapper identity is stable while the wrapper is referenced.

Usage:
    graph = WatchedGraph()
    store = graph.wrap({"todos": [{"title": "a"}]})

    result, reads = graph.record_reads(lambda: store["todos"][0]["title"])
    # result == "a", reads holds three RecordedPropertyRead records

    reads[-1].subscribe(lambda: print("title changed"))
    store["todos"][0]["title"] = "b"   # prints "title changed"
"""

from __future__ import annotations

import functools
import operator
import types
import weakref
from typing import Any, Callable, Hashable, TypeVar

from deepwatch import listeners as _listeners
from deepwatch import obsolete as _obsolete
from deepwatch._tracking import run_once_after
from deepwatch._util import (
    MISSING,
    get_own,
    get_own_attribute,
    has_python_setter,
    is_accessor,
    is_dunder,
    is_frozen_dataclass,
    is_object,
    is_proxy,
    lookup_class_attribute,
    own_keys,
    raw,
    same_value,
)
from deepwatch.errors import (
    InvariantViolationError,
    ReadOnlyPropertyError,
    UnsupportedOperationError,
)
from deepwatch.proxies import ObjectProxy, proxy_class_for
from deepwatch.reads import (
    RecordedOwnKeysRead,
    RecordedPropertyRead,
    RecordedRead,
    RecordedUnspecificRead,
)

T = TypeVar("T")
ReadListener = Callable[[RecordedRead], None]

_BUILTIN_METHODS = (
    types.BuiltinFunctionType,
    types.MethodDescriptorType,
    types.WrapperDescriptorType,
    types.ClassMethodDescriptorType,
)

# Built-in methods that never modify their object.
_READ_ONLY_METHODS = frozenset(
    {
        "copy",
        "count",
        "difference",
        "fromkeys",
        "get",
        "index",
        "intersection",
        "isdisjoint",
        "issubset",
        "issuperset",
        "items",
        "keys",
        "symmetric_difference",
        "union",
        "values",
    }
)

# Dunders that run against the target even when implemented in Python.
_BLACK_BOX_DUNDERS = frozenset({"__repr__", "__str__", "__format__"})

# Dunders whose result is handed out wrapped.
_WRAPPING_DUNDERS = frozenset({"__getitem__", "__call__", "__enter__"})


class _ValueListener:
    """Adapts a listener(new_value) to the zero-argument listener registries."""

    __slots__ = ("listener", "target", "key")

    def __init__(self, listener: Callable[[Any], None], target: object, key: Hashable) -> None:
        self.listener = listener
        self.target = target
        self.key = key

    def __call__(self) -> None:
        value = get_own(self.target, self.key)
        if value is MISSING:
            value = None if isinstance(self.target, (dict, list)) else getattr(self.target, self.key, None)
        self.listener(value)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, _ValueListener)
            and other.listener == self.listener
            and other.target is self.target
            and other.key == self.key
        )

    def __hash__(self) -> int:
        return hash((self.listener, id(self.target), self.key))


class WatchedGraph:
    """A tracking graph. See the module docstring."""

    def __init__(self, *, property_accessors_as_white_box: bool = True) -> None:
        # True: property getters and setters run with the wrapper as self,
        # so the field accesses inside them are tracked. False: they run
        # against the target and only their result is tracked.
        self.property_accessors_as_white_box = property_accessors_as_white_box
        # id(target) -> wrapper. A wrapper holds its target, so the id stays
        # valid for as long as the entry exists.
        self._wrappers: weakref.WeakValueDictionary[int, ObjectProxy] = weakref.WeakValueDictionary()
        self._read_listeners: list[ReadListener] = []

    def __repr__(self) -> str:
        return f"WatchedGraph(wrappers={len(self._wrappers)}, read_listeners={len(self._read_listeners)})"

    # ─── Wrapping ────────────────────────────────────────────────────────

    def wrap(self, value: T) -> T:
        """Return the wrapper for value. Primitives are returned unchanged."""
        if not is_object(value):
            return value
        if is_proxy(value) and object.__getattribute__(value, "_dw_graph") is self:
            return value

        value = raw(value)  # wrappers of other graphs
        _obsolete.check_alive(value)
        proxy_class = proxy_class_for(value)
        existing = self._wrappers.get(id(value))
        if existing is not None:
            if type(existing) is not proxy_class:
                raise InvariantViolationError(
                    f"Cached {type(existing).__name__} no longer fits its "
                    f"{type(value).__name__} target"
                )
            return existing

        proxy = proxy_class(value, self)
        self._wrappers[id(value)] = proxy
        return proxy

    def unwrap(self, value: T) -> T:
        """The plain object behind a wrapper. Other values are returned unchanged."""
        return raw(value)

    def _target_of(self, proxy: ObjectProxy) -> Any:
        target = object.__getattribute__(proxy, "_dw_target")
        if self._wrappers.get(id(target)) is not proxy:
            raise InvariantViolationError("Wrapper is not registered with this graph")
        _obsolete.check_alive(target)
        return target

    # ─── Read listeners ──────────────────────────────────────────────────

    def on_any_read(self, listener: ReadListener) -> None:
        self._read_listeners.append(listener)

    def off_any_read(self, listener: ReadListener) -> None:
        self._read_listeners.remove(listener)

    @property
    def has_read_listeners(self) -> bool:
        return bool(self._read_listeners)

    def _fire_after_read(self, read: RecordedRead) -> None:
        for listener in list(self._read_listeners):
            listener(read)

    def record_reads(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> tuple[T, list[RecordedRead]]:
        """Call fn and return its result plus the distinct reads it made, in order."""
        reads: dict[RecordedRead, None] = {}

        def on_read(read: RecordedRead) -> None:
            reads.setdefault(read, None)

        self.on_any_read(on_read)
        try:
            result = fn(*args, **kwargs)
        finally:
            self.off_any_read(on_read)
        return result, list(reads)

    # ─── Write listeners ─────────────────────────────────────────────────

    def on_after_write_on_property(self, target: Any, key: Hashable, listener: Callable[[Any], None]) -> None:
        """Call listener(new_value) after target[key] / target.key was written."""
        target = raw(target)
        value_listener = _ValueListener(listener, target, key)
        listeners = _listeners.get_write_listeners_for_object(target)
        listeners.after_change_specific_property.add(key, value_listener)
        listeners.after_setter_invoke.add(key, value_listener)

    def off_after_write_on_property(self, target: Any, key: Hashable, listener: Callable[[Any], None]) -> None:
        target = raw(target)
        listeners = _listeners.write_listeners_for_object(target)
        if listeners is None:
            return
        value_listener = _ValueListener(listener, target, key)
        listeners.after_change_specific_property.discard(key, value_listener)
        listeners.after_setter_invoke.discard(key, value_listener)
        _listeners.prune(target)

    # ─── Attribute access (used by the wrappers) ─────────────────────────

    def _get_attribute(self, proxy: ObjectProxy, name: str) -> Any:
        target = self._target_of(proxy)
        cls = target.__class__
        attr = lookup_class_attribute(cls, name)

        if attr is not MISSING and is_accessor(attr):
            if self.property_accessors_as_white_box:
                return self.wrap(type(attr).__get__(attr, proxy, cls))
            value = type(attr).__get__(attr, target, cls)
            self._fire_after_read(RecordedPropertyRead(self, target, name, value))
            return self.wrap(value)

        value = get_own_attribute(target, name)
        if value is not MISSING:
            return self._stored_value(target, name, value)

        if attr is MISSING:
            try:
                value = getattr(target, name)  # __getattr__ fallback
            except AttributeError:
                self._fire_after_read(RecordedPropertyRead(self, target, name, MISSING))
                raise
            return self._stored_value(target, name, value)

        if isinstance(attr, types.FunctionType):
            self._fire_after_read(RecordedPropertyRead(self, target, name, attr))
            return types.MethodType(attr, proxy)
        if isinstance(attr, _BUILTIN_METHODS):
            return self._builtin_method(target, name, attr.__get__(target, cls))
        if hasattr(type(attr), "__get__"):
            return self.wrap(attr.__get__(target, cls))
        return self._stored_value(target, name, attr)

    def _stored_value(self, target: Any, name: str, value: Any) -> Any:
        if is_object(value) and is_frozen_dataclass(type(target)):
            raise ReadOnlyPropertyError(
                f"{type(target).__name__}.{name} is read-only and holds an object, so it "
                f"cannot be handed out wrapped. Read it from the unwrapped object instead."
            )
        self._fire_after_read(RecordedPropertyRead(self, target, name, value))
        return self.wrap(value)

    def _builtin_method(self, target: Any, name: str, bound: Callable) -> Callable:
        """Trap for built-in methods without a model: call through, report coarsely."""
        read_only = name in _READ_ONLY_METHODS

        @functools.wraps(bound)
        def trap(*args: Any, **kwargs: Any) -> Any:
            args = tuple(raw(arg) for arg in args)
            kwargs = {key: raw(value) for key, value in kwargs.items()}
            if read_only:
                result = bound(*args, **kwargs)
            else:

                def call(collect):
                    result = bound(*args, **kwargs)
                    _listeners.unspecific_write(collect, target)
                    return result

                result = run_once_after(target, call)
            self._fire_after_read(RecordedUnspecificRead(self, target))
            return self.wrap(result)

        return trap

    def _set_attribute(self, proxy: ObjectProxy, name: str, value: Any) -> None:
        target = self._target_of(proxy)
        if is_dunder(name):
            raise UnsupportedOperationError(f"Cannot set {name} through a wrapper")

        attr = lookup_class_attribute(target.__class__, name)
        if attr is not MISSING and is_accessor(attr):
            if self.property_accessors_as_white_box and has_python_setter(attr):
                instance, value = proxy, value
            else:
                instance, value = target, raw(value)

            def invoke_setter(collect):
                type(attr).__set__(attr, instance, value)
                _listeners.setter_invoked(collect, target, name)

            run_once_after(target, invoke_setter)
            return

        self._write(target, name, raw(value), setattr, own=get_own_attribute)

    def _delete_attribute(self, proxy: ObjectProxy, name: str) -> None:
        target = self._target_of(proxy)
        if is_dunder(name):
            raise UnsupportedOperationError(f"Cannot delete {name} through a wrapper")

        attr = lookup_class_attribute(target.__class__, name)
        if attr is not MISSING and is_accessor(attr):
            instance = proxy if self.property_accessors_as_white_box else target

            def invoke_deleter(collect):
                type(attr).__delete__(attr, instance)
                _listeners.setter_invoked(collect, target, name)

            run_once_after(target, invoke_deleter)
            return

        if get_own_attribute(target, name) is MISSING:
            delattr(target, name)  # raises the usual AttributeError
        self._delete(target, name, setattr, delattr, own=get_own_attribute)

    def _vars(self, proxy: ObjectProxy) -> types.MappingProxyType:
        target = self._target_of(proxy)
        attrs = object.__getattribute__(target, "__dict__")
        self._fire_after_read(RecordedOwnKeysRead(self, target, list(attrs)))
        snapshot = {}
        for name, value in list(attrs.items()):
            self._fire_after_read(RecordedPropertyRead(self, target, name, value))
            snapshot[name] = self.wrap(value)
        return types.MappingProxyType(snapshot)

    def _dir(self, proxy: ObjectProxy) -> list[str]:
        target = self._target_of(proxy)
        self._fire_after_read(RecordedOwnKeysRead(self, target, own_keys(target)))
        return dir(target)

    def _call_dunder(self, proxy: ObjectProxy, name: str, args: tuple) -> Any:
        target = self._target_of(proxy)
        cls = target.__class__
        attr = lookup_class_attribute(cls, name)

        if isinstance(attr, types.FunctionType) and name not in _BLACK_BOX_DUNDERS:
            result = attr(proxy, *args)
        elif attr is MISSING or attr is None:
            return self._missing_dunder(proxy, cls, name)
        else:
            result = getattr(target, name)(*(raw(arg) for arg in args))

        if name == "__iter__":
            return (self.wrap(item) for item in result)
        if name in _WRAPPING_DUNDERS:
            return self.wrap(result)
        return result

    def _missing_dunder(self, proxy: ObjectProxy, cls: type, name: str) -> Any:
        if name == "__bool__":
            if lookup_class_attribute(cls, "__len__") not in (MISSING, None):
                return self._call_dunder(proxy, "__len__", ()) != 0
            return True
        if name == "__hash__":
            raise TypeError(f"unhashable type: '{cls.__name__}'")
        raise TypeError(f"'{cls.__name__}' object does not support {name}")

    # ─── Storage writes (shared by attributes, dict keys and list indices) ─

    def _write(
        self,
        target: Any,
        key: Hashable,
        value: Any,
        store: Callable[[Any, Any, Any], None],
        own: Callable[[Any, Any], Any] = get_own,
    ) -> None:
        """store(target, key, value) and notify, unless value is already there."""
        current = own(target, key)
        effective = current
        if current is MISSING and own is get_own_attribute:
            inherited = lookup_class_attribute(type(target), key)
            if not hasattr(type(inherited), "__get__"):
                effective = inherited
        if same_value(effective, value):
            return

        def write(collect):
            store(target, key, value)
            _listeners.property_changed(collect, target, key, new_key=current is MISSING)

        run_once_after(target, write)

    def _delete(
        self,
        target: Any,
        key: Hashable,
        store: Callable[[Any, Any, Any], None],
        remove: Callable[[Any, Any], None],
        own: Callable[[Any, Any], Any] = get_own,
    ) -> None:
        """Write None under key, then remove it. Listeners fire once for both."""

        def delete(collect):
            self._write(target, key, None, store, own)
            remove(target, key)
            _listeners.property_deleted(collect, target, key)

        run_once_after(target, delete)

    def _write_item(self, target: Any, key: Hashable, value: Any) -> None:
        self._write(target, key, raw(value), operator.setitem)

    def _delete_item(self, target: Any, key: Hashable) -> None:
        self._delete(target, key, operator.setitem, operator.delitem)
