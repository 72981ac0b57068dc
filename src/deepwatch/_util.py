"""Shared helpers: object classification, class-level lookups, diagnostics, graph walking."""

from __future__ import annotations

import enum
import functools
import json
import types
from typing import Any, Callable

# Generated classes (trackers, obsolete stand-ins) store the class they were
# generated for under this name in their own __dict__.
ORIGIN_ATTR = "_dw_origin"


class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __reduce__(self) -> str:
        return self._name


# Absent attribute / key.
MISSING: Any = _Sentinel("MISSING")

# A list slot without a value: the list equivalent of an absent index.
HOLE: Any = _Sentinel("HOLE")

_NOT_OBJECTS = (
    type,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
    functools.partial,
    enum.Enum,
    _Sentinel,
)


def is_proxy(value: object) -> bool:
    return getattr(type(value), "_dw_is_proxy", False)


def raw(value: Any) -> Any:
    """Strip every wrapper layer from value."""
    while is_proxy(value):
        value = object.__getattribute__(value, "_dw_target")
    return value


def is_object(value: object) -> bool:
    """Is value a mutable object deepwatch tracks and preserves?

    dict, list and set always are. Other values count when they carry an
    instance __dict__. Slots-only value types (datetime, Decimal, UUID, ...)
    are treated like primitives.
    """
    if isinstance(value, (dict, list, set)) or is_proxy(value):
        return True
    if isinstance(value, _NOT_OBJECTS):
        return False
    try:
        object.__getattribute__(value, "__dict__")
    except (AttributeError, TypeError):
        return False
    return True


def same_value(a: Any, b: Any) -> bool:
    """Does writing b over a change nothing?

    Objects match by identity. Primitives match by value when they have the
    same type, so an equal string built elsewhere counts as the same value.
    """
    if a is b:
        return True
    if type(a) is not type(b) or is_object(a):
        return False
    return (a == b) is True


def origin_class(obj: object) -> type:
    """The class of obj, looking through generated tracker/obsolete classes."""
    cls = raw(obj).__class__
    return cls.__dict__.get(ORIGIN_ATTR, cls)


def lookup_class_attribute(cls: type, name: str) -> Any:
    """Like getattr(cls, name) but without invoking descriptors. MISSING if absent."""
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass.__dict__[name]
    return MISSING


def is_accessor(attr: object) -> bool:
    """Is attr a Python-level data descriptor such as a property?

    Slot members and C-level getset descriptors are storage, not accessors.
    """
    if isinstance(attr, (types.MemberDescriptorType, types.GetSetDescriptorType)):
        return False
    attr_type = type(attr)
    return hasattr(attr_type, "__get__") and (
        hasattr(attr_type, "__set__") or hasattr(attr_type, "__delete__")
    )


def has_python_setter(attr: object) -> bool:
    if isinstance(attr, property):
        return attr.fset is not None
    return is_accessor(attr) and hasattr(type(attr), "__set__")


def is_frozen_dataclass(cls: type) -> bool:
    params = getattr(cls, "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


def is_dunder(name: object) -> bool:
    return isinstance(name, str) and name.startswith("__") and name.endswith("__")


def own_keys(obj: Any) -> list:
    """Keys of obj's own storage: dict keys, populated list indices or instance attributes."""
    if isinstance(obj, dict):
        return list(obj)
    if isinstance(obj, list):
        return [index for index, value in enumerate(obj) if value is not HOLE]
    if isinstance(obj, set):
        return []
    try:
        return list(object.__getattribute__(obj, "__dict__"))
    except AttributeError:
        return []


def get_own(obj: Any, key: Any) -> Any:
    """The value obj stores under key, or MISSING. Never runs accessors."""
    if isinstance(obj, dict):
        return obj.get(key, MISSING)
    if isinstance(obj, list):
        if isinstance(key, int) and -len(obj) <= key < len(obj):
            return obj[key]
        return MISSING
    return get_own_attribute(obj, key)


def get_own_attribute(obj: Any, key: Any) -> Any:
    """The instance attribute (__dict__ entry or slot) key of obj, or MISSING."""
    try:
        value = object.__getattribute__(obj, "__dict__").get(key, MISSING)
    except AttributeError:
        value = MISSING
    if value is MISSING and isinstance(key, str):
        attr = lookup_class_attribute(type(obj), key)
        if isinstance(attr, types.MemberDescriptorType):
            try:
                value = attr.__get__(obj, type(obj))
            except AttributeError:
                value = MISSING
    return value


# ─── Diagnostics ─────────────────────────────────────────────────────────────

_MAX_PREVIEW = 50


def shorten_value(value: Any) -> str:
    """A short, JSON-ish preview of value for error messages."""
    value = raw(value)
    if value is None:
        return "None"

    prefix = ""
    if is_object(value) and not isinstance(value, (dict, list, set)):
        prefix = f"class {type(value).__name__} "

    try:
        return _shorten(prefix + json.dumps(value, default=_json_default))
    except (TypeError, ValueError, RecursionError):
        pass

    if isinstance(value, str):
        return _shorten(value)
    if is_object(value):
        return f"{prefix}{{...}}"
    return _shorten(repr(value))


def _shorten(text: str) -> str:
    if len(text) > _MAX_PREVIEW:
        return text[:_MAX_PREVIEW] + "..."
    return text


def _json_default(value: Any) -> Any:
    value = raw(value)
    if isinstance(value, (set, frozenset)):
        return "-set(...)-"
    if value is HOLE:
        return "-hole-"
    if is_object(value):
        return vars(value)
    return "-unknown type-"


def json_path(key: Any) -> str:
    """Path segment for key, as used in error messages."""
    if isinstance(key, int) and not isinstance(key, bool):
        return f"[{key}]"
    if isinstance(key, str) and key.isdigit():
        return f"[{key}]"
    if isinstance(key, str):
        return f".{key}"
    return f"[{shorten_value(key)}]"


# ─── Structural equality ─────────────────────────────────────────────────────


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality over dicts, lists, sets and instance attributes.

    Cycles are handled: a pair of objects already under comparison is assumed
    equal.
    """
    return _deep_equal(a, b, set())


def _deep_equal(a: Any, b: Any, in_progress: set[tuple[int, int]]) -> bool:
    a, b = raw(a), raw(b)
    if a is b:
        return True
    if not (is_object(a) and is_object(b)):
        return a == b
    if origin_class(a) is not origin_class(b):
        return False

    pair = (id(a), id(b))
    if pair in in_progress:
        return True
    in_progress.add(pair)

    if isinstance(a, list):
        return len(a) == len(b) and all(
            _deep_equal(x, y, in_progress) for x, y in zip(a, b)
        )
    if isinstance(a, set):
        return a == b
    if isinstance(a, dict):
        a_items, b_items = a, b
    else:
        a_items, b_items = vars(a), vars(b)
    if a_items.keys() != b_items.keys():
        return False
    return all(_deep_equal(a_items[k], b_items[k], in_progress) for k in a_items)


# ─── Graph walking ───────────────────────────────────────────────────────────

Visitor = Callable[[Any, Callable[[Any, str], Any], str], Any]


def visit_replace(root: Any, visitor: Visitor, path: str = "<root>") -> Any:
    """Walk the object graph under root, letting visitor replace values.

    visitor(value, visit_children, path) returns the value to keep in place of
    value. It calls visit_children(value, path) to descend. Every object is
    descended into at most once.
    """
    visited: set[int] = set()

    def visit_children(value: Any, value_path: str) -> Any:
        if not is_object(value) or id(raw(value)) in visited:
            return value
        visited.add(id(raw(value)))

        if isinstance(value, set):
            for member in list(value):
                visitor(member, visit_children, value_path)
            return value

        if isinstance(value, list):
            children = list(enumerate(value))
        elif isinstance(value, dict):
            children = list(value.items())
        else:
            children = list(vars(value).items())

        for key, child in children:
            replaced = visitor(child, visit_children, value_path + json_path(key))
            if replaced is not child:
                if isinstance(value, (list, dict)):
                    value[key] = replaced
                else:
                    setattr(value, key, replaced)
        return value

    return visitor(root, visit_children, path)
