"""reconcile(): merge freshly loaded data into the existing object graph.

reconcile(old, new) copies the content of new into old wherever both sides
describe the same object, so object identities (and everything subscribed to
them) survive a re-fetch. Which object is "the same" is decided by type and
position, and inside lists, sets and dict keys by an "id" and/or "key" field.

Objects from new that were merged into an old counterpart are obsolete
afterwards. Unless PreserveOptions.destroy_obsolete is off they are emptied
and raise ObsoleteObjectError on use, so stale references fail loudly.

Usage:
    old = {"user": {"name": "Ann"}, "todos": [{"id": 1, "title": "a"}]}
    user, todo = old["user"], old["todos"][0]

    new = {"user": {"name": "Ann B."}, "todos": [{"id": 1, "title": "b"}, {"id": 2, "title": "c"}]}
    result = reconcile(old, new)

    # result is old, result["user"] is user, result["todos"][0] is todo
    # todo["title"] == "b", result["todos"][1] is new["todos"][1]
"""

from __future__ import annotations

import dataclasses
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar, Union

from deepwatch import obsolete as _obsolete
from deepwatch._util import (
    HOLE,
    MISSING,
    deep_equal,
    get_own_attribute,
    is_frozen_dataclass,
    is_object,
    json_path,
    lookup_class_attribute,
    origin_class,
    raw,
    shorten_value,
    visit_replace,
)
from deepwatch.errors import PreserveError

logger = logging.getLogger("deepwatch.preserve")

T = TypeVar("T")
ID = Union[int, str]

NORMALIZE_LISTS_HINT = (
    "Hint: when this comes from fetched data with duplicate list items that are "
    "meant to be the same object, run it through normalize_lists() first."
)

OBSOLETE_MESSAGE = (
    "This object is obsolete. Another object is used in its place (which has all "
    "values copied to it, i.e. preserved) to keep object identities constant across "
    "data fetches. See the cause for where reconcile() was called. You can disable "
    "invalidation with PreserveOptions(destroy_obsolete=False)."
)

# Never merged: their content is tied to the lifetime of other objects.
_UNMERGEABLE = (weakref.WeakSet, weakref.WeakKeyDictionary, weakref.WeakValueDictionary)


@dataclass
class PreserveOptions:
    """Options for reconcile() and normalize_lists()."""

    # Empty and poison objects from new that were merged into an old one.
    destroy_obsolete: bool = True
    # Don't use "id" fields to match list items, set members and dict keys.
    ignores_ids: bool = False
    # Don't use "key" fields to match list items, set members and dict keys.
    ignores_keys: bool = False
    # Resolve references inside new that point back into new (cycles, shared
    # objects) to their preserved counterparts.
    preserve_circular: bool = False
    # normalize_lists(): don't complain when items with equal id/key differ in content.
    normalize_ignore_different: bool = False


@dataclass
class PreserveDiagnosis:
    """Context for error messages."""

    # The data came from a loader, duplicates are likely the loader's doing.
    from_load: bool = False
    # Where reconcile() was logically initiated. Becomes the cause of
    # ObsoleteObjectError. Defaults to the stack of the reconcile() call.
    call_stack: BaseException | None = None


class _PreserveCall:
    """State of one reconcile() run."""

    def __init__(self, options: PreserveOptions, diagnosis: PreserveDiagnosis) -> None:
        self.options = options
        self.diagnosis = diagnosis
        # id(old) -> (old, new merged into it)
        self.merged_to_new: dict[int, tuple[Any, Any]] = {}
        # id(new) -> (new, preserved counterpart)
        self.new_to_preserved: dict[int, tuple[Any, Any]] = {}
        # id(new) -> new, for objects that were merged away
        self.possibly_obsolete: dict[int, Any] = {}
        # id(obj) -> obj, for objects from new that ended up in the result
        self.used: dict[int, Any] = {}

    def mark_used(self, value: Any) -> None:
        if is_object(value):
            self.used[id(raw(value))] = value

    def diagnosis_text(self) -> str:
        if self.diagnosis.from_load:
            return "Data was produced by a loader. "
        return ""


class ObjRegistry:
    """Indexes objects by their "id" and/or "key" field.

    All objects in one registry have to agree on which of the two fields they
    carry. Objects without either field can't be registered.
    """

    def __init__(self, options: PreserveOptions, diagnosis: str = "") -> None:
        self.options = options
        self.diagnosis = diagnosis
        self.objects_by_id: dict[ID, Any] = {}
        self.objects_by_key: dict[ID, Any] = {}
        self.objects_by_id_and_key: dict[tuple[ID | None, ID | None], Any] = {}

    def get_id_and_key(self, obj: Any, path: str) -> tuple[ID | None, ID | None]:
        modes: list[tuple[str, dict, dict]] = []
        if not self.options.ignores_ids:
            modes.append(("id", self.objects_by_id, self.objects_by_key))
        if not self.options.ignores_keys:
            modes.append(("key", self.objects_by_key, self.objects_by_id))

        found: dict[str, ID] = {}
        for prop, own_map, other_map in modes:
            value = _identity_field(obj, prop)
            if value is None:
                if own_map:
                    self._raise_inconsistent(prop, own_map, obj, path)
                continue
            if isinstance(value, bool) or not isinstance(value, (int, str)):
                raise PreserveError(
                    f"{prop} must be an int or a str. Got: {shorten_value(value)}. Path: {path}"
                )
            if not own_map and other_map:
                self._raise_inconsistent(prop, other_map, obj, path)
            found[prop] = value

        if not found:
            raise PreserveError(
                f"Object has no id or key set. {self.diagnosis}Path: {path}. "
                f"Please specify an 'id' or 'key' field (or both) on objects in lists, "
                f"sets and dict keys. Object: {shorten_value(obj)}"
            )
        return found.get("id"), found.get("key")

    def _raise_inconsistent(self, prop: str, existing: dict, obj: Any, path: str) -> None:
        sample = next(iter(existing.values()))
        raise PreserveError(
            f"Objects must be consistent in either having an id or a key or both set, "
            f"but found {shorten_value(obj)} next to {shorten_value(sample)} (checked '{prop}'). "
            f"{self.diagnosis}Path: {path}"
        )

    def register(self, value: Any, path: str) -> None:
        if not is_object(value):
            return
        id_and_key = self.get_id_and_key(value, path)
        existing = self.objects_by_id_and_key.get(id_and_key)
        if existing is not None and raw(existing) is not raw(value):
            raise PreserveError(
                f"Multiple items have the same id+key: {_describe(id_and_key)}. "
                f"{self.diagnosis}Path: {path}\n{NORMALIZE_LISTS_HINT}"
            )
        obj_id, obj_key = id_and_key
        if obj_id is not None:
            self.objects_by_id[obj_id] = value
        if obj_key is not None:
            self.objects_by_key[obj_key] = value
        self.objects_by_id_and_key[id_and_key] = value

    def get(self, value: Any, path: str) -> Any:
        """The registered object with value's id/key, or None."""
        return self.objects_by_id_and_key.get(self.get_id_and_key(value, path))

    def get_preserved(self, new_value: Any, call: _PreserveCall, path: str) -> Any:
        if not is_object(new_value):
            return new_value
        existing = self.get(new_value, path)
        return _preserve_inner(MISSING if existing is None else existing, new_value, call, path)


def _identity_field(obj: Any, prop: str) -> Any:
    target = raw(obj)
    if isinstance(target, dict):
        return target.get(prop)
    value = get_own_attribute(target, prop)
    if value is MISSING and isinstance(lookup_class_attribute(type(target), prop), property):
        value = getattr(target, prop)
    return None if value is MISSING else value


def _describe(id_and_key: tuple[ID | None, ID | None]) -> str:
    obj_id, obj_key = id_and_key
    parts = []
    if obj_id is not None:
        parts.append(f"id={obj_id!r}")
    if obj_key is not None:
        parts.append(f"key={obj_key!r}")
    return ", ".join(parts)


def _is_mergeable(old: Any, new: Any) -> bool:
    if not is_object(old) or not is_object(new):
        return False
    if origin_class(old) is not origin_class(new):
        return False
    if raw(old) is raw(new):
        return False
    cls = origin_class(new)
    if issubclass(cls, _UNMERGEABLE) or is_frozen_dataclass(cls):
        return False
    return True


def _preserve_inner(old: Any, new: Any, call: _PreserveCall, path: str) -> Any:
    result = _merge(old, new, call, path)
    if result is new:
        call.mark_used(new)
    elif is_object(new):
        call.possibly_obsolete[id(raw(new))] = new
    return result


def _merge(old: Any, new: Any, call: _PreserveCall, path: str) -> Any:
    if not is_object(new):
        return new

    if call.options.preserve_circular:
        preserved = call.new_to_preserved.get(id(raw(new)))
        if preserved is not None:
            return preserved[1]

    if not _is_mergeable(old, new):
        return new
    _obsolete.check_alive(raw(old))

    merged = call.merged_to_new.get(id(raw(old)))
    if merged is not None:
        merged_new = merged[1]
        if raw(merged_new) is not raw(new):
            raise PreserveError(
                f"Cannot replace object {shorten_value(old)} with {shorten_value(new)} "
                f"in: {path}. It has already been replaced by another object: "
                f"{shorten_value(merged_new)}. Please give your objects a proper id or key "
                f"and don't use them in multiple places where these can be mistaken.\n"
                f"{NORMALIZE_LISTS_HINT}"
            )
        return old

    call.merged_to_new[id(raw(old))] = (old, new)
    call.new_to_preserved[id(raw(new))] = (new, old)

    if isinstance(new, list):
        _preserve_list(old, new, call, path)
    elif isinstance(new, set):
        _preserve_set(old, new, call, path)
    elif isinstance(new, dict):
        _preserve_dict(old, new, call, path)
    else:
        _preserve_attributes(old, new, call, path)
    return old


def _preserve_list(old: list, new: list, call: _PreserveCall, path: str) -> None:
    registry = ObjRegistry(call.options, call.diagnosis_text())
    for index, value in enumerate(list(old)):
        registry.register(value, f"{path}[{index}]")

    new_items = list(new)
    for index, value in enumerate(new_items):
        preserved = HOLE if value is HOLE else registry.get_preserved(value, call, f"{path}[{index}]")
        if index < len(old):
            old[index] = preserved
        else:
            old.append(preserved)
    if len(old) > len(new_items):
        del old[len(new_items):]
    _check_distinct(call, ((value, f"{path}[{index}]") for index, value in enumerate(new_items)))


def _preserve_set(old: set, new: set, call: _PreserveCall, path: str) -> None:
    registry = ObjRegistry(call.options, call.diagnosis_text())
    for member in list(old):
        registry.register(member, path)

    preserved = [registry.get_preserved(member, call, path) for member in list(new)]
    old.clear()
    for member in preserved:
        old.add(member)
    _check_distinct(call, ((member, path) for member in new))


def _preserve_dict(old: dict, new: dict, call: _PreserveCall, path: str) -> None:
    if any(is_object(key) for key in (*old.keys(), *new.keys())):
        _preserve_mapping(old, new, call, path)
        return

    # Keys act as properties: values are matched by key.
    for key, value in list(new.items()):
        old[key] = _preserve_inner(old.get(key, MISSING), value, call, path + json_path(key))
    for key in list(old.keys()):
        if key not in new:
            del old[key]


def _preserve_mapping(old: dict, new: dict, call: _PreserveCall, path: str) -> None:
    """Dicts keyed by objects: keys and values are matched by id/key independently."""
    key_registry = ObjRegistry(call.options, call.diagnosis_text())
    value_registry = ObjRegistry(call.options, call.diagnosis_text())
    for key, value in list(old.items()):
        key_registry.register(key, path)
        value_registry.register(value, path + json_path(key))

    new_items = list(new.items())
    old.clear()
    for key, value in new_items:
        key_path = path + json_path(key)
        old[key_registry.get_preserved(key, call, key_path)] = value_registry.get_preserved(value, call, key_path)
    _check_distinct(call, ((key, path) for key, _ in new_items))
    _check_distinct(call, ((value, path + json_path(key)) for key, value in new_items))


def _check_distinct(call: _PreserveCall, members: Iterable[tuple[Any, str]]) -> None:
    """Raise PreserveError when two distinct members of one container share an id+key."""
    registry = ObjRegistry(call.options, call.diagnosis_text())
    for value, path in members:
        registry.register(value, path)


def _preserve_attributes(old: Any, new: Any, call: _PreserveCall, path: str) -> None:
    new_attrs = dict(vars(new))
    old_attrs = dict(vars(old))
    for name, value in new_attrs.items():
        setattr(old, name, _preserve_inner(old_attrs.get(name, MISSING), value, call, path + json_path(name)))
    for name in old_attrs:
        if name not in new_attrs:
            delattr(old, name)


def _invalidate_obsolete(call: _PreserveCall) -> None:
    candidates = [obj for obj_id, obj in call.possibly_obsolete.items() if obj_id not in call.used]
    if not candidates:
        return
    cause = call.diagnosis.call_stack or _obsolete.CallSite.capture("reconcile() was called from:")
    for obj in candidates:
        try:
            _obsolete.invalidate_object(obj, OBSOLETE_MESSAGE, cause)
        except Exception as e:
            raise PreserveError(
                "Error during invalidation of an obsolete object. You can disable "
                "invalidation with PreserveOptions(destroy_obsolete=False)."
            ) from e
    logger.debug("reconcile(): invalidated %d obsolete object(s)", len(candidates))


def reconcile(
    old: Any,
    new: T,
    options: PreserveOptions | None = None,
    *,
    diagnosis: PreserveDiagnosis | None = None,
    **overrides: Any,
) -> T:
    """Merge new into old, keeping the identity of every old object that has a counterpart.

    Returns the preserved version of new: old itself when the two roots are
    mergeable, otherwise new. Keyword overrides are applied on top of options,
    e.g. reconcile(old, new, destroy_obsolete=False).
    """
    options = dataclasses.replace(options or PreserveOptions(), **overrides)
    call = _PreserveCall(options, diagnosis or PreserveDiagnosis())

    result = _preserve_inner(old, new, call, "<root>")
    logger.debug(
        "reconcile(): merged %d object(s), %d candidate(s) for invalidation",
        len(call.merged_to_new),
        len(call.possibly_obsolete),
    )
    if options.destroy_obsolete:
        _invalidate_obsolete(call)
    return result


preserve = reconcile


def normalize_list(items: list, options: PreserveOptions | None = None, path: str = "<list>") -> list:
    """Replace items that share an id/key with the first of them, in place.

    Raises PreserveError when such items differ in content, unless
    options.normalize_ignore_different is set.
    """
    options = options or PreserveOptions()
    registry = ObjRegistry(options)
    for index, value in enumerate(list(items)):
        if not is_object(value):
            continue
        existing = registry.get(value, f"{path}[{index}]")
        if existing is None:
            registry.register(value, f"{path}[{index}]")
            continue
        if raw(existing) is raw(value):
            continue
        if not options.normalize_ignore_different and not deep_equal(existing, value):
            first = next(i for i, item in enumerate(items) if raw(item) is raw(existing))
            raise PreserveError(
                f"List items at index {first} and {index} have the same id/key but "
                f"different content: {shorten_value(existing)} vs. {shorten_value(value)}. "
                f"Path: {path}. Set PreserveOptions(normalize_ignore_different=True) to "
                f"use the first one anyway."
            )
        items[index] = existing
    return items


def normalize_lists(root: T, options: PreserveOptions | None = None) -> T:
    """normalize_list() every list reachable from root."""

    def visitor(value: Any, visit_children: Callable[[Any, str], Any], path: str) -> Any:
        if isinstance(value, list):
            normalize_list(value, options, path)
        return visit_children(value, path)

    return visit_replace(root, visitor)
