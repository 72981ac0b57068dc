"""Write-listener registries.

Per target object there are separate listener bags for plain-object, map and
set semantics. A dict uses both the object bag (its keys act as properties)
and the map bag. Bags are created lazily on first subscription and dropped
again once their last listener unsubscribes.

The collector functions at the bottom translate one kind of write into the
listener sets that must hear about it. They are shared by the wrapper path
(deepwatch.proxies) and the out-of-graph trackers (deepwatch.tracked), and are
always called from inside a run_once_after() frame for the target.

Note on specificity: a write fires only the categories it affects. A recorded
read subscribes to every category that could affect it (see deepwatch.reads).
"""

from __future__ import annotations

from typing import Any, Callable, Hashable

from deepwatch import _anchor
from deepwatch._tracking import Collect

Listener = Callable[[], None]


class _KeyedListeners:
    """key -> set of listeners."""

    __slots__ = ("_by_key",)

    def __init__(self) -> None:
        self._by_key: dict[Hashable, set[Listener]] = {}

    def add(self, key: Hashable, listener: Listener) -> None:
        self._by_key.setdefault(key, set()).add(listener)

    def discard(self, key: Hashable, listener: Listener) -> None:
        listeners = self._by_key.get(key)
        if listeners is None:
            return
        listeners.discard(listener)
        if not listeners:
            del self._by_key[key]

    def get(self, key: Hashable) -> set[Listener] | None:
        try:
            return self._by_key.get(key)
        except TypeError:  # unhashable key, nobody can be listening
            return None

    def __bool__(self) -> bool:
        return bool(self._by_key)


class ObjectWriteListeners:
    """Listeners for one object (also for lists and dicts)."""

    __slots__ = (
        "after_setter_invoke",
        "after_change_specific_property",
        "after_change_any_property",
        "after_change_own_keys",
        "after_unspecific_write",
        "after_any_write",
    )

    def __init__(self) -> None:
        # Writes through a property setter, also when the value is unchanged.
        self.after_setter_invoke = _KeyedListeners()
        self.after_change_specific_property = _KeyedListeners()
        self.after_change_any_property: set[Listener] = set()
        # The result of own_keys() differs after the change.
        self.after_change_own_keys: set[Listener] = set()
        # Writes whose footprint isn't modelled, e.g. list.sort().
        self.after_unspecific_write: set[Listener] = set()
        # Always called, however specific the change.
        self.after_any_write: set[Listener] = set()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.__slots__)


class MapWriteListeners:
    """Listeners for one dict, keyed by dict key."""

    __slots__ = (
        "after_specific_key_added_or_removed",
        "after_any_key_added_or_removed",
        "after_specific_value_changed",
        "after_any_value_changed",
    )

    def __init__(self) -> None:
        self.after_specific_key_added_or_removed = _KeyedListeners()
        self.after_any_key_added_or_removed: set[Listener] = set()
        self.after_specific_value_changed = _KeyedListeners()
        self.after_any_value_changed: set[Listener] = set()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.__slots__)


class SetWriteListeners:
    """Listeners for one set, keyed by member."""

    __slots__ = ("after_specific_member_changed", "after_any_member_changed")

    def __init__(self) -> None:
        self.after_specific_member_changed = _KeyedListeners()
        self.after_any_member_changed: set[Listener] = set()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.__slots__)


def _lookup(table: dict[int, Any], obj: object) -> Any:
    handle = _anchor.handle_of(obj)
    return None if handle is None else table.get(handle)


def _get_or_create(table: dict[int, Any], obj: object, factory: Callable[[], Any]) -> Any:
    handle = _anchor.handle_of(obj, create=True)
    result = table.get(handle)
    if result is None:
        result = table[handle] = factory()
    return result


def write_listeners_for_object(obj: object) -> ObjectWriteListeners | None:
    return _lookup(_anchor.object_listeners, obj)


def write_listeners_for_map(obj: dict) -> MapWriteListeners | None:
    return _lookup(_anchor.map_listeners, obj)


def write_listeners_for_set(obj: set) -> SetWriteListeners | None:
    return _lookup(_anchor.set_listeners, obj)


def get_write_listeners_for_object(obj: object) -> ObjectWriteListeners:
    return _get_or_create(_anchor.object_listeners, obj, ObjectWriteListeners)


def get_write_listeners_for_map(obj: dict) -> MapWriteListeners:
    return _get_or_create(_anchor.map_listeners, obj, MapWriteListeners)


def get_write_listeners_for_set(obj: set) -> SetWriteListeners:
    return _get_or_create(_anchor.set_listeners, obj, SetWriteListeners)


def prune(obj: object) -> None:
    """Drop empty listener bags for obj, retiring its handle when nothing is left."""
    handle = _anchor.handle_of(obj)
    if handle is None:
        return
    for table in (_anchor.object_listeners, _anchor.map_listeners, _anchor.set_listeners):
        bag = table.get(handle)
        if bag is not None and bag.is_empty():
            del table[handle]
    if not any(
        handle in table
        for table in (
            _anchor.object_listeners,
            _anchor.map_listeners,
            _anchor.set_listeners,
            _anchor.obsolete,
        )
    ):
        _anchor.retire(obj)


# ─── Collectors ──────────────────────────────────────────────────────────────


def property_changed(collect: Collect, target: object, key: Hashable, new_key: bool = False) -> None:
    """The value stored under key changed (or key was added)."""
    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_change_specific_property.get(key))
        collect(listeners.after_change_any_property)
        if new_key:
            collect(listeners.after_change_own_keys)
        collect(listeners.after_any_write)

    map_listeners = write_listeners_for_map(target)
    if map_listeners is not None:
        if new_key:
            collect(map_listeners.after_specific_key_added_or_removed.get(key))
            collect(map_listeners.after_any_key_added_or_removed)
        collect(map_listeners.after_specific_value_changed.get(key))
        collect(map_listeners.after_any_value_changed)


def property_deleted(collect: Collect, target: object, key: Hashable) -> None:
    """key was removed. The value change is reported by the preceding None write."""
    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_change_own_keys)
        collect(listeners.after_any_write)

    map_listeners = write_listeners_for_map(target)
    if map_listeners is not None:
        collect(map_listeners.after_specific_key_added_or_removed.get(key))
        collect(map_listeners.after_any_key_added_or_removed)


def setter_invoked(collect: Collect, target: object, key: Hashable) -> None:
    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_setter_invoke.get(key))
        collect(listeners.after_any_write)


def unspecific_write(collect: Collect, target: object) -> None:
    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_unspecific_write)
        collect(listeners.after_any_write)

    map_listeners = write_listeners_for_map(target)
    if map_listeners is not None:
        collect(map_listeners.after_any_key_added_or_removed)
        collect(map_listeners.after_any_value_changed)

    set_listeners = write_listeners_for_set(target)
    if set_listeners is not None:
        collect(set_listeners.after_any_member_changed)


def list_mutated(collect: Collect, target: list, length_before: int) -> None:
    """A structural list operation ran: indices may have shifted, length may differ."""
    length_after = len(target)
    unspecific_write(collect, target)
    if length_after == length_before:
        return
    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_change_own_keys)
        for index in range(min(length_before, length_after), max(length_before, length_after)):
            collect(listeners.after_change_specific_property.get(index))


def set_member_changed(collect: Collect, target: set, member: Hashable) -> None:
    """member was added to or removed from target."""
    set_listeners = write_listeners_for_set(target)
    if set_listeners is not None:
        collect(set_listeners.after_specific_member_changed.get(member))
        collect(set_listeners.after_any_member_changed)

    listeners = write_listeners_for_object(target)
    if listeners is not None:
        collect(listeners.after_change_own_keys)
        collect(listeners.after_any_write)


def set_mutated(collect: Collect, target: set, before: set) -> None:
    """A bulk set operation ran. Reports every member that came or went."""
    changed = before.symmetric_difference(target)
    if not changed:
        return
    for member in changed:
        set_member_changed(collect, target, member)
    unspecific_write(collect, target)
