"""Write-tracked classes for mutations that bypass the wrappers.

Writes made through a WatchedGraph wrapper notify listeners by themselves.
Code holding the plain object mutates it directly, though. The classes here
catch those writes too and fire the same listener categories, coalesced with
any wrapper write already in progress for the same object.

WriteTrackedList, WriteTrackedDict and WriteTrackedSet can be used directly
as drop-in containers. deepwatch.enhance re-classes existing instances onto
generated subclasses that put one of these mixins in front of their class.
"""

from __future__ import annotations

from typing import Any

from deepwatch import listeners as _listeners
from deepwatch._tracking import run_once_after
from deepwatch._util import (
    MISSING,
    get_own,
    has_python_setter,
    is_dunder,
    lookup_class_attribute,
    same_value,
)


class WriteTrackedObject:
    """Mixin for plain instances: reports attribute writes and deletes."""

    def __setattr__(self, name: str, value: Any) -> None:
        set_attr = super().__setattr__
        if is_dunder(name):
            set_attr(name, value)
            return

        attr = lookup_class_attribute(type(self), name)
        if has_python_setter(attr):

            def invoke_setter(collect):
                set_attr(name, value)
                _listeners.setter_invoked(collect, self, name)

            run_once_after(self, invoke_setter)
            return

        current = get_own(self, name)
        if same_value(current, value):
            return

        def write(collect):
            set_attr(name, value)
            _listeners.property_changed(collect, self, name, new_key=current is MISSING)

        run_once_after(self, write)

    def __delattr__(self, name: str) -> None:
        del_attr = super().__delattr__
        if is_dunder(name) or get_own(self, name) is MISSING:
            del_attr(name)
            return

        def delete(collect):
            self.__setattr__(name, None)
            del_attr(name)
            _listeners.property_deleted(collect, self, name)

        run_once_after(self, delete)


class WriteTrackedList(list):
    """A list that reports its mutations."""

    __slots__ = ()
    _dw_origin = list

    def _mutate(self, operation, *args, **kwargs):
        length_before = len(self)

        def body(collect):
            result = operation(*args, **kwargs)
            _listeners.list_mutated(collect, self, length_before)
            return result

        return run_once_after(self, body)

    def __setitem__(self, index, value):
        if isinstance(index, slice):
            self._mutate(super().__setitem__, index, value)
            return

        set_item = super().__setitem__
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("list assignment index out of range")
        if same_value(self[index], value):
            return

        def write(collect):
            set_item(index, value)
            _listeners.property_changed(collect, self, index)

        run_once_after(self, write)

    def __delitem__(self, index):
        self._mutate(super().__delitem__, index)

    def __iadd__(self, other):
        return self._mutate(super().__iadd__, other)

    def __imul__(self, count):
        return self._mutate(super().__imul__, count)

    def append(self, value):
        self._mutate(super().append, value)

    def extend(self, values):
        self._mutate(super().extend, values)

    def insert(self, index, value):
        self._mutate(super().insert, index, value)

    def pop(self, index=-1):
        return self._mutate(super().pop, index)

    def remove(self, value):
        self._mutate(super().remove, value)

    def clear(self):
        if self:
            self._mutate(super().clear)

    def reverse(self):
        self._mutate(super().reverse)

    def sort(self, *, key=None, reverse=False):
        self._mutate(super().sort, key=key, reverse=reverse)


class WriteTrackedDict(dict):
    """A dict that reports its mutations."""

    __slots__ = ()
    _dw_origin = dict

    def __setitem__(self, key, value):
        set_item = super().__setitem__
        current = self.get(key, MISSING)
        if same_value(current, value):
            return

        def write(collect):
            set_item(key, value)
            _listeners.property_changed(collect, self, key, new_key=current is MISSING)

        run_once_after(self, write)

    def __delitem__(self, key):
        del_item = super().__delitem__
        if key not in self:
            raise KeyError(key)

        def delete(collect):
            self[key] = None
            del_item(key)
            _listeners.property_deleted(collect, self, key)

        run_once_after(self, delete)

    def __ior__(self, other):
        self.update(other)
        return self

    def pop(self, key, *default):
        if key in self:
            value = super().__getitem__(key)
            del self[key]
            return value
        if default:
            return default[0]
        raise KeyError(key)

    def popitem(self):
        if not self:
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(self))
        return key, self.pop(key)

    def setdefault(self, key, default=None):
        if key not in self:
            self[key] = default
        return self[key]

    def update(self, *args, **kwargs):
        items = dict(*args, **kwargs)

        def write_all(collect):
            for key, value in items.items():
                self[key] = value

        run_once_after(self, write_all)

    def clear(self):
        def delete_all(collect):
            for key in list(self):
                del self[key]

        run_once_after(self, delete_all)


class WriteTrackedSet(set):
    """A set that reports its mutations."""

    __slots__ = ()
    _dw_origin = set

    def _mutate(self, operation, *args):
        before = set(self)

        def body(collect):
            result = operation(*args)
            _listeners.set_mutated(collect, self, before)
            return result

        return run_once_after(self, body)

    def add(self, member):
        if member in self:
            return
        add = super().add

        def write(collect):
            add(member)
            _listeners.set_member_changed(collect, self, member)

        run_once_after(self, write)

    def discard(self, member):
        if member in self:
            self.remove(member)

    def remove(self, member):
        remove = super().remove
        if member not in self:
            raise KeyError(member)

        def write(collect):
            remove(member)
            _listeners.set_member_changed(collect, self, member)

        run_once_after(self, write)

    def pop(self):
        if not self:
            raise KeyError("pop from an empty set")
        member = next(iter(self))
        self.remove(member)
        return member

    def clear(self):
        self._mutate(super().clear)

    def update(self, *others):
        self._mutate(super().update, *others)

    def difference_update(self, *others):
        self._mutate(super().difference_update, *others)

    def intersection_update(self, *others):
        self._mutate(super().intersection_update, *others)

    def symmetric_difference_update(self, other):
        self._mutate(super().symmetric_difference_update, other)

    def __ior__(self, other):
        return self._mutate(super().__ior__, other)

    def __iand__(self, other):
        return self._mutate(super().__iand__, other)

    def __isub__(self, other):
        return self._mutate(super().__isub__, other)

    def __ixor__(self, other):
        return self._mutate(super().__ixor__, other)

TRACKER_MIXINS = (WriteTrackedObject, WriteTrackedList, WriteTrackedDict, WriteTrackedSet)
