"""Tests for listener coalescing and the write-listener registries."""

import pytest

from deepwatch import _anchor
from deepwatch import listeners as dl
from deepwatch._tracking import begin_batch, end_batch, get_pending_count, in_frame, run_once_after


class Thing:
    pass


def _recorder(log, name):
    def listener():
        log.append(name)

    return listener


class TestRunOnceAfter:
    def test_fires_after_body(self):
        target = Thing()
        log = []
        listener = _recorder(log, "a")

        def body(collect):
            collect([listener])
            assert log == []
            return "result"

        assert run_once_after(target, body) == "result"
        assert log == ["a"]

    def test_nested_frames_fire_once(self):
        target = Thing()
        log = []
        a, b = _recorder(log, "a"), _recorder(log, "b")

        def inner(collect):
            collect([a, b])

        def outer(collect):
            collect([a])
            run_once_after(target, inner)
            assert log == []

        run_once_after(target, outer)
        assert log == ["a", "b"]

    def test_other_target_fires_independently(self):
        target, other = Thing(), Thing()
        log = []

        def inner(collect):
            collect([_recorder(log, "other")])

        def outer(collect):
            collect([_recorder(log, "target")])
            run_once_after(other, inner)
            assert log == ["other"]

        run_once_after(target, outer)
        assert log == ["other", "target"]

    def test_exception_fires_nothing(self):
        target = Thing()
        log = []

        def body(collect):
            collect([_recorder(log, "a")])
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            run_once_after(target, body)
        assert log == []
        assert not in_frame(target)

    def test_collect_none_is_ignored(self):
        target = Thing()
        run_once_after(target, lambda collect: collect(None))
        assert not in_frame(target)

    def test_batch_defers_until_outermost_end(self):
        target = Thing()
        log = []
        listener = _recorder(log, "a")
        begin_batch()
        try:
            begin_batch()
            try:
                run_once_after(target, lambda collect: collect([listener]))
                run_once_after(target, lambda collect: collect([listener]))
            finally:
                end_batch()
            assert log == []
            assert get_pending_count() == 1
        finally:
            end_batch()
        assert log == ["a"]
        assert get_pending_count() == 0


class TestRegistries:
    def test_created_lazily(self):
        obj = Thing()
        assert dl.write_listeners_for_object(obj) is None
        bag = dl.get_write_listeners_for_object(obj)
        assert dl.get_write_listeners_for_object(obj) is bag
        assert dl.write_listeners_for_object(obj) is bag
        assert dl.write_listeners_for_map({}) is None
        assert dl.write_listeners_for_set(set()) is None

    def test_prune_retires_handle(self):
        obj = Thing()
        listener = _recorder([], "a")
        bag = dl.get_write_listeners_for_object(obj)
        bag.after_any_write.add(listener)
        dl.prune(obj)
        assert _anchor.handle_of(obj) is not None

        bag.after_any_write.discard(listener)
        dl.prune(obj)
        assert _anchor.handle_of(obj) is None
        assert dl.write_listeners_for_object(obj) is None

    def test_builtin_containers_are_anchored(self):
        obj = {}
        handle = _anchor.handle_of(obj, create=True)
        assert _anchor.handle_of(obj) == handle
        _anchor.retire(obj)
        assert _anchor.handle_of(obj) is None

    def test_keyed_listeners(self):
        keyed = dl._KeyedListeners()
        listener = _recorder([], "a")
        assert not keyed
        keyed.add("x", listener)
        assert keyed.get("x") == {listener}
        assert keyed.get(["unhashable"]) is None
        keyed.discard("x", listener)
        assert not keyed


class TestCollectors:
    def test_property_changed_new_key_reaches_own_keys(self):
        obj = Thing()
        log = []
        bag = dl.get_write_listeners_for_object(obj)
        bag.after_change_own_keys.add(_recorder(log, "keys"))
        bag.after_change_specific_property.add("x", _recorder(log, "x"))

        run_once_after(obj, lambda collect: dl.property_changed(collect, obj, "x"))
        assert log == ["x"]
        run_once_after(obj, lambda collect: dl.property_changed(collect, obj, "x", new_key=True))
        assert sorted(log) == ["keys", "x", "x"]

    def test_map_listeners(self):
        obj = {}
        log = []
        bag = dl.get_write_listeners_for_map(obj)
        bag.after_specific_key_added_or_removed.add("k", _recorder(log, "added"))
        bag.after_any_value_changed.add(_recorder(log, "value"))

        run_once_after(obj, lambda collect: dl.property_changed(collect, obj, "k", new_key=True))
        assert sorted(log) == ["added", "value"]
        log.clear()
        run_once_after(obj, lambda collect: dl.property_deleted(collect, obj, "k"))
        assert log == ["added"]
        _anchor.retire(obj)

    def test_list_mutated_reports_changed_indices(self):
        obj = [1, 2]
        log = []
        bag = dl.get_write_listeners_for_object(obj)
        bag.after_change_specific_property.add(0, _recorder(log, "0"))
        bag.after_change_specific_property.add(2, _recorder(log, "2"))

        obj.append(3)
        run_once_after(obj, lambda collect: dl.list_mutated(collect, obj, 2))
        assert log == ["2"]
        _anchor.retire(obj)

    def test_set_mutated_reports_members(self):
        obj = {1, 2}
        log = []
        bag = dl.get_write_listeners_for_set(obj)
        bag.after_specific_member_changed.add(3, _recorder(log, "3"))
        bag.after_specific_member_changed.add(1, _recorder(log, "1"))

        before = set(obj)
        obj.add(3)
        run_once_after(obj, lambda collect: dl.set_mutated(collect, obj, before))
        assert log == ["3"]
        _anchor.retire(obj)
