"""Tests for the list, dict and set wrappers."""

from collections import OrderedDict, defaultdict

import pytest

from deepwatch import (
    MISSING,
    RecordedArrayValuesRead,
    RecordedOwnKeysRead,
    RecordedUnspecificRead,
    WatchedGraph,
)


def _subscribe_all(reads):
    calls = []

    def listener():
        calls.append(1)

    for read in reads:
        read.subscribe(listener)
    return calls


class TestListProxy:
    def test_len_records_values(self):
        graph = WatchedGraph()
        w = graph.wrap([1, 2])
        result, reads = graph.record_reads(lambda: len(w))
        assert result == 2
        assert isinstance(reads[0], RecordedArrayValuesRead)
        assert reads[0].values == (1, 2)

    def test_append_fires_once(self):
        graph = WatchedGraph()
        obj = [1, 2]
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: len(w))
        calls = _subscribe_all(reads)
        w.append(3)
        assert obj == [1, 2, 3]
        assert calls == [1]

    def test_item_write_notifies_only_that_index(self):
        graph = WatchedGraph()
        obj = ["a", "b"]
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: w[1])
        calls = _subscribe_all(reads)
        w[0] = "x"
        assert calls == []
        w[1] = "y"
        assert calls == [1]
        assert obj == ["x", "y"]

    def test_negative_index_is_normalized(self):
        graph = WatchedGraph()
        w = graph.wrap(["a", "b"])
        result, reads = graph.record_reads(lambda: w[-1])
        assert result == "b"
        assert reads[0].key == 1

    def test_insert_notifies_shifted_index(self):
        graph = WatchedGraph()
        obj = ["a", "b"]
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: w[1])
        calls = _subscribe_all(reads)
        w.insert(0, "z")
        assert obj == ["z", "a", "b"]
        assert calls == [1]

    def test_iteration_wraps_items(self):
        graph = WatchedGraph()
        obj = [{"a": 1}]
        w = graph.wrap(obj)
        items = list(w)
        assert isinstance(items[0], dict)
        assert graph.unwrap(items[0]) is obj[0]
        assert graph.unwrap(w[0:1][0]) is obj[0]

    def test_reads(self):
        graph = WatchedGraph()
        w = graph.wrap([3, 1, 2])
        assert 2 in w
        assert w == [3, 1, 2]
        assert w.index(1) == 1
        assert w.count(3) == 1
        assert w + [4] == [3, 1, 2, 4]

    def test_sort_and_reverse(self):
        graph = WatchedGraph()
        obj = [3, 1, 2]
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: list(w))
        calls = _subscribe_all(reads)
        w.sort()
        assert obj == [1, 2, 3]
        w.reverse()
        assert obj == [3, 2, 1]
        assert calls == [1, 1]

    def test_in_place_operators(self):
        graph = WatchedGraph()
        obj = [1]
        w = graph.wrap(obj)
        w += [2]
        assert obj == [1, 2]
        w *= 2
        assert obj == [1, 2, 1, 2]

    def test_pop_and_remove(self):
        graph = WatchedGraph()
        obj = [{"id": 1}, "b", "c"]
        w = graph.wrap(obj)
        popped = w.pop(0)
        assert graph.unwrap(popped) == {"id": 1}
        w.remove("c")
        del w[0]
        assert obj == []

    def test_out_of_range(self):
        graph = WatchedGraph()
        w = graph.wrap([1])
        with pytest.raises(IndexError):
            w[5]
        with pytest.raises(IndexError):
            w[5] = 1


class TestDictProxy:
    def test_new_key_notifies_own_keys_read(self):
        graph = WatchedGraph()
        obj = {"a": 1}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: list(w.keys()))
        assert isinstance(reads[0], RecordedOwnKeysRead)
        calls = _subscribe_all(reads)
        w["a"] = 2
        assert calls == []
        w["b"] = 3
        assert calls == [1]

    def test_contains_records_own_keys(self):
        graph = WatchedGraph()
        w = graph.wrap({"a": 1})
        result, reads = graph.record_reads(lambda: "a" in w)
        assert result
        assert isinstance(reads[0], RecordedOwnKeysRead)

    def test_get_missing_key(self):
        graph = WatchedGraph()
        obj = {}
        w = graph.wrap(obj)
        result, reads = graph.record_reads(lambda: w.get("later"))
        assert result is None
        assert reads[0].value is MISSING
        calls = _subscribe_all(reads)
        w["later"] = 1
        assert calls == [1]

    def test_missing_key_raises(self):
        graph = WatchedGraph()
        w = graph.wrap({})
        with pytest.raises(KeyError):
            w["nope"]

    def test_delete_fires_once(self):
        graph = WatchedGraph()
        obj = {"a": 1, "b": 2}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: w["a"])
        calls = _subscribe_all(reads)
        del w["a"]
        assert obj == {"b": 2}
        assert calls == [1]

    def test_update_fires_once(self):
        graph = WatchedGraph()
        obj = {"a": 1, "b": 2}
        w = graph.wrap(obj)
        values, reads = graph.record_reads(lambda: w.values())
        assert values == [1, 2]
        calls = _subscribe_all(reads)
        w.update({"a": 5, "b": 6})
        assert obj == {"a": 5, "b": 6}
        assert calls == [1]

    def test_mutating_methods(self):
        graph = WatchedGraph()
        obj = {"a": 1}
        w = graph.wrap(obj)
        assert w.setdefault("b", 2) == 2
        assert w.pop("a") == 1
        assert w.pop("a", "gone") == "gone"
        w |= {"c": 3}
        assert obj == {"b": 2, "c": 3}
        assert w.popitem() == ("c", 3)
        w.clear()
        assert obj == {}

    def test_clear_notifies_key_readers_once(self):
        graph = WatchedGraph()
        obj = {"a": 1, "b": 2}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: (w["a"], w["b"]))
        calls = _subscribe_all(reads)
        w.clear()
        assert calls == [1]

    def test_items_wrap_values(self):
        graph = WatchedGraph()
        obj = {"child": {"x": 1}}
        w = graph.wrap(obj)
        [(key, child)] = w.items()
        assert key == "child"
        assert graph.unwrap(child) is obj["child"]
        assert w == {"child": {"x": 1}}

    def test_defaultdict_insert_is_a_write(self):
        graph = WatchedGraph()
        obj = defaultdict(list)
        w = graph.wrap(obj)
        assert isinstance(w, defaultdict)
        _, reads = graph.record_reads(lambda: len(w))
        calls = _subscribe_all(reads)
        w["x"].append(1)
        assert obj == {"x": [1]}
        assert calls == [1]

    def test_unmodelled_method_is_unspecific(self):
        graph = WatchedGraph()
        obj = OrderedDict(a=1, b=2)
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: w["a"])
        calls = _subscribe_all(reads)
        reads_during_call = []
        graph.on_any_read(reads_during_call.append)
        w.move_to_end("a")
        graph.off_any_read(reads_during_call.append)
        assert list(obj) == ["b", "a"]
        assert calls == [1]
        assert isinstance(reads_during_call[-1], RecordedUnspecificRead)


class TestSetProxy:
    def test_reads_are_unspecific(self):
        graph = WatchedGraph()
        w = graph.wrap({1, 2})
        result, reads = graph.record_reads(lambda: 1 in w)
        assert result
        assert isinstance(reads[0], RecordedUnspecificRead)
        assert reads[0].is_changed

    def test_add_notifies(self):
        graph = WatchedGraph()
        obj = {1, 2}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: len(w))
        calls = _subscribe_all(reads)
        w.add(3)
        assert calls == [1]
        w.add(3)
        assert calls == [1]
        assert obj == {1, 2, 3}

    def test_bulk_update_fires_once(self):
        graph = WatchedGraph()
        obj = {1}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: len(w))
        calls = _subscribe_all(reads)
        w.update({4, 5})
        assert obj == {1, 4, 5}
        assert calls == [1]

    def test_discard_missing_is_noop(self):
        graph = WatchedGraph()
        obj = {1}
        w = graph.wrap(obj)
        _, reads = graph.record_reads(lambda: len(w))
        calls = _subscribe_all(reads)
        w.discard(9)
        assert calls == []
        with pytest.raises(KeyError):
            w.remove(9)

    def test_operators(self):
        graph = WatchedGraph()
        obj = {1, 2}
        w = graph.wrap(obj)
        assert w | {9} == {1, 2, 9}
        assert w & {2} == {2}
        assert w - {1} == {2}
        assert w.issubset({1, 2, 3})
        w |= {7}
        w -= {1}
        assert obj == {2, 7}
