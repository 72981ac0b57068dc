"""Tests for action batching and transaction context manager."""

from deepwatch import WatchedGraph, action, autorun, get_pending_count, transaction


class TestAction:
    def test_batches_updates(self):
        state = WatchedGraph().wrap({"a": 0, "b": 0})
        log = []
        autorun(state, lambda s: log.append((s["a"], s["b"])))
        assert log == [(0, 0)]

        @action
        def update_both():
            state["a"] = 1
            state["b"] = 2

        update_both()
        # Should see (1, 2) not intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        state = WatchedGraph().wrap({"v": 0})
        log = []
        autorun(state, lambda s: log.append(s["v"]))

        @action
        def outer():
            state["v"] = 1

            @action
            def inner():
                state["v"] = 2

            inner()
            state["v"] = 3

        outer()
        # Only fires after outermost action completes
        assert log == [0, 3]

    def test_preserves_return_value(self):
        @action
        def compute():
            return 42

        assert compute() == 42

    def test_list_and_dict_writes_batched(self):
        cart = WatchedGraph().wrap({"items": [], "total": 0})
        log = []
        autorun(cart, lambda c: log.append((len(c["items"]), c["total"])))

        @action
        def add(item, price):
            cart["items"].append(item)
            cart["total"] += price

        add("apple", 3)
        assert log == [(0, 0), (1, 3)]


class TestTransaction:
    def test_batches_updates(self):
        state = WatchedGraph().wrap({"a": 0, "b": 0})
        log = []
        autorun(state, lambda s: log.append((s["a"], s["b"])))

        with transaction():
            state["a"] = 10
            state["b"] = 20
            assert get_pending_count() == 1

        assert log == [(0, 0), (10, 20)]
        assert get_pending_count() == 0

    def test_nested_transactions(self):
        state = WatchedGraph().wrap({"v": 0})
        log = []
        autorun(state, lambda s: log.append(s["v"]))

        with transaction():
            state["v"] = 1
            with transaction():
                state["v"] = 2
            state["v"] = 3

        assert log == [0, 3]

    def test_flushes_on_exception(self):
        state = WatchedGraph().wrap({"v": 0})
        log = []
        autorun(state, lambda s: log.append(s["v"]))

        try:
            with transaction():
                state["v"] = 1
                raise RuntimeError("oops")
        except RuntimeError:
            pass

        assert log == [0, 1]
