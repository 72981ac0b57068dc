"""Tests for Reaction, autorun, and reaction."""

import logging

from deepwatch import RecordedPropertyRead, WatchedGraph, WriteTrackedDict, autorun, reaction


class Counter:
    def __init__(self):
        self.value = 0


class TestAutorun:
    def test_runs_immediately(self):
        state = WatchedGraph().wrap({"count": 10})
        log = []
        autorun(state, lambda s: log.append(s["count"]))
        assert log == [10]

    def test_reruns_on_change(self):
        state = WatchedGraph().wrap({"count": 10})
        log = []
        autorun(state, lambda s: log.append(s["count"]))
        state["count"] = 20
        assert log == [10, 20]

    def test_ignores_unrelated_writes(self):
        state = WatchedGraph().wrap({"count": 10})
        log = []
        autorun(state, lambda s: log.append(s["count"]))
        state["other"] = 1
        assert log == [10]

    def test_dispose_stops(self):
        state = WatchedGraph().wrap({"count": 10})
        log = []
        r = autorun(state, lambda s: log.append(s["count"]))
        r.dispose()
        state["count"] = 20
        assert log == [10]  # no additional run
        assert "disposed" in repr(r)

    def test_reads(self):
        state = WatchedGraph().wrap({"count": 10})
        r = autorun(state, lambda s: s["count"])
        assert len(r.reads) == 1
        assert isinstance(r.reads[0], RecordedPropertyRead)
        assert r.reads[0].key == "count"

    def test_follows_new_dependencies(self):
        state = WatchedGraph().wrap({"show": False, "detail": "a"})
        log = []
        autorun(state, lambda s: log.append(s["detail"] if s["show"] else None))
        state["detail"] = "b"
        assert log == [None]
        state["show"] = True
        state["detail"] = "c"
        assert log == [None, "b", "c"]

    def test_nested_list(self):
        state = WatchedGraph().wrap({"todos": []})
        log = []
        autorun(state, lambda s: log.append(len(s["todos"])))
        state["todos"].append("write tests")
        assert log == [0, 1]

    def test_track_original_container(self):
        data = WriteTrackedDict(count=0)
        log = []
        autorun(data, lambda s: log.append(s["count"]), track_original=True)
        data["count"] = 5
        assert log == [0, 5]

    def test_track_original_instance(self):
        counter = Counter()
        log = []
        autorun(counter, lambda c: log.append(c.value), track_original=True)
        counter.value = 3
        assert log == [0, 3]

    def test_logs_rerun(self, caplog):
        state = WatchedGraph().wrap({"count": 0})
        autorun(state, lambda s: s["count"])
        with caplog.at_level(logging.DEBUG, logger="deepwatch.reaction"):
            state["count"] = 1
        assert "re-running" in caplog.text


class TestReaction:
    def test_no_initial_effect(self):
        """Without fire_immediately, effect doesn't run on setup."""
        state = WatchedGraph().wrap({"name": "a"})
        effects = []
        reaction(state, lambda s: s["name"], effects.append)
        assert effects == []

    def test_fires_on_change(self):
        state = WatchedGraph().wrap({"name": "a"})
        effects = []
        reaction(state, lambda s: s["name"], effects.append)
        state["name"] = "b"
        assert effects == ["b"]

    def test_fire_immediately(self):
        state = WatchedGraph().wrap({"name": "a"})
        effects = []
        reaction(state, lambda s: s["name"], effects.append, fire_immediately=True)
        assert effects == ["a"]

    def test_dedup_effect(self):
        """Effect only fires when data_fn result actually changes."""
        state = WatchedGraph().wrap({"n": 1})
        effects = []
        reaction(state, lambda s: "even" if s["n"] % 2 == 0 else "odd", effects.append)
        state["n"] = 3  # still odd
        assert effects == []
        state["n"] = 4
        assert effects == ["even"]

    def test_dispose(self):
        state = WatchedGraph().wrap({"name": "a"})
        effects = []
        r = reaction(state, lambda s: s["name"], effects.append)
        r.dispose()
        state["name"] = "b"
        assert effects == []

    def test_explicit_graph(self):
        graph = WatchedGraph()
        person = {"first": "Alice", "last": "Smith"}
        names = []
        reaction(person, lambda p: f"{p['first']} {p['last']}", names.append, graph=graph)
        graph.wrap(person)["first"] = "Bob"
        assert names == ["Bob Smith"]
