"""Tests for deepwatch.textual, the Textual integration layer."""

import threading

import pytest

pytest.importorskip("textual")

from textual.css.query import NoMatches  # noqa: E402

from deepwatch import WatchedGraph  # noqa: E402
from deepwatch import textual as dtx  # noqa: E402


class _MockApp:
    """Minimal mock matching the Textual App interface dtx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


def _state(value=1):
    return WatchedGraph().wrap({"value": value})


class TestReaction:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        state = _state()
        effects = []
        dtx.reaction(app, state, lambda s: s["value"], effects.append)
        state["value"] = 2
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        state = _state()
        effects = []
        dtx.reaction(app, state, lambda s: s["value"], effects.append)
        with dtx.pause(app):
            state["value"] = 2
        assert effects == []

    def test_fires_when_safe(self):
        app = _MockApp()
        state = _state()
        effects = []
        dtx.reaction(app, state, lambda s: s["value"], effects.append)
        state["value"] = 2
        assert effects == [2]

    def test_keeps_tracking_after_skip(self):
        app = _MockApp()
        state = _state()
        effects = []
        dtx.reaction(app, state, lambda s: s["value"], effects.append)
        with dtx.pause(app):
            state["value"] = 2
        state["value"] = 3
        assert effects == [3]

    def test_catches_nomatch(self):
        """NoMatches from widget queries are silently swallowed."""
        app = _MockApp()
        state = _state()

        def _raise_nomatch(value):
            raise NoMatches("StatusFooter")

        # Should not raise
        r = dtx.reaction(app, state, lambda s: s["value"], _raise_nomatch)
        state["value"] = 2
        r.dispose()

    def test_propagates_real_errors(self):
        """Non-NoMatches exceptions propagate normally."""
        app = _MockApp()
        state = _state()

        def _raise_value_error(value):
            raise ValueError("boom")

        dtx.reaction(app, state, lambda s: s["value"], _raise_value_error)
        with pytest.raises(ValueError, match="boom"):
            state["value"] = 2

    def test_dispose_stops_reaction(self):
        app = _MockApp()
        state = _state()
        effects = []
        r = dtx.reaction(app, state, lambda s: s["value"], effects.append)
        state["value"] = 2
        assert effects == [2]
        r.dispose()
        state["value"] = 3
        assert effects == [2]

    def test_thread_marshal(self):
        """Triggers from a background thread use call_from_thread."""
        app = _MockApp()
        state = _state()
        effects = []
        dtx.reaction(app, state, lambda s: s["value"], effects.append)

        def _bg():
            state["value"] = 2

        t = threading.Thread(target=_bg)
        t.start()
        t.join()

        assert effects == [2]
        assert len(app._call_from_thread_log) >= 1


class TestAutorun:
    def test_skips_during_pause(self):
        app = _MockApp()
        state = _state()
        log = []

        dtx.autorun(app, state, lambda s: log.append(s["value"]))
        # autorun fires immediately on setup
        assert log == [1]

        with dtx.pause(app):
            state["value"] = 2
        # Skipped during pause
        assert log == [1]

    def test_catches_nomatch(self):
        """NoMatches from widget queries are silently swallowed."""
        app = _MockApp()
        state = _state()
        call_count = [0]

        def _fn(s):
            call_count[0] += 1
            s["value"]  # track dependency
            if call_count[0] > 1:
                raise NoMatches("Widget")

        dtx.autorun(app, state, _fn)
        assert call_count[0] == 1

        state["value"] = 2
        assert call_count[0] == 2

    def test_fires_when_safe(self):
        app = _MockApp()
        state = _state()
        log = []
        dtx.autorun(app, state, lambda s: log.append(s["value"]))
        state["value"] = 2
        assert log == [1, 2]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert dtx.is_safe(app)

        with pytest.raises(RuntimeError):
            with dtx.pause(app):
                assert not dtx.is_safe(app)
                raise RuntimeError("oops")

        assert dtx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        app = _MockApp()
        attrs_before = set(vars(app))
        with dtx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        """Pausing one app does not affect another."""
        app_a = _MockApp()
        app_b = _MockApp()
        with dtx.pause(app_a):
            assert not dtx.is_safe(app_a)
            assert dtx.is_safe(app_b)
