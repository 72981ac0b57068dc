"""Textual integration for deepwatch. Opt-in, requires textual.

Binds watched data to widgets: the bridged autorun()/reaction() skip runs
while the app isn't running or is paused, swallow NoMatches from widget
queries against a tree that is being rebuilt, and marshal runs triggered
from worker threads onto the app thread via call_from_thread.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from textual.css.query import NoMatches

from deepwatch.reaction import Reaction
from deepwatch.reaction import autorun as _autorun
from deepwatch.reaction import reaction as _reaction

# Keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app: Any) -> Iterator[None]:
    """Suspend bridged reactions, e.g. during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app: Any) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _bridge(app: Any, fn: Callable[..., None]) -> Callable[..., None]:
    main = threading.get_ident()

    def safe(*args: Any) -> None:
        try:
            fn(*args)
        except NoMatches:
            pass

    def guarded(*args: Any) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(safe, *args)
        else:
            safe(*args)

    return guarded


def reaction(
    app: Any,
    root: Any,
    data_fn: Callable[[Any], Any],
    effect_fn: Callable[[Any], None],
    *,
    fire_immediately: bool = False,
    track_original: bool = False,
) -> Reaction:
    """reaction() whose effect updates Textual widgets.

    data_fn is tracked as usual. Only effect_fn is guarded and marshalled.
    """
    return _reaction(
        root,
        data_fn,
        _bridge(app, effect_fn),
        fire_immediately=fire_immediately,
        track_original=track_original,
    )


def autorun(app: Any, root: Any, fn: Callable[[Any], None], *, track_original: bool = False) -> Reaction:
    """autorun() whose body updates Textual widgets.

    A run that is skipped (app not running, paused) records no reads, so the
    bridged autorun stops until it is re-run explicitly. Pair it with a
    reaction() when it has to resume on its own.
    """
    return _autorun(root, _bridge(app, fn), track_original=track_original)
