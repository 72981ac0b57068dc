"""Reactions: side effects that re-run when the data they read changes.

A reaction runs its function against a wrapped view of a root object,
records every read the function makes, and subscribes to those reads. When
a write hits any of them, the reaction re-runs and re-records.

Two flavors:
- autorun(root, fn): runs fn(view) immediately and again after every relevant change.
- reaction(root, data_fn, effect_fn): tracks data_fn(view) and calls effect_fn
  with the new result only when that result differs from the previous one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from deepwatch._util import is_proxy
from deepwatch.graph import WatchedGraph
from deepwatch.reads import RecordedRead, RecordedValueRead

logger = logging.getLogger("deepwatch.reaction")

T = TypeVar("T")


class Reaction:
    """Re-runs fn(view) whenever something it read through view changes.

    With track_original=True, writes made directly on the plain objects
    (not through a wrapper) are caught too. The objects read from are
    enhanced for that, see deepwatch.enhance.
    """

    __slots__ = ("_graph", "_root", "_fn", "_track_original", "_reads", "_disposed")

    def __init__(
        self,
        root: Any,
        fn: Callable[[Any], Any],
        *,
        graph: WatchedGraph | None = None,
        track_original: bool = False,
    ) -> None:
        if graph is None:
            graph = object.__getattribute__(root, "_dw_graph") if is_proxy(root) else WatchedGraph()
        self._graph = graph
        self._root = root
        self._fn = fn
        self._track_original = track_original
        self._reads: list[RecordedRead] = []
        self._disposed = False

    @property
    def reads(self) -> list[RecordedRead]:
        """What the last run read, in order."""
        return list(self._reads)

    def _run(self) -> Any:
        """Re-evaluate fn, re-tracking its reads."""
        if self._disposed:
            return None

        self._unsubscribe()
        result, reads = self._graph.record_reads(self._fn, self._graph.wrap(self._root))
        self._reads = [read for read in reads if not isinstance(read, RecordedValueRead)]
        for read in self._reads:
            read.subscribe(self._on_change, self._track_original)
        return result

    def _on_change(self) -> None:
        logger.debug("%r: a recorded read changed, re-running", self)
        self._run()

    def _unsubscribe(self) -> None:
        for read in self._reads:
            read.unsubscribe(self._on_change)
        self._reads = []

    def dispose(self) -> None:
        """Stop this reaction and drop its subscriptions."""
        self._disposed = True
        self._unsubscribe()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        return f"{type(self).__name__}({name}, {state})"


class _DataReaction(Reaction):
    """Internal: reaction(root, data_fn, effect_fn) implementation.

    Tracks data_fn's reads. When they change, re-runs data_fn. If the result
    differs from last time, calls effect_fn with the new value.
    """

    __slots__ = ("_effect_fn", "_last_value", "_initialized")

    def __init__(self, root: Any, data_fn: Callable[[Any], T], effect_fn: Callable[[T], None], **kwargs: Any) -> None:
        super().__init__(root, data_fn, **kwargs)
        self._effect_fn = effect_fn
        self._last_value: Any = None
        self._initialized = False

    def _run(self) -> Any:
        if self._disposed:
            return None
        new_value = super()._run()
        if not self._initialized or new_value != self._last_value:
            self._last_value = new_value
            self._initialized = True
            self._effect_fn(new_value)
        return new_value

    def _track(self) -> None:
        """Run data_fn to establish subscriptions without firing the effect."""
        self._last_value = Reaction._run(self)
        self._initialized = True


def autorun(
    root: Any,
    fn: Callable[[Any], Any],
    *,
    graph: WatchedGraph | None = None,
    track_original: bool = False,
) -> Reaction:
    """Run fn(view) immediately, then again whenever anything it read changes.

    view is root wrapped in graph. graph defaults to the graph of root when
    root is a wrapper, otherwise to a fresh WatchedGraph. Returns
    the Reaction (call .dispose() to stop).

    track_original=True also follows writes made directly on the plain
    objects that were read. Every such object has to be enhanceable, so plain
    dict, list and set data must use the WriteTracked containers.

    Usage:
        state = WatchedGraph().wrap({"count": 0})
        log = []

        r = autorun(state, lambda s: log.append(s["count"]))
        # log == [0], ran immediately

        state["count"] = 1
        # log == [0, 1], re-ran because count changed

        r.dispose()
    """
    r = Reaction(root, fn, graph=graph, track_original=track_original)
    r._run()
    return r


def reaction(
    root: Any,
    data_fn: Callable[[Any], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
    graph: WatchedGraph | None = None,
    track_original: bool = False,
) -> Reaction:
    """Track data_fn(view); call effect_fn when its result changes.

    Unlike autorun, effect_fn only fires when data_fn's return value changes
    (compared with ==), not on every write to something data_fn read.

    Usage:
        person = WatchedGraph().wrap({"first": "Alice", "last": "Smith"})

        names = []
        r = reaction(
            person,
            lambda p: f"{p['first']} {p['last']}",
            names.append,
        )
        # names == [], data_fn ran to subscribe, the effect didn't fire yet

        person["first"] = "Bob"
        # names == ["Bob Smith"]

        r.dispose()
    """
    r = _DataReaction(root, data_fn, effect_fn, graph=graph, track_original=track_original)
    if fire_immediately:
        r._run()
    else:
        r._track()
    return r
