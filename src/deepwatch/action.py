"""Actions and transactions: batched change notifications.

Wrapping several writes in @action or `with transaction()` defers every
write listener (and so every autorun/reaction re-run) until the outermost
scope exits. Each listener runs once, after all writes are in place, so no
subscriber sees a half-applied update.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from deepwatch._tracking import begin_batch, end_batch

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch the write notifications of everything fn does.

    Usage:
        graph = WatchedGraph()
        cart = graph.wrap({"items": [], "total": 0})

        @action
        def add(item, price):
            cart["items"].append(item)
            cart["total"] += price
            # listeners of cart see both writes at once, after add() returns
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            end_batch()

    return wrapper


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager form of @action.

    Usage:
        with transaction():
            cart["total"] = 0
            cart["items"].clear()
            # listeners fire here
    """
    begin_batch()
    try:
        yield
    finally:
        end_batch()
