"""Listener coalescing for write notifications.

A single logical mutation may run through several tracked operations on the
same target: a wrapper write that lands on an enhanced object, list.extend()
calling back into __setitem__, a property setter writing its backing field.
run_once_after() opens a coalescing frame per target. Nested frames for the
same target only contribute listeners; the outermost frame fires each distinct
listener exactly once after the mutation completes.

Batching: inside a transaction() (see deepwatch.action) closing root frames
hand their listeners to a global pending set, flushed once when the outermost
batch exits.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

R = TypeVar("R")

Listener = Callable[[], None]
Collect = Callable[[Iterable[Listener] | None], None]

# id(target) -> ordered, de-duplicated listeners of the open root frame.
# Only the root frame's target is referenced, via _frame_targets.
_frames: dict[int, dict[Listener, None]] = {}
_frame_targets: dict[int, object] = {}

# Batch depth counter. When > 0, firing is deferred.
_batch_depth: int = 0

# Listeners collected during a batch, awaiting flush.
_pending: dict[Listener, None] = {}


def run_once_after(target: object, body: Callable[[Collect], R]) -> R:
    """Run body(collect) and fire the collected listeners once afterwards.

    collect() may be called any number of times with an iterable of
    listeners (or None). If a frame for target is already open further up the
    call stack, the listeners are handed to that frame instead.
    """
    key = id(target)
    listeners = _frames.get(key)
    is_root = listeners is None
    if is_root:
        listeners = _frames[key] = {}
        _frame_targets[key] = target

    def collect(more: Iterable[Listener] | None) -> None:
        if more:
            for listener in more:
                listeners[listener] = None

    try:
        result = body(collect)
        if is_root:
            del _frames[key]
            del _frame_targets[key]
            _fire(listeners)
        return result
    finally:
        if is_root and _frames.get(key) is listeners:
            del _frames[key]
            del _frame_targets[key]


def in_frame(target: object) -> bool:
    """Is a coalescing frame for target currently open?"""
    return id(target) in _frames


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending listeners."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


def _fire(listeners: dict[Listener, None]) -> None:
    if _batch_depth > 0:
        _pending.update(listeners)
        return
    for listener in list(listeners):
        listener()


def _flush_pending() -> None:
    """Run all pending listeners. Handles listeners collected during flush."""
    while _pending:
        # Listeners may write again while running.
        batch = list(_pending)
        _pending.clear()
        for listener in batch:
            listener()


def get_pending_count() -> int:
    """Number of listeners waiting for the current batch to end. Useful for testing."""
    return len(_pending)
