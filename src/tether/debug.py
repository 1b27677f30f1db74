"""Debug instrumentation — graph snapshots and an invalidation recorder.

Nothing here changes how reactivity behaves. snapshot() and keys_of() copy
the current dependency graph; start() installs a recorder that timestamps
every invalidation until stop() is called.

Usage:
    from tether import debug

    debug.start()
    state["count"] += 1
    for event in debug.last(5):
        print(event.timestamp, event.keys, event.dependents)
    debug.stop()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from tether import _anchor
from tether._tracking import keys_of as _keys_of
from tether.reactive import ReactiveView

logger = logging.getLogger("tether.debug")


@dataclass(frozen=True, slots=True)
class Invalidation:
    """One write that invalidated keys of a view."""

    timestamp: float
    view_id: int
    keys: tuple
    dependents: tuple


class Recorder:
    """Collects Invalidation events in arrival order."""

    def __init__(self) -> None:
        self.events: list[Invalidation] = []

    def record(self, view_id: int, keys: tuple, dependents: tuple) -> None:
        self.events.append(Invalidation(time.perf_counter(), view_id, keys, dependents))

    def last(self, steps: int) -> list[Invalidation]:
        if steps <= 0:
            return []
        return self.events[-steps:]


def start() -> Recorder:
    """Begin recording invalidations. Replaces any recorder already running."""
    recorder = Recorder()
    _anchor.recorder = recorder
    logger.debug("Invalidation recording started")
    return recorder


def stop() -> Recorder | None:
    """Stop recording and return the recorder that was running, if any."""
    recorder = _anchor.recorder
    _anchor.recorder = None
    if recorder is not None:
        logger.debug("Invalidation recording stopped after %d event(s)", len(recorder.events))
    return recorder


def is_recording() -> bool:
    return _anchor.recorder is not None


def last(steps: int) -> list[Invalidation]:
    """The most recent `steps` events of the running recorder."""
    if _anchor.recorder is None:
        return []
    return _anchor.recorder.last(steps)


def snapshot() -> dict[int, dict[object, tuple]]:
    """Copy of the whole graph: view id -> key -> dependent effects."""
    return {
        vid: {key: tuple(effects) for key, effects in by_key.items()}
        for vid, by_key in _anchor.dependents.items()
    }


def view_id(view: ReactiveView) -> int:
    if not isinstance(view, ReactiveView):
        raise TypeError(f"expected a reactive view, got {type(view).__name__}")
    return view._tether_id


def keys_of(view: ReactiveView) -> dict[object, frozenset]:
    """Key -> dependents mapping for one view."""
    return _keys_of(view_id(view))
