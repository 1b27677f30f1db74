"""Effects — side effects that re-run when the state they read changes.

An effect runs once synchronously when created. Every tracked read made
during that run becomes an edge in the dependency graph; a later write to
one of those keys enqueues the effect, and the next flush runs it again,
which re-records its reads.

Edges are only removed by dispose(). A key an effect stopped reading on a
later run still wakes it up until it is disposed.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from tether import _anchor
from tether._tracking import current_effect, forget
from tether.scheduler import get_scheduler


class EffectState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DISPOSED = "disposed"


class Effect:
    """A re-runnable unit of reactive work."""

    __slots__ = ("_id", "_fn", "_state", "_rerun")

    def __init__(self, fn: Callable[[], object]) -> None:
        if not callable(fn):
            raise TypeError(f"effect function must be callable, got {type(fn).__name__}")
        self._id = _anchor.new_id()
        self._fn = fn
        self._state = EffectState.IDLE
        self._rerun = False

    @property
    def state(self) -> EffectState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._state is EffectState.DISPOSED

    def _run(self) -> None:
        """Execute fn with this effect current. Exceptions propagate to the caller."""
        if self._state is EffectState.DISPOSED:
            return
        if self._state is EffectState.RUNNING:
            # Re-entered (e.g. a transaction drained inside fn): run again next cycle.
            self._rerun = True
            return

        self._state = EffectState.RUNNING
        token = current_effect.set(self)
        try:
            self._fn()
        finally:
            current_effect.reset(token)
            if self._state is EffectState.RUNNING:
                self._state = EffectState.IDLE
            if self._rerun:
                self._rerun = False
                get_scheduler().enqueue(self)

    def dispose(self) -> None:
        """Stop this effect. Disconnects it from the graph and the pending set."""
        if self._state is EffectState.DISPOSED:
            return
        self._state = EffectState.DISPOSED
        forget(self)
        get_scheduler().discard(self)

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        return f"Effect({name}, {self._state.value})"


def run_effect(fn: Callable[[], object]) -> Callable[[], None]:
    """Run fn now, then again whenever state it read changes.

    Returns the disposer. Calling it stops the effect; calling it twice is harmless.
    A failure in fn, on the first run or later, goes to the error handler
    (see set_error_handler) and never to the code that wrote the state.

    Usage:
        state = create_reactive_state({"count": 0})
        log = []

        dispose = run_effect(lambda: log.append(state["count"]))
        # log == [0] — ran immediately

        state["count"] = 1
        flush()
        # log == [0, 1] — re-ran on the next flush

        dispose()
        state["count"] = 2
        flush()
        # log == [0, 1] — stopped
    """
    effect = Effect(fn)
    get_scheduler().invoke(effect)
    return effect.dispose
