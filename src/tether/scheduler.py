"""Notification scheduler — batches invalidated effects into deferred flushes.

Writes never run effects inline. An invalidated effect lands in the pending
set, and the first one in a synchronous burst asks the host for exactly one
deferred flush. The flush runs every pending effect once, in the order they
were first enqueued. Effects invalidated while a flush is running go into a
fresh pending set and wait for the next flush.

The deferral primitive is pluggable (set_scheduler). By default a running
asyncio loop is used via call_soon; without one, the host drains the queue
with flush() or drain().
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, ParamSpec, TypeVar

if TYPE_CHECKING:
    from tether.effect import Effect

P = ParamSpec("P")
R = TypeVar("R")

Defer = Callable[[Callable[[], None]], object]
ErrorHandler = Callable[[Exception], None]

logger = logging.getLogger("tether.scheduler")


class Scheduler:
    """Owns the pending set and the single outstanding flush request."""

    def __init__(self) -> None:
        # dict as an ordered set: keeps first-enqueued order, ignores repeats
        self._pending: dict[Effect, None] = {}
        self._scheduled = False
        self._batch_depth = 0
        self.defer: Defer | None = None
        self.error_handler: ErrorHandler | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def enqueue(self, effect: Effect) -> None:
        """Add an effect to the pending set. Disposed effects are ignored."""
        if effect.disposed:
            return
        self._pending.setdefault(effect, None)
        if self._batch_depth == 0:
            self._request_flush()

    def discard(self, effect: Effect) -> None:
        self._pending.pop(effect, None)

    def _request_flush(self) -> None:
        if self._scheduled:
            return
        if self.defer is not None:
            self._scheduled = True
            self.defer(self.flush)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Nothing requested; the next enqueue tries again.
            logger.debug("No running event loop; %d effect(s) wait for flush()", len(self._pending))
            return
        self._scheduled = True
        loop.call_soon(self.flush)

    def flush(self) -> int:
        """Run one flush cycle. Returns the number of effects invoked."""
        self._scheduled = False
        batch = list(self._pending)
        self._pending = {}
        if batch:
            logger.debug("Flushing %d effect(s)", len(batch))
        for effect in batch:
            self.invoke(effect)
        return len(batch)

    def drain(self, max_rounds: int = 100) -> int:
        """Run flush cycles until nothing is pending. Returns the cycles run."""
        rounds = 0
        while self._pending:
            if rounds >= max_rounds:
                logger.warning(
                    "drain() stopped after %d rounds with %d effect(s) still pending",
                    rounds, len(self._pending),
                )
                break
            self.flush()
            rounds += 1
        return rounds

    def invoke(self, effect: Effect) -> None:
        """Run one effect, routing any failure to the error channel."""
        try:
            effect._run()
        except Exception as exc:
            self.report(exc, effect)

    def report(self, error: Exception, effect: Effect) -> None:
        handler = self.error_handler
        if handler is None:
            logger.error("Effect %r failed", effect, exc_info=error)
            return
        try:
            handler(error)
        except Exception:
            logger.exception("Error handler failed while reporting %r", error)

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._batch_depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope. The outermost exit drains synchronously."""
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self.drain()


_default = Scheduler()


def get_scheduler() -> Scheduler:
    return _default


def set_scheduler(defer: Defer | None) -> None:
    """Install the deferral primitive used to request a flush.

    defer receives a zero-argument callback and must arrange for it to run
    after the current synchronous burst:

        loop = asyncio.get_running_loop()
        tether.set_scheduler(loop.call_soon)

    Pass None to restore the default (running asyncio loop, else manual flush()).
    """
    _default.defer = defer


def set_error_handler(handler: ErrorHandler | None) -> None:
    """Install the callback that receives exceptions raised by effects.

    With no handler installed, failures are logged on the tether.scheduler logger.
    """
    _default.error_handler = handler


def flush() -> int:
    """Run one flush cycle now. Useful when no event loop drives the scheduler."""
    return _default.flush()


def drain(max_rounds: int = 100) -> int:
    """Flush repeatedly until no effect is pending (or max_rounds is reached)."""
    return _default.drain(max_rounds)


def get_pending_count() -> int:
    """Number of effects waiting to run. Useful for testing."""
    return _default.pending_count


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: hold all invalidations raised inside fn, then drain once.

    Usage:
        state = create_reactive_state({"a": 0, "b": 0})

        @action
        def swap():
            state["a"], state["b"] = state["b"], state["a"]
            # effects see both changes at once, and have run when swap() returns
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        _default.begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            _default.end_batch()

    return wrapper


@contextmanager
def transaction():
    """Context manager form of @action.

    Usage:
        with transaction():
            state["a"] = 1
            state["b"] = 2
        # effects have run here, once each
    """
    _default.begin_batch()
    try:
        yield
    finally:
        _default.end_batch()


def _reset() -> None:
    """Restore a fresh default scheduler. Test helper."""
    global _default
    _default = Scheduler()
