"""Textual integration for tether. Opt-in — requires textual.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core tether stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from tether.effect import run_effect
from tether.scheduler import set_scheduler

logger = logging.getLogger("tether.textual")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


def install(app) -> None:
    """Flush pending effects on the app's message loop.

    Writes on the app thread defer the flush with call_later; writes from a
    worker thread hand it over with call_from_thread.
    """
    _main = threading.get_ident()

    def _defer(flush):
        if threading.get_ident() != _main:
            app.call_from_thread(flush)
        else:
            app.call_later(flush)

    set_scheduler(_defer)
    logger.debug("Flushes now run on %r", app)


@contextmanager
def pause(app):
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def effect(app, fn):
    """run_effect() that safely touches Textual widgets.

    Skips runs while the app is paused or not running, and swallows NoMatches
    from widget queries. Returns the disposer.
    """

    def _guarded():
        if not is_safe(app):
            return
        try:
            fn()
        except NoMatches:
            pass

    return run_effect(_guarded)


def bind(app, selector: str, fn):
    """Keep the widget matching selector updated with fn()'s result.

    Usage:
        bind(app, "#total", lambda: f"{len(state['todos'])} items")
    """

    def _render():
        value = fn()
        app.query_one(selector).update(value)

    return effect(app, _render)
