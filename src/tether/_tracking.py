"""Dependency tracking engine — the heart of tether.

Uses a contextvar to remember which effect is currently running, so every
tracked read can record a (view, key) -> effect edge in the graph held by
_anchor. Writes look the edges up again and hand the dependents to the
scheduler.

Setting the contextvar with a token and resetting it afterwards gives a
push/pop discipline: an effect started inside another effect restores the
outer one when it finishes.
"""

from __future__ import annotations

import contextvars
from typing import TYPE_CHECKING, Iterable

from tether import _anchor
from tether.scheduler import get_scheduler

if TYPE_CHECKING:
    from tether.effect import Effect


class _SyntheticKey:
    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


# Size of a container.
LENGTH = _SyntheticKey("length")
# Whole-container contents: iteration, equality, membership by value.
ITERATE = _SyntheticKey("iterate")

# The effect whose reads are being recorded, if any.
current_effect: contextvars.ContextVar[Effect | None] = contextvars.ContextVar(
    "current_effect", default=None
)


def track(view_id: int, key: object, effect: Effect | None = None) -> None:
    """Record that effect (default: the current one) depends on (view, key)."""
    if effect is None:
        effect = current_effect.get()
        if effect is None:
            return
    if effect.disposed:
        return
    keys = _anchor.dependents.setdefault(view_id, {})
    keys.setdefault(key, {})[effect] = None


def trigger(view_id: int, keys: Iterable[object]) -> None:
    """Hand every effect depending on any of keys to the scheduler."""
    keys = tuple(keys)
    if not keys:
        return
    by_key = _anchor.dependents.get(view_id, {})
    affected: dict[Effect, None] = {}
    for key in keys:
        for effect in by_key.get(key, ()):
            affected[effect] = None
    if _anchor.recorder is not None:
        _anchor.recorder.record(view_id, keys, tuple(affected))
    scheduler = get_scheduler()
    for effect in affected:
        scheduler.enqueue(effect)


def forget(effect: Effect) -> None:
    """Remove effect from every key of every tracked view."""
    for view_id, by_key in list(_anchor.dependents.items()):
        for key, effects in list(by_key.items()):
            effects.pop(effect, None)
            if not effects:
                del by_key[key]
        if not by_key:
            del _anchor.dependents[view_id]


def keys_of(view_id: int) -> dict[object, frozenset]:
    """Current key -> dependents mapping for one view (a copy)."""
    by_key = _anchor.dependents.get(view_id, {})
    return {key: frozenset(effects) for key, effects in by_key.items()}
