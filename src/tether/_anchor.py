"""Data anchor — plain Python structures that hold the dependency graph.

Graph entries are keyed by the integer id of a reactive view rather than by
the raw object, because dicts and lists cannot be weakly referenced. Each view
registers a finalizer that calls release() with its id, so the entries for a
target go away once nothing holds its view any more.
"""

import itertools

# view_id -> key -> effects (a dict used as an insertion-ordered set)
dependents: dict[int, dict[object, dict]] = {}

# Invalidation recorder installed by tether.debug.start(); None when off.
recorder = None

# ID generation — itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def release(view_id: int) -> None:
    dependents.pop(view_id, None)
