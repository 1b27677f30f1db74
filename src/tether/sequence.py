"""Sequence mutation policy — which keys a list operation invalidates.

A single list call can move many indices at once: append grows the list,
pop(0) shifts every remaining item, a slice assignment replaces a span of
unpredictable size. Intercepting item writes one by one cannot describe that,
so every mutating operation has a handler here. A handler performs the native
operation on the raw list and reports the exact keys it invalidated, so the
view can notify them in one batch.

All range edits share one rule. Editing at start, deleting d items and
inserting i items on a list of length n invalidates [start, start + d) when
d == i. Otherwise every index from start up to the longer of the two lengths
shifts or vacates, and LENGTH changes too. Every effective mutation also
invalidates ITERATE.

Operations with no precise rule invalidate everything (LENGTH, ITERATE and
every index), but only when the contents actually changed.
"""

from __future__ import annotations

import operator
from typing import Any, Callable, NamedTuple

from tether._tracking import ITERATE, LENGTH


class Mutation(NamedTuple):
    result: Any
    keys: list
    inserted: tuple = ()


def range_keys(old_len: int, start: int, deleted: int, inserted: int) -> list:
    """Keys invalidated by replacing `deleted` items at start with `inserted` items."""
    if deleted == 0 and inserted == 0:
        return []
    if deleted == inserted:
        keys: list = list(range(start, start + deleted))
    else:
        keys = list(range(start, max(old_len, old_len - deleted + inserted)))
        keys.append(LENGTH)
    keys.append(ITERATE)
    return keys


def all_keys(old_len: int, new_len: int) -> list:
    """Conservative invalidation: every index either length covers, plus both synthetics."""
    keys: list = list(range(max(old_len, new_len)))
    keys.extend((LENGTH, ITERATE))
    return keys


def _clamp(index: int, length: int) -> int:
    # Same position rule as list.insert
    index = operator.index(index)
    if index < 0:
        return max(index + length, 0)
    return min(index, length)


def _changed(before: list, after: list) -> bool:
    return len(before) != len(after) or any(a is not b for a, b in zip(before, after))


# ─── Handlers ────────────────────────────────────────────────────────────────


def append(target: list, item) -> Mutation:
    n = len(target)
    target.append(item)
    return Mutation(None, range_keys(n, n, 0, 1), (item,))


def extend(target: list, items) -> Mutation:
    items = list(items)
    n = len(target)
    target.extend(items)
    return Mutation(None, range_keys(n, n, 0, len(items)), tuple(items))


def insert(target: list, index, item) -> Mutation:
    n = len(target)
    start = _clamp(index, n)
    target.insert(start, item)
    return Mutation(None, range_keys(n, start, 0, 1), (item,))


def pop(target: list, index=-1) -> Mutation:
    n = len(target)
    index = operator.index(index)
    result = target.pop(index)
    position = index + n if index < 0 else index
    return Mutation(result, range_keys(n, position, 1, 0))


def remove(target: list, value) -> Mutation:
    n = len(target)
    position = target.index(value)
    del target[position]
    return Mutation(None, range_keys(n, position, 1, 0))


def clear(target: list) -> Mutation:
    n = len(target)
    target.clear()
    return Mutation(None, range_keys(n, 0, n, 0))


def reverse(target: list) -> Mutation:
    n = len(target)
    target.reverse()
    return Mutation(None, list(range(n)) + [ITERATE] if n > 1 else [])


def sort(target: list, *, key=None, reverse=False) -> Mutation:
    n = len(target)
    target.sort(key=key, reverse=reverse)
    return Mutation(None, list(range(n)) + [ITERATE] if n > 1 else [])


def setitem(target: list, index, value) -> Mutation:
    n = len(target)
    if isinstance(index, slice):
        items = list(value)
        start, stop, step = index.indices(n)
        if step != 1:
            before = list(target)
            target[index] = items
            return Mutation(None, all_keys(n, len(target)) if _changed(before, target) else [], tuple(items))
        deleted = max(stop - start, 0)
        target[index] = items
        return Mutation(None, range_keys(n, start, deleted, len(items)), tuple(items))
    index = operator.index(index)
    target[index] = value
    position = index + n if index < 0 else index
    return Mutation(None, [position, ITERATE], (value,))


def delitem(target: list, index) -> Mutation:
    n = len(target)
    if isinstance(index, slice):
        start, stop, step = index.indices(n)
        if step != 1:
            before = list(target)
            del target[index]
            return Mutation(None, all_keys(n, len(target)) if _changed(before, target) else [])
        deleted = max(stop - start, 0)
        del target[index]
        return Mutation(None, range_keys(n, start, deleted, 0))
    index = operator.index(index)
    del target[index]
    position = index + n if index < 0 else index
    return Mutation(None, range_keys(n, position, 1, 0))


def splice(target: list, start, delete_count=None, *items) -> Mutation:
    """Replace delete_count items at start with items; the result is the removed list."""
    n = len(target)
    start = _clamp(start, n)
    if delete_count is None:
        delete_count = n - start
    else:
        delete_count = min(max(operator.index(delete_count), 0), n - start)
    removed = target[start:start + delete_count]
    target[start:start + delete_count] = items
    return Mutation(removed, range_keys(n, start, delete_count, len(items)), items)


def fill(target: list, value, start=0, stop=None) -> Mutation:
    n = len(target)
    start = _clamp(start, n)
    stop = n if stop is None else _clamp(stop, n)
    if start >= stop:
        return Mutation(None, [])
    target[start:stop] = [value] * (stop - start)
    return Mutation(None, all_keys(n, n), (value,))


def copy_within(target: list, dest, start=0, stop=None) -> Mutation:
    n = len(target)
    dest = _clamp(dest, n)
    start = _clamp(start, n)
    stop = n if stop is None else _clamp(stop, n)
    count = min(stop - start, n - dest)
    if count <= 0:
        return Mutation(None, [])
    target[dest:dest + count] = target[start:start + count]
    return Mutation(None, all_keys(n, n))


def imul(target: list, times) -> Mutation:
    before = list(target)
    target *= times
    return Mutation(None, all_keys(len(before), len(target)) if _changed(before, target) else [])


def fallback(target: list, method: Callable, *args, **kwargs) -> Mutation:
    """Run an operation with no handler, invalidating everything if it changed the list."""
    before = list(target)
    result = method(*args, **kwargs)
    keys = all_keys(len(before), len(target)) if _changed(before, target) else []
    return Mutation(result, keys)


MUTATIONS: dict[str, Callable[..., Mutation]] = {
    "append": append,
    "extend": extend,
    "__iadd__": extend,
    "insert": insert,
    "pop": pop,
    "remove": remove,
    "clear": clear,
    "reverse": reverse,
    "sort": sort,
    "__setitem__": setitem,
    "__delitem__": delitem,
    "splice": splice,
    "fill": fill,
    "copy_within": copy_within,
    "__imul__": imul,
}
