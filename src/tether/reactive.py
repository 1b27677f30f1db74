"""Reactive views — state containers that track their readers.

A view wraps a raw dict, list or dataclass instance. Reads through the view
record (view, key) edges for the running effect; writes compare against the
stored value and, on a real change, notify the effects depending on the keys
they touched. Nested structured values come back wrapped as well.

Views are identity-stable: the same raw object always maps to the same view,
through a weak cache keyed by id(raw). Each view pins the child views it has
handed out while the child is still contained in it, so a view lives as long
as something reachable holds it, and cyclic data never produces more than
one view per object.

The raw data never contains views. Values written through a view are
unwrapped before storage, so to_raw(view) is always plain, serializable data.
"""

from __future__ import annotations

import dataclasses
import functools
import operator
import weakref
from typing import Generic, Iterator, TypeVar

from tether import _anchor, sequence
from tether._tracking import ITERATE, LENGTH, track, trigger

T = TypeVar("T")
KT = TypeVar("KT")
VT = TypeVar("VT")

# id(raw) -> view. A view holds its raw target, so an id cannot be reused
# while its entry is alive.
_views: weakref.WeakValueDictionary[int, ReactiveView] = weakref.WeakValueDictionary()


def is_structured(value: object) -> bool:
    """True for values that get wrapped: dicts, lists and dataclass instances."""
    if isinstance(value, (dict, list)):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def is_reactive(value: object) -> bool:
    return isinstance(value, ReactiveView)


def to_raw(value: T) -> T:
    """The raw object behind a view; anything else is returned as is."""
    if isinstance(value, ReactiveView):
        return value._tether_target
    return value


def wrap(value: T) -> T:
    """Return the view for a structured value, creating it on first use.

    Views and non-structured values are returned unchanged.
    """
    if isinstance(value, ReactiveView) or not is_structured(value):
        return value
    view = _views.get(id(value))
    if view is None:
        if isinstance(value, dict):
            view = ReactiveDict(value)
        elif isinstance(value, list):
            view = ReactiveList(value)
        else:
            view = ReactiveObject(value)
        _views[id(value)] = view
    return view


def create_reactive_state(initial: T) -> T:
    """Entry point: wrap a dict, list or dataclass instance as reactive state.

    Usage:
        state = create_reactive_state({"todos": [], "filter": "all"})
        run_effect(lambda: print(len(state["todos"])))
        state["todos"].append({"title": "write tests", "done": False})
    """
    if not isinstance(initial, ReactiveView) and not is_structured(initial):
        raise TypeError(
            f"reactive state must be a dict, list or dataclass instance, got {type(initial).__name__}"
        )
    return wrap(initial)


def _same(old: object, new: object) -> bool:
    if old is new:
        return True
    if is_structured(old) or is_structured(new) or type(old) is not type(new):
        return False
    return old == new


class ReactiveView:
    """Shared machinery of all views: graph identity, tracking, child pinning."""

    __slots__ = ("_tether_id", "_tether_target", "_tether_held", "__weakref__")

    def __init__(self, target) -> None:
        object.__setattr__(self, "_tether_id", _anchor.new_id())
        object.__setattr__(self, "_tether_target", target)
        # id(raw child) -> child view, pinned while the child is contained here
        object.__setattr__(self, "_tether_held", {})
        weakref.finalize(self, _anchor.release, self._tether_id)

    def _track(self, key) -> None:
        track(self._tether_id, key)

    def _trigger(self, keys) -> None:
        trigger(self._tether_id, keys)

    def _wrap_child(self, value):
        view = wrap(value)
        if view is not value:
            self._tether_held[id(value)] = view
        return view

    def _prune(self, contained) -> None:
        """Unpin child views that are no longer among contained raw values."""
        if not self._tether_held:
            return
        live = {id(value) for value in contained}
        for child_id in [child_id for child_id in self._tether_held if child_id not in live]:
            del self._tether_held[child_id]

    def _instrument(self, method, snapshot, keys_for):
        """Wrap a method with no handler: track the whole container, notify what it changed."""

        @functools.wraps(method)
        def instrumented(*args, **kwargs):
            self._track(ITERATE)
            before = snapshot()
            result = method(*args, **kwargs)
            keys = keys_for(before)
            if keys:
                self._prune(self._contents())
                self._trigger(keys)
            return result

        return instrumented

    def _contents(self):
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        self._track(ITERATE)
        return self._tether_target == to_raw(other)

    __hash__ = None


class ReactiveDict(ReactiveView, Generic[KT, VT]):
    """A dict view. Keys are tracked individually; LENGTH and ITERATE cover the rest."""

    __slots__ = ()

    def _contents(self):
        return self._tether_target.values()

    # --- Read operations (track) ---

    def __getitem__(self, key: KT) -> VT:
        self._track(key)
        return self._wrap_child(self._tether_target[key])

    def get(self, key: KT, default: VT | None = None) -> VT | None:
        self._track(key)
        if key in self._tether_target:
            return self._wrap_child(self._tether_target[key])
        return default

    def __contains__(self, key: object) -> bool:
        self._track(key)
        return key in self._tether_target

    def __len__(self) -> int:
        self._track(LENGTH)
        return len(self._tether_target)

    def __bool__(self) -> bool:
        self._track(LENGTH)
        return bool(self._tether_target)

    def __iter__(self) -> Iterator[KT]:
        self._track(ITERATE)
        return iter(self._tether_target)

    def keys(self):
        self._track(ITERATE)
        return self._tether_target.keys()

    def values(self) -> list[VT]:
        self._track(ITERATE)
        for key in self._tether_target:
            self._track(key)
        return [self._wrap_child(value) for value in self._tether_target.values()]

    def items(self) -> list[tuple[KT, VT]]:
        self._track(ITERATE)
        for key in self._tether_target:
            self._track(key)
        return [(key, self._wrap_child(value)) for key, value in self._tether_target.items()]

    def copy(self) -> dict[KT, VT]:
        """A shallow copy of the raw dict."""
        self._track(ITERATE)
        return self._tether_target.copy()

    def __or__(self, other) -> dict:
        self._track(ITERATE)
        return self._tether_target | to_raw(other)

    # --- Write operations (notify) ---

    def __setitem__(self, key: KT, value: VT) -> None:
        self._trigger(self._store(key, value))

    def _store(self, key, value) -> tuple:
        """Write one key and return the keys it invalidated."""
        raw = to_raw(value)
        target = self._tether_target
        present = key in target
        if present:
            old = target[key]
            if _same(old, raw):
                return ()
        target[key] = raw
        if is_structured(raw):
            self._wrap_child(raw)
        if present:
            if id(old) in self._tether_held:
                self._prune(target.values())
            return (key, ITERATE)
        return (key, LENGTH, ITERATE)

    def __delitem__(self, key: KT) -> None:
        del self._tether_target[key]
        self._prune(self._tether_target.values())
        self._trigger((key, LENGTH, ITERATE))

    def pop(self, key: KT, *default):
        if key not in self._tether_target:
            return self._tether_target.pop(key, *default)
        result = self._tether_target.pop(key)
        self._prune(self._tether_target.values())
        self._trigger((key, LENGTH, ITERATE))
        return result

    def popitem(self) -> tuple[KT, VT]:
        key, value = self._tether_target.popitem()
        self._prune(self._tether_target.values())
        self._trigger((key, LENGTH, ITERATE))
        return key, value

    def setdefault(self, key: KT, default: VT | None = None) -> VT:
        if key not in self._tether_target:
            self[key] = default
        return self[key]

    def update(self, other=(), /, **kwargs) -> None:
        """Write several keys, notifying all of them in one batch."""
        incoming = dict(to_raw(other), **kwargs)
        keys: dict = {}
        for key, value in incoming.items():
            for invalidated in self._store(key, value):
                keys[invalidated] = None
        self._trigger(keys)

    def __ior__(self, other):
        self.update(other)
        return self

    def clear(self) -> None:
        if not self._tether_target:
            return
        keys = list(self._tether_target)
        self._tether_target.clear()
        self._tether_held.clear()
        self._trigger(keys + [LENGTH, ITERATE])

    def __getattr__(self, name: str):
        # Methods only a dict subclass defines
        if name.startswith("__"):
            raise AttributeError(name)
        attr = getattr(self._tether_target, name)
        if not callable(attr):
            return attr
        return self._instrument(attr, self._tether_target.copy, self._changed_keys)

    def _changed_keys(self, before: dict) -> list:
        after = self._tether_target
        keys: list = [
            key for key in before.keys() | after.keys()
            if key not in before or key not in after or before[key] is not after[key]
        ]
        if not keys:
            return keys
        if len(before) != len(after) or before.keys() != after.keys():
            keys.append(LENGTH)
        keys.append(ITERATE)
        return keys

    def __repr__(self) -> str:
        return f"ReactiveDict({self._tether_target!r})"


class ReactiveList(ReactiveView, Generic[T]):
    """A list view. Indices are tracked individually; mutations go through the sequence policy."""

    __slots__ = ()

    def _contents(self):
        return self._tether_target

    def _mutate(self, op: str, *args, **kwargs):
        return self._apply(sequence.MUTATIONS[op](self._tether_target, *args, **kwargs))

    def _apply(self, mutation: sequence.Mutation):
        if mutation.keys:
            self._prune(self._tether_target)
            for item in mutation.inserted:
                if is_structured(item):
                    self._wrap_child(item)
            self._trigger(mutation.keys)
        return mutation.result

    # --- Read operations (track) ---

    def __getitem__(self, index):
        target = self._tether_target
        if isinstance(index, slice):
            self._track(LENGTH)
            for position in range(*index.indices(len(target))):
                self._track(position)
            return [self._wrap_child(value) for value in target[index]]
        index = operator.index(index)
        position = index
        if position < 0:
            self._track(LENGTH)
            position += len(target)
        if position >= 0:
            self._track(position)
        return self._wrap_child(target[index])

    def __len__(self) -> int:
        self._track(LENGTH)
        return len(self._tether_target)

    def __bool__(self) -> bool:
        self._track(LENGTH)
        return bool(self._tether_target)

    def __iter__(self) -> Iterator[T]:
        self._track(ITERATE)
        return map(self._wrap_child, self._tether_target)

    def __reversed__(self) -> Iterator[T]:
        self._track(ITERATE)
        return map(self._wrap_child, reversed(self._tether_target))

    def __contains__(self, value: object) -> bool:
        self._track(ITERATE)
        return to_raw(value) in self._tether_target

    def index(self, value, *args) -> int:
        self._track(ITERATE)
        return self._tether_target.index(to_raw(value), *args)

    def count(self, value) -> int:
        self._track(ITERATE)
        return self._tether_target.count(to_raw(value))

    def copy(self) -> list[T]:
        """A shallow copy of the raw list."""
        self._track(ITERATE)
        return self._tether_target.copy()

    def __add__(self, other) -> list:
        self._track(ITERATE)
        return self._tether_target + list(to_raw(other))

    # --- Write operations (notify) ---

    def append(self, item: T) -> None:
        return self._mutate("append", to_raw(item))

    def extend(self, items) -> None:
        return self._mutate("extend", _raw_items(items))

    def __iadd__(self, items):
        self._mutate("__iadd__", _raw_items(items))
        return self

    def __imul__(self, times: int):
        self._mutate("__imul__", times)
        return self

    def insert(self, index: int, item: T) -> None:
        return self._mutate("insert", index, to_raw(item))

    def pop(self, index: int = -1) -> T:
        return self._mutate("pop", index)

    def remove(self, value: T) -> None:
        return self._mutate("remove", to_raw(value))

    def clear(self) -> None:
        return self._mutate("clear")

    def reverse(self) -> None:
        return self._mutate("reverse")

    def sort(self, *, key=None, reverse: bool = False) -> None:
        return self._mutate("sort", key=key, reverse=reverse)

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            self._mutate("__setitem__", index, _raw_items(value))
            return
        raw = to_raw(value)
        if _same(self._tether_target[index], raw):
            return
        self._mutate("__setitem__", index, raw)

    def __delitem__(self, index) -> None:
        self._mutate("__delitem__", index)

    def splice(self, start: int, delete_count: int | None = None, *items) -> list[T]:
        """Remove delete_count items at start and insert items there; returns the removed items."""
        return self._mutate("splice", start, delete_count, *_raw_items(items))

    def fill(self, value, start: int = 0, stop: int | None = None) -> None:
        """Set every position in [start, stop) to value."""
        return self._mutate("fill", to_raw(value), start, stop)

    def copy_within(self, dest: int, start: int = 0, stop: int | None = None) -> None:
        """Copy the items in [start, stop) over the items starting at dest."""
        return self._mutate("copy_within", dest, start, stop)

    def __getattr__(self, name: str):
        # Methods only a list subclass defines
        if name.startswith("__"):
            raise AttributeError(name)
        attr = getattr(self._tether_target, name)
        if not callable(attr):
            return attr

        @functools.wraps(attr)
        def instrumented(*args, **kwargs):
            self._track(ITERATE)
            return self._apply(sequence.fallback(self._tether_target, attr, *args, **kwargs))

        return instrumented

    def __repr__(self) -> str:
        return f"ReactiveList({self._tether_target!r})"


def _raw_items(items) -> list:
    if isinstance(items, ReactiveView):
        return list(items._tether_target)
    return [to_raw(item) for item in items]


class ReactiveObject(ReactiveView, Generic[T]):
    """An attribute view over a dataclass instance.

    View internals live under the _tether_ prefix, so fields named _id or
    _target read and write through to the instance. Field names starting with
    _tether_, or equal to a view helper such as _track, are reserved.
    """

    __slots__ = ()

    def _fields(self) -> dict:
        target = self._tether_target
        fields = {field.name: getattr(target, field.name, None) for field in dataclasses.fields(target)}
        fields.update(getattr(target, "__dict__", {}))
        return fields

    def _contents(self):
        return self._fields().values()

    def _is_data(self, name: str) -> bool:
        target = self._tether_target
        if name in getattr(target, "__dict__", {}):
            return True
        return any(field.name == name for field in dataclasses.fields(target))

    def __getattr__(self, name: str):
        if name.startswith("__"):
            raise AttributeError(name)
        target = self._tether_target
        if self._is_data(name):
            self._track(name)
            return self._wrap_child(getattr(target, name))
        attr = getattr(target, name)
        if callable(attr):
            return self._instrument(attr, self._fields, self._changed_keys)
        return attr

    def __setattr__(self, name: str, value) -> None:
        raw = to_raw(value)
        target = self._tether_target
        missing = object()
        old = getattr(target, name, missing)
        if old is not missing and _same(old, raw):
            return
        setattr(target, name, raw)
        if is_structured(raw):
            self._wrap_child(raw)
        if old is not missing and id(old) in self._tether_held:
            self._prune(self._contents())
        self._trigger((name, ITERATE))

    def __delattr__(self, name: str) -> None:
        delattr(self._tether_target, name)
        self._prune(self._contents())
        self._trigger((name, ITERATE))

    def _changed_keys(self, before: dict) -> list:
        after = self._fields()
        keys: list = [
            name for name in before.keys() | after.keys()
            if name not in before or name not in after or before[name] is not after[name]
        ]
        if keys:
            keys.append(ITERATE)
        return keys

    def __repr__(self) -> str:
        return f"ReactiveObject({self._tether_target!r})"
