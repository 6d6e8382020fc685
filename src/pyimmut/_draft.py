"""Copy-on-write drafts.

A draft wraps one ``dict`` or ``list`` node of a snapshot and behaves like a
mutable version of it. Nothing is copied until the first write; nested
containers are handed out as child drafts on read. Finalizing a draft yields
the next immutable node, reusing every untouched subtree of the original.

Every write is reported to a shared :class:`ChangeRecorder`, which also
revokes all drafts of one update once it has been finalized.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, MutableMapping, MutableSequence
from typing import Any

from pyimmut.exceptions import DraftRevokedError
from pyimmut.keypath import Key, KeyChain

_UNSET: Any = object()


class ChangeRecorder:
    """Tracks the sub-paths touched through the drafts of a single update."""

    def __init__(self) -> None:
        self._touched: dict[KeyChain, None] = {}
        self._assigned: set[int] = set()
        self._revoked = False
        self.drafts_created = 0

    @property
    def touched(self) -> tuple[KeyChain, ...]:
        return tuple(self._touched)

    def record(self, chain: KeyChain) -> None:
        self._touched[chain] = None

    def note_assigned(self, value: Any) -> None:
        if isinstance(value, dict | list):
            self._assigned.add(id(value))

    def was_assigned(self, value: Any) -> bool:
        return id(value) in self._assigned

    def check(self) -> None:
        if self._revoked:
            raise DraftRevokedError("Draft used after its update function returned")

    def revoke(self) -> None:
        self._revoked = True


def create_draft(value: Any, recorder: ChangeRecorder, chain: KeyChain = ()) -> Any:
    """Wrap *value* in a draft, or return it unchanged if it is a leaf."""
    if isinstance(value, dict):
        recorder.drafts_created += 1
        return DraftDict(value, recorder, chain)
    if isinstance(value, list):
        recorder.drafts_created += 1
        return DraftList(value, recorder, chain)
    return value


def finalize_value(value: Any, memo: dict[int, Any] | None = None) -> Any:
    """Replace any draft reachable from *value* by its finalized node.

    Plain containers are only copied when they actually hold a draft.
    """
    if isinstance(value, _Draft):
        return value.finalize()
    if not isinstance(value, dict | list):
        return value
    if memo is None:
        memo = {}
    if id(value) in memo:
        return memo[id(value)]
    memo[id(value)] = value
    result: Any = None
    items = list(value.items()) if isinstance(value, dict) else list(enumerate(value))
    for key, item in items:
        final = finalize_value(item, memo)
        if final is not item:
            if result is None:
                result = copy.copy(value)
            result[key] = final
    out = value if result is None else result
    memo[id(value)] = out
    return out


class _Draft:
    __slots__ = ("_base", "_copy", "_children", "_recorder", "_chain", "_final")

    def __init__(self, base: Any, recorder: ChangeRecorder, chain: KeyChain) -> None:
        self._base = base
        self._copy: Any = None
        self._children: dict[int, _Draft] = {}
        self._recorder = recorder
        self._chain = chain
        self._final: Any = _UNSET

    @property
    def _current(self) -> Any:
        self._recorder.check()
        return self._base if self._copy is None else self._copy

    def _wrap(self, key: Key, value: Any) -> Any:
        if isinstance(value, _Draft) or not isinstance(value, dict | list):
            return value
        # Keyed by identity so list inserts and deletes do not misroute children.
        child = self._children.get(id(value))
        if child is None or child._base is not value:
            child = create_draft(value, self._recorder, self._chain + (key,))
            self._children[id(value)] = child
        return child

    def _writable(self) -> Any:
        self._recorder.check()
        if self._copy is None:
            self._copy = copy.copy(self._base)
        return self._copy

    def _written(self, key: Key | None, value: Any = None) -> None:
        self._recorder.record(self._chain if key is None else self._chain + (key,))
        self._recorder.note_assigned(value)

    def _finalize_item(self, value: Any) -> Any:
        if isinstance(value, _Draft):
            return value.finalize()
        if isinstance(value, dict | list):
            child = self._children.get(id(value))
            if child is not None and child._base is value:
                return child.finalize()
            if self._recorder.was_assigned(value):
                return finalize_value(value)
        return value

    def finalize(self) -> Any:
        """Return the immutable node this draft stands for."""
        if self._final is not _UNSET:
            return self._final
        source = self._current
        result = self._copy
        items = list(source.items()) if isinstance(source, dict) else list(enumerate(source))
        for key, value in items:
            final = self._finalize_item(value)
            if final is not value:
                if result is None:
                    result = copy.copy(self._base)
                result[key] = final
        self._final = self._base if result is None else result
        return self._final


class DraftDict(_Draft, MutableMapping[Any, Any]):
    """Draft of a ``dict`` node."""

    __slots__ = ()

    def __getitem__(self, key: Any) -> Any:
        return self._wrap(key, self._current[key])

    def __setitem__(self, key: Any, value: Any) -> None:
        self._writable()[key] = value
        self._written(key, value)

    def __delitem__(self, key: Any) -> None:
        if key not in self._current:
            raise KeyError(key)
        del self._writable()[key]
        self._written(key)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._current)

    def __len__(self) -> int:
        return len(self._current)

    def __contains__(self, key: object) -> bool:
        return key in self._current

    def __repr__(self) -> str:
        return f"DraftDict({self._current!r})"


class DraftList(_Draft, MutableSequence[Any]):
    """Draft of a ``list`` node."""

    __slots__ = ()

    def _position(self, index: int, size: int) -> int:
        return index if index >= 0 else index + size

    def __getitem__(self, index: Any) -> Any:
        current = self._current
        if isinstance(index, slice):
            return [self._wrap(i, current[i]) for i in range(*index.indices(len(current)))]
        value = current[index]
        return self._wrap(self._position(index, len(current)), value)

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            items = list(value)
            self._writable()[index] = items
            self._written(None)
            for item in items:
                self._recorder.note_assigned(item)
            return
        position = self._position(index, len(self._current))
        self._current[index]  # bounds check before copying
        self._writable()[index] = value
        self._written(position, value)

    def __delitem__(self, index: Any) -> None:
        if isinstance(index, slice):
            del self._writable()[index]
            self._written(None)
            return
        position = self._position(index, len(self._current))
        self._current[index]
        del self._writable()[index]
        self._written(position)

    def __len__(self) -> int:
        return len(self._current)

    def insert(self, index: int, value: Any) -> None:
        size = len(self._current)
        position = min(max(self._position(index, size), 0), size)
        self._writable().insert(index, value)
        self._written(position, value)

    def sort(self, *, key: Any = None, reverse: bool = False) -> None:
        self._writable().sort(key=key, reverse=reverse)
        self._written(None)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DraftList | list):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"DraftList({self._current!r})"
