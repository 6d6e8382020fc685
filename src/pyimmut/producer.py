"""Copy-on-write snapshot producer.

:func:`produce` turns ``(prev, chain, update)`` into the next snapshot:

* a non-callable *update* is the literal new value at *chain*;
* a callable *update* receives a draft of the node at *chain* and tells the
  producer what to do with it by its return value.

Update functions may return:

``Replace(value)``
    *value* replaces the node; edits made on the draft are discarded.
``MUTATED_IN_PLACE`` or ``None``
    The edits made on the draft are the change.
anything else
    Shorthand for ``Replace(value)``. Use ``Replace(None)`` to store ``None``.

Existing containers along *chain* are always new objects in the result, so every
produce yields a new root even when nothing changed.
"""

from __future__ import annotations

import copy
import enum
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from pyimmut._draft import ChangeRecorder, create_draft, finalize_value
from pyimmut.keypath import KeyChain, assign, copy_path, resolve


class UpdateSignal(enum.Enum):
    MUTATED_IN_PLACE = "mutated_in_place"


MUTATED_IN_PLACE = UpdateSignal.MUTATED_IN_PLACE
"""Explicit "my edits on the draft are the change" result of an update function."""


@dataclass(frozen=True, slots=True)
class Replace:
    """Explicit "replace the node with *value*" result of an update function."""

    value: Any


Update: TypeAlias = Callable[[Any], Any] | Replace | Any


@dataclass(frozen=True, slots=True)
class Production:
    """Outcome of a single :func:`produce` call."""

    snapshot: Any
    chain: KeyChain
    touched: tuple[KeyChain, ...]
    replaced: bool


def _commit(prev: Any, chain: KeyChain, node: Any) -> Any:
    if chain:
        return assign(prev, chain, node)
    if node is prev and isinstance(node, dict | list):
        return copy.copy(node)
    return node


def produce(prev: Any, chain: KeyChain, update: Update) -> Production:
    """Compute the snapshot that follows *prev* after applying *update* at *chain*."""
    if isinstance(update, Replace) or not callable(update):
        value = update.value if isinstance(update, Replace) else update
        return Production(snapshot=_commit(prev, chain, value), chain=chain, touched=(chain,), replaced=True)

    recorder = ChangeRecorder()
    draft = create_draft(resolve(prev, chain), recorder, chain)
    try:
        result = update(draft)
        if result is None or result is MUTATED_IN_PLACE:
            node = finalize_value(draft)
            touched = recorder.touched
            replaced = False
        else:
            value = result.value if isinstance(result, Replace) else result
            node = finalize_value(value) if recorder.drafts_created else value
            touched = (chain,)
            replaced = True
    finally:
        recorder.revoke()

    if not replaced and not touched:
        # Nothing was written: a missing node or leaf must not be stored back.
        snapshot = copy_path(prev, chain) if chain else _commit(prev, chain, prev)
        return Production(snapshot=snapshot, chain=chain, touched=(), replaced=False)
    return Production(snapshot=_commit(prev, chain, node), chain=chain, touched=touched, replaced=replaced)
