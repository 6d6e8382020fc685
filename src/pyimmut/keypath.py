"""Key-path parsing, lenient reads and copy-on-write writes.

A key-path addresses one location in a state tree built from ``dict`` and
``list`` containers. It can be written as:

* ``None`` / ``""`` / ``()`` - the root,
* a delimited string: ``"todos[1].title"`` or ``'meta["a.b"]'``,
* an explicit chain: ``("todos", 1, "title")``,
* a single :class:`Token` minted by a store for private slots.

Every form is normalized to a tuple of keys by :func:`parse`. :func:`resolve`,
:func:`assign` and :func:`remove` then operate on that canonical chain and
never mutate the tree they are given.
"""

from __future__ import annotations

import copy
import itertools
import re
from collections.abc import Sequence
from typing import Any, TypeAlias

from pyimmut.exceptions import KeyPathError

_MINT = object()
_token_ids = itertools.count(1)


class Token:
    """Opaque, collision-free state key.

    Tokens are hashable and compare by identity only, so two tokens with the
    same label are still different keys. They cannot be constructed directly;
    use :meth:`pyimmut.Store.token`.
    """

    __slots__ = ("_id", "_label")

    def __init__(self, label: str = "", *, _mint: object = None, _id: int = 0) -> None:
        if _mint is not _MINT:
            raise TypeError("Token instances are minted by Store.token()")
        self._id = _id
        self._label = label

    @property
    def id(self) -> int:
        return self._id

    @property
    def label(self) -> str:
        return self._label

    def __repr__(self) -> str:
        return f"Token({self._label!r}, id={self._id})"

    # Snapshots holding tokens as keys must keep them identical when copied.
    def __copy__(self) -> Token:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> Token:
        return self


def mint_token(label: str = "") -> Token:
    """Mint a new :class:`Token` with a process-wide unique id."""
    return Token(label, _mint=_MINT, _id=next(_token_ids))


Key: TypeAlias = str | int | Token
KeyChain: TypeAlias = tuple[Key, ...]
PathSpec: TypeAlias = str | int | Token | Sequence[Key] | None

_MISSING: Any = object()

_FIELD_RE = re.compile(r"[^.\[\]]+")
_BRACKET_RE = re.compile(r"""\[(?:(?P<index>\d+)|"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')\]""")
_PLAIN_FIELD_RE = re.compile(r"[^.\[\]\"']+")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_string(spec: str) -> KeyChain:
    chain: list[Key] = []
    pos = 0
    expect_segment = True
    while pos < len(spec):
        char = spec[pos]
        if char == "[":
            match = _BRACKET_RE.match(spec, pos)
            if match is None:
                raise KeyPathError(f"Malformed bracket segment at offset {pos} in {spec!r}", spec=spec)
            if match.group("index") is not None:
                chain.append(int(match.group("index")))
            else:
                quoted = match.group("dq")
                chain.append(quoted if quoted is not None else match.group("sq"))
            pos = match.end()
            expect_segment = False
        elif char == ".":
            if expect_segment:
                raise KeyPathError(f"Empty segment at offset {pos} in {spec!r}", spec=spec)
            pos += 1
            expect_segment = True
        else:
            match = _FIELD_RE.match(spec, pos)
            if match is None or not expect_segment:
                raise KeyPathError(f"Unexpected character {char!r} at offset {pos} in {spec!r}", spec=spec)
            chain.append(match.group())
            pos = match.end()
            expect_segment = False
    if expect_segment:
        raise KeyPathError(f"Trailing separator in {spec!r}", spec=spec)
    return tuple(chain)


def _check_key(key: Any, spec: Any) -> Key:
    if isinstance(key, Token | str):
        return key
    if isinstance(key, int) and not isinstance(key, bool):
        if key < 0:
            raise KeyPathError(f"Negative index {key} in {spec!r}", spec=spec)
        return key
    raise KeyPathError(f"Unsupported key {key!r} ({type(key).__name__}) in {spec!r}", spec=spec)


def parse(spec: PathSpec) -> KeyChain:
    """Normalize *spec* into a canonical key chain.

    Strings inside an explicit chain are taken literally and never split.

    Raises
    ------
    KeyPathError
        If *spec* is malformed or of an unsupported type.
    """
    if spec is None or spec == "":
        return ()
    if isinstance(spec, str):
        return _parse_string(spec)
    if isinstance(spec, Token):
        return (spec,)
    if isinstance(spec, int) and not isinstance(spec, bool):
        return (_check_key(spec, spec),)
    if isinstance(spec, tuple | list):
        return tuple(_check_key(key, spec) for key in spec)
    raise KeyPathError(f"Unsupported key-path {spec!r} ({type(spec).__name__})", spec=spec)


def format_chain(chain: Sequence[Key]) -> str:
    """Render *chain* in the delimited string form accepted by :func:`parse`.

    Tokens have no string form; they are rendered as ``<label#id>`` and the
    result is for display only.
    """
    parts: list[str] = []
    for key in chain:
        if isinstance(key, Token):
            parts.append(f"[<{key.label}#{key.id}>]")
        elif isinstance(key, int):
            parts.append(f"[{key}]")
        elif _PLAIN_FIELD_RE.fullmatch(key):
            parts.append(f".{key}" if parts else key)
        elif '"' in key:
            parts.append(f"['{key}']")
        else:
            parts.append(f'["{key}"]')
    return "".join(parts)


# ---------------------------------------------------------------------------
# Reading and writing
# ---------------------------------------------------------------------------


def _as_index(key: Key) -> int | None:
    """Return *key* as a list index, accepting digit strings."""
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key >= 0 else None
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def get_child(node: Any, key: Key) -> Any:
    """Return ``node[key]`` or the ``_MISSING`` sentinel."""
    if isinstance(node, dict):
        return node.get(key, _MISSING)
    if isinstance(node, list):
        index = _as_index(key)
        if index is None or index >= len(node):
            return _MISSING
        return node[index]
    return _MISSING


def resolve(tree: Any, chain: Sequence[Key], default: Any = None) -> Any:
    """Read the value at *chain*, or *default* when any segment is missing."""
    node = tree
    for key in chain:
        node = get_child(node, key)
        if node is _MISSING:
            return default
    return node


def set_child(container: dict[Any, Any] | list[Any], key: Key, value: Any) -> None:
    """Set ``container[key] = value`` in place, padding lists with ``None``."""
    if isinstance(container, list):
        index = _as_index(key)
        if index is None:
            raise KeyPathError(f"Cannot address a list with key {key!r}", spec=key)
        if index >= len(container):
            container.extend([None] * (index - len(container) + 1))
        container[index] = value
    else:
        container[key] = value


def _clone_for(node: Any, key: Key) -> dict[Any, Any] | list[Any]:
    if isinstance(node, dict | list):
        return copy.copy(node)
    # Missing or leaf intermediate: create the container the key implies.
    if isinstance(key, int) and not isinstance(key, bool):
        return []
    return {}


def assign(tree: Any, chain: Sequence[Key], value: Any) -> Any:
    """Return a copy of *tree* with *value* stored at *chain*.

    Every container on the chain is shallow-copied; all other subtrees are
    shared with *tree*. Missing intermediates are created as a ``list`` for
    integer keys and a ``dict`` otherwise.
    """
    if not chain:
        return value
    key = chain[0]
    clone = _clone_for(tree, key)
    child = get_child(clone, key)
    set_child(clone, key, assign(None if child is _MISSING else child, chain[1:], value))
    return clone


def copy_path(tree: Any, chain: Sequence[Key]) -> Any:
    """Shallow-copy the existing containers leading to *chain* without writing anything.

    The node at *chain* itself is shared, and copying stops at the first
    missing or leaf segment.
    """
    if not isinstance(tree, dict | list):
        return tree
    clone = copy.copy(tree)
    if len(chain) > 1:
        child = get_child(clone, chain[0])
        if isinstance(child, dict | list):
            set_child(clone, chain[0], copy_path(child, chain[1:]))
    return clone


def remove(tree: Any, chain: Sequence[Key]) -> Any:
    """Return a copy of *tree* without the entry at *chain*.

    Containers on the chain are shallow-copied even when the entry does not
    exist, so a container root always yields a new root. A leaf *tree* has
    nothing to remove from and is returned unchanged.
    """
    if not chain:
        raise KeyPathError("Cannot remove the root", spec=chain)
    if not isinstance(tree, dict | list):
        return tree
    key = chain[0]
    clone = copy.copy(tree)
    if len(chain) == 1:
        if isinstance(clone, dict):
            clone.pop(key, None)
        else:
            index = _as_index(key)
            if index is not None and index < len(clone):
                del clone[index]
        return clone
    child = get_child(clone, key)
    if child is not _MISSING:
        set_child(clone, key, remove(child, chain[1:]))
    return clone
