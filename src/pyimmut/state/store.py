"""Immutable-snapshot state store.

The store owns the current snapshot and is the only component that commits a
new one. Every transition (``dispatch``, ``combine``, ``seclude``) runs to
completion: compute the next snapshot, commit it, notify subscribers with
``(next, prev)``. Transitions issued while another one is in progress, from
an update function or a subscriber, are queued and run in issue order once
the current notification round has finished.

The store is not thread-safe; callers on multiple threads must serialize
access themselves.
"""

from __future__ import annotations

import functools
import logging
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from pyimmut.config import StoreConfig
from pyimmut.exceptions import TransitionLoopError
from pyimmut.keypath import KeyChain, PathSpec, Token, format_chain, mint_token, parse, resolve
from pyimmut.producer import produce
from pyimmut.state.events import Diagnostic, StoreMode
from pyimmut.state.namespaces import BoundActions, NamespaceName, NamespaceRegistry, coerce_namespaces
from pyimmut.state.subscribers import Listener, SubscriberBus, Unsubscribe

_logger = logging.getLogger(__name__)

_MISSING: Any = object()


class Store:
    """In-memory store of immutable state snapshots.

    Usage::

        store = Store({"todos": []})
        store.subscribe(lambda next_state, prev_state: render(next_state))
        store.dispatch("todos", lambda todos: todos.append({"title": "Write docs"}))
    """

    def __init__(
        self,
        initial_state: Any = None,
        *,
        config: StoreConfig | None = None,
        on_diagnostic: Callable[[Diagnostic], None] | None = None,
    ) -> None:
        self._config = config or StoreConfig()
        self._mode = StoreMode.UNINITIALIZED
        self._state: Any = None
        self._revision = 0
        self._subscribers = SubscriberBus()
        self._namespaces = NamespaceRegistry(
            get_state=self.get_state,
            dispatch=self.dispatch,
            commit=self._commit,
            strict=self._config.strict_namespaces,
            on_diagnostic=on_diagnostic,
        )
        self._pending: deque[Callable[[], None]] = deque()
        self._busy = False
        self._listener_errors: list[Exception] = []
        self._set_state({} if initial_state is None else initial_state)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def mode(self) -> StoreMode:
        return self._mode

    @property
    def revision(self) -> int:
        """Number of commits since construction."""
        return self._revision

    @property
    def state(self) -> Any:
        return self._state

    @property
    def actions(self) -> Mapping[NamespaceName, BoundActions]:
        """Read-only action table keyed by namespace name."""
        return self._namespaces.table

    def __repr__(self) -> str:
        return f"Store(mode={self._mode.value}, revision={self._revision}, subscribers={len(self._subscribers)})"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> Any:
        """Return the current snapshot by reference. Callers must not mutate it."""
        return self._state

    def select(self, path: PathSpec, default: Any = None) -> Any:
        """Read the value at *path* in the current snapshot."""
        return resolve(self._state, parse(path), default)

    def token(self, label: str = "") -> Token:
        """Mint an opaque key for a private state slot."""
        return mint_token(label)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register ``listener(next, prev)``; returns an idempotent unsubscribe."""
        return self._subscribers.subscribe(listener)

    def dispatch(self, path_or_update: Any, update: Any = _MISSING) -> None:
        """Apply *update* at a key-path, or at the root when called with one argument.

        See :func:`pyimmut.producer.produce` for the accepted update forms.

        Raises
        ------
        KeyPathError
            If the key-path is malformed, or if a field key would be written
            onto an existing list. Nothing is committed in either case.
        Exception
            Whatever an update function raises; the store keeps its previous
            snapshot.
        """
        if update is _MISSING:
            chain: KeyChain = ()
            update = path_or_update
        else:
            chain = parse(path_or_update)
        self._run(functools.partial(self._dispatch_now, chain, update))

    def combine(self, namespaces: Any) -> None:
        """Register namespaces given as ``{name: definition}`` or an iterable of ``Namespace``."""
        definitions = coerce_namespaces(namespaces)
        self._run(functools.partial(self._namespaces.combine, definitions))

    def seclude(self, name: NamespaceName) -> None:
        """Remove a namespace's state and actions."""
        self._run(functools.partial(self._namespaces.seclude, name))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(self, state: Any) -> None:
        self._state = state
        self._mode = StoreMode.ACTIVE

    def _dispatch_now(self, chain: KeyChain, update: Any) -> None:
        production = produce(self._state, chain, update)
        self._commit(production.snapshot, production.touched)

    def _commit(self, next_state: Any, touched: tuple[KeyChain, ...]) -> None:
        prev_state = self._state
        self._set_state(next_state)
        self._revision += 1
        if self._config.trace_transitions:
            _logger.debug(
                "Committed revision=%d touched=%s subscribers=%d",
                self._revision,
                [format_chain(chain) or "<root>" for chain in touched],
                len(self._subscribers),
            )
        self._listener_errors.extend(self._subscribers.notify(next_state, prev_state))

    def _run(self, transition: Callable[[], None]) -> None:
        if self._busy:
            self._pending.append(transition)
            _logger.debug("Queued reentrant transition pending=%d", len(self._pending))
            return

        self._busy = True
        try:
            transition()
            drained = 0
            while self._pending:
                drained += 1
                if drained > self._config.max_queued_transitions:
                    raise TransitionLoopError(
                        f"More than {self._config.max_queued_transitions} reentrant transitions queued",
                        limit=self._config.max_queued_transitions,
                    )
                self._pending.popleft()()
        finally:
            self._busy = False
            self._pending.clear()
            errors, self._listener_errors = self._listener_errors, []

        if errors and self._config.propagate_listener_errors:
            raise errors[0]


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

_default_store: Store | None = None


def create_store(
    initial_state: Any = None,
    namespaces: Any = None,
    *,
    config: StoreConfig | None = None,
    on_diagnostic: Callable[[Diagnostic], None] | None = None,
) -> Store:
    """Create a store and optionally register *namespaces* on it."""
    store = Store(initial_state, config=config, on_diagnostic=on_diagnostic)
    if namespaces:
        store.combine(namespaces)
    return store


def default_store() -> Store:
    """Return the conventional process-wide store, creating it on first use."""
    global _default_store
    if _default_store is None:
        _default_store = Store(config=StoreConfig.from_env())
    return _default_store


def reset_default_store() -> None:
    """Drop the process-wide store; the next :func:`default_store` call builds a new one."""
    global _default_store
    _default_store = None
