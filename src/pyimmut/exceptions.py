"""Custom exception hierarchy for pyimmut."""

from __future__ import annotations

from typing import Any


class ImmutError(Exception):
    """Base exception for all pyimmut errors."""


class ImmutConfigError(ImmutError):
    """Invalid or missing configuration."""


class KeyPathError(ImmutError, ValueError):
    """Malformed key-path specification.

    Only the *shape* of a path can be wrong. Reading or writing through
    segments that do not exist in the tree is never an error.
    """

    def __init__(self, message: str, *, spec: Any = None) -> None:
        self.spec = spec
        super().__init__(message)


class NamespaceDefinitionError(ImmutError, ValueError):
    """A namespace definition could not be validated."""

    def __init__(self, message: str, *, namespace: Any = None) -> None:
        self.namespace = namespace
        super().__init__(message)


class DraftRevokedError(ImmutError, RuntimeError):
    """A draft was used after its update function returned."""


class TransitionLoopError(ImmutError, RuntimeError):
    """Reentrant transitions kept queueing past the configured bound.

    Usually a listener that dispatches unconditionally on every
    notification, which would otherwise never settle.
    """

    def __init__(self, message: str, *, limit: int) -> None:
        self.limit = limit
        super().__init__(message)


class NamespaceError(ImmutError):
    """Base for namespace registration failures.

    These are only raised when ``StoreConfig.strict_namespaces`` is on;
    otherwise the store reports a :class:`pyimmut.state.events.Diagnostic`.
    """

    def __init__(self, message: str, *, namespace: Any = None) -> None:
        self.namespace = namespace
        super().__init__(message)


class InvalidRootStateError(NamespaceError):
    """``combine`` called while the root state is not a keyable container."""


class DuplicateNamespaceError(NamespaceError):
    """``combine`` called with a name that already exists in the state."""


class UnknownNamespaceError(NamespaceError):
    """``seclude`` called with a name that is not registered."""
