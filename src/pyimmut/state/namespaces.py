"""Namespace registration: graft and remove state-plus-actions units.

A namespace owns one top-level field of the root state and a set of action
templates. Registering it binds every template to a *scoped* dispatch that
can only write below that field, and a *scoped* getter that always reads the
field's current value.
"""

from __future__ import annotations

import copy
import functools
import itertools
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyimmut.exceptions import NamespaceDefinitionError
from pyimmut.keypath import KeyChain, PathSpec, Token, parse, remove, resolve
from pyimmut.state.events import Diagnostic, DiagnosticCode

_logger = logging.getLogger(__name__)

_MISSING: Any = object()

NamespaceName: TypeAlias = str | Token
ActionTemplate: TypeAlias = Callable[..., Any]


class Namespace(BaseModel):
    """Validated namespace definition.

    Parameters
    ----------
    name : str or Token
        Top-level field the namespace owns.
    initial_state : Any
        Value stored under *name* when the namespace is registered.
    actions : dict[str, ActionTemplate]
        Templates called as ``template(dispatch, get_state, *args, **kwargs)``
        where ``dispatch`` and ``get_state`` are scoped to *name*.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    name: str | Token
    initial_state: Any = None
    actions: dict[str, Callable[..., Any]] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, value: str | Token) -> str | Token:
        if isinstance(value, str) and not value:
            raise ValueError("namespace name must be non-empty")
        return value

    @classmethod
    def from_definition(cls, name: NamespaceName, definition: Any) -> Namespace:
        """Validate a namespace given as a record or a loose mapping.

        Loose mappings are either ``{"state": ..., "actions": {...}}`` or
        ``{"state": ..., "<action>": callable, ...}``.

        Raises
        ------
        NamespaceDefinitionError
            If *definition* cannot be turned into a :class:`Namespace`.
        """
        if isinstance(definition, Namespace):
            if definition.name is not name and definition.name != name:
                raise NamespaceDefinitionError(
                    f"Namespace registered as {name!r} declares name {definition.name!r}",
                    namespace=name,
                )
            return definition
        if not isinstance(definition, Mapping):
            raise NamespaceDefinitionError(
                f"Namespace {name!r} must be a Namespace or a mapping, got {type(definition).__name__}",
                namespace=name,
            )

        data = dict(definition)
        if "state" in data and "initial_state" in data:
            raise NamespaceDefinitionError(f"Namespace {name!r} sets both 'state' and 'initial_state'", namespace=name)
        initial_state = data.pop("state") if "state" in data else data.pop("initial_state", None)
        actions = data.pop("actions", _MISSING)
        if actions is _MISSING:
            actions = data
        elif data:
            raise NamespaceDefinitionError(
                f"Namespace {name!r} has unexpected keys next to 'actions': {sorted(map(str, data))}",
                namespace=name,
            )
        try:
            return cls(name=name, initial_state=initial_state, actions=actions)
        except ValidationError as exc:
            raise NamespaceDefinitionError(f"Invalid namespace {name!r}: {exc}", namespace=name) from exc


def coerce_namespaces(namespaces: Any) -> list[Namespace]:
    """Validate every definition up front so a bad one changes nothing."""
    if isinstance(namespaces, Namespace):
        return [namespaces]
    if isinstance(namespaces, Mapping):
        return [Namespace.from_definition(name, definition) for name, definition in namespaces.items()]
    if isinstance(namespaces, Iterable) and not isinstance(namespaces, str | bytes):
        result: list[Namespace] = []
        for item in namespaces:
            if not isinstance(item, Namespace):
                raise NamespaceDefinitionError(f"Expected Namespace, got {type(item).__name__}")
            result.append(item)
        return result
    raise NamespaceDefinitionError(f"Cannot register namespaces from {type(namespaces).__name__}")


class BoundActions(Mapping[str, Callable[..., Any]]):
    """Action callables of one registered namespace.

    Supports both ``actions["add"](...)`` and ``actions.add(...)``.
    """

    __slots__ = ("_namespace", "_actions")

    def __init__(self, namespace: NamespaceName, actions: dict[str, Callable[..., Any]]) -> None:
        self._namespace = namespace
        self._actions = actions

    @property
    def namespace(self) -> NamespaceName:
        return self._namespace

    def __getitem__(self, key: str) -> Callable[..., Any]:
        return self._actions[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __getattr__(self, name: str) -> Callable[..., Any]:
        try:
            return self._actions[name]
        except KeyError:
            raise AttributeError(f"Namespace {self._namespace!r} has no action {name!r}") from None

    def __repr__(self) -> str:
        return f"BoundActions({self._namespace!r}, {sorted(self._actions)})"


class NamespaceRegistry:
    """Action table plus the ``combine``/``seclude`` transitions.

    The registry never touches the store directly; it is given the store's
    getter, dispatcher and commit function.
    """

    def __init__(
        self,
        *,
        get_state: Callable[[], Any],
        dispatch: Callable[[Any, Any], None],
        commit: Callable[[Any, tuple[KeyChain, ...]], None],
        strict: bool = False,
        on_diagnostic: Callable[[Diagnostic], None] | None = None,
    ) -> None:
        self._get_state = get_state
        self._dispatch = dispatch
        self._commit = commit
        self._strict = strict
        self._on_diagnostic = on_diagnostic
        self._actions: dict[NamespaceName, BoundActions] = {}
        self._live: dict[NamespaceName, int] = {}
        self._generations = itertools.count(1)
        self.table: Mapping[NamespaceName, BoundActions] = MappingProxyType(self._actions)

    def _report(self, code: DiagnosticCode, namespace: NamespaceName | None, message: str) -> None:
        diagnostic = Diagnostic(code=code, namespace=namespace, message=message)
        if self._strict:
            raise diagnostic.to_exception()
        _logger.warning("%s", message)
        if self._on_diagnostic is not None:
            self._on_diagnostic(diagnostic)

    def _bind(self, namespace: Namespace) -> BoundActions:
        name = namespace.name
        dispatch = self._dispatch
        get_state = self._get_state
        generation = next(self._generations)
        self._live[name] = generation

        def scoped_dispatch(path_or_update: Any, update: Any = _MISSING) -> None:
            # Actions kept past seclude must not resurrect the namespace state.
            if self._live.get(name) != generation:
                self._report(
                    DiagnosticCode.UNKNOWN_NAMESPACE,
                    name,
                    f"Namespace {name!r} has been secluded, dropping dispatch from a stale action",
                )
                return
            if update is _MISSING:
                dispatch((name,), path_or_update)
            else:
                dispatch((name, *parse(path_or_update)), update)

        def scoped_get_state(path: PathSpec = None, default: Any = None) -> Any:
            return resolve(get_state(), (name, *parse(path)), default)

        def bind(template: ActionTemplate) -> Callable[..., Any]:
            @functools.wraps(template)
            def action(*args: Any, **kwargs: Any) -> Any:
                return template(scoped_dispatch, scoped_get_state, *args, **kwargs)

            return action

        return BoundActions(name, {key: bind(template) for key, template in namespace.actions.items()})

    def combine(self, namespaces: list[Namespace]) -> None:
        """Register *namespaces* in a single commit.

        Names already present in the root state are skipped with a
        ``DUPLICATE_NAMESPACE`` diagnostic; the first registration wins.
        """
        state = self._get_state()
        if not isinstance(state, dict):
            self._report(
                DiagnosticCode.INVALID_ROOT_STATE,
                None,
                f"combine requires a dict root state, current state is {type(state).__name__}",
            )
            return

        next_state: dict[Any, Any] | None = None
        accepted: list[Namespace] = []
        for namespace in namespaces:
            if namespace.name in (state if next_state is None else next_state):
                self._report(
                    DiagnosticCode.DUPLICATE_NAMESPACE,
                    namespace.name,
                    f"Namespace {namespace.name!r} has been registered before, will not be registered again",
                )
                continue
            if next_state is None:
                next_state = copy.copy(state)
            next_state[namespace.name] = namespace.initial_state
            accepted.append(namespace)

        if next_state is None:
            return
        for namespace in accepted:
            self._actions[namespace.name] = self._bind(namespace)
        _logger.debug("Registered namespaces %s", [namespace.name for namespace in accepted])
        self._commit(next_state, tuple((namespace.name,) for namespace in accepted))

    def seclude(self, name: NamespaceName) -> None:
        """Remove the state and actions of namespace *name*."""
        if not isinstance(name, str | Token):
            raise NamespaceDefinitionError(f"Namespace name must be str or Token, got {type(name).__name__}")
        state = self._get_state()
        in_state = isinstance(state, dict) and name in state
        if not in_state and name not in self._actions:
            self._report(DiagnosticCode.UNKNOWN_NAMESPACE, name, f"Namespace {name!r} is not registered")
            return

        self._actions.pop(name, None)
        self._live.pop(name, None)
        _logger.debug("Secluded namespace %r", name)
        self._commit(remove(state, (name,)), ((name,),))
