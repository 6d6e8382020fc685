"""Store configuration for pyimmut."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyimmut.exceptions import ImmutConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Store behaviour switches.

    Parameters
    ----------
    strict_namespaces : bool
        Raise :class:`~pyimmut.exceptions.NamespaceError` subclasses instead
        of reporting a diagnostic when ``combine``/``seclude`` reject an entry.
    propagate_listener_errors : bool
        Re-raise the first exception raised by a subscriber once the
        notification round (and any queued transitions) have finished.
        When off, listener errors are logged and swallowed.
    max_queued_transitions : int
        Upper bound on transitions drained after a single outer call.
        Protects against listeners that dispatch on every notification.
    trace_transitions : bool
        Log every committed transition at DEBUG level.
    """

    strict_namespaces: bool = False
    propagate_listener_errors: bool = False
    max_queued_transitions: int = 1000
    trace_transitions: bool = False

    def __post_init__(self) -> None:
        if self.max_queued_transitions < 1:
            raise ImmutConfigError(f"max_queued_transitions must be >= 1, got {self.max_queued_transitions}")

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from environment variables.

        Reads ``PYIMMUT_STRICT_NAMESPACES``, ``PYIMMUT_PROPAGATE_LISTENER_ERRORS``,
        ``PYIMMUT_MAX_QUEUED_TRANSITIONS`` and ``PYIMMUT_TRACE``. Explicit
        keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        StoreConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_BOOL_MAP = {
            "PYIMMUT_STRICT_NAMESPACES": "strict_namespaces",
            "PYIMMUT_PROPAGATE_LISTENER_ERRORS": "propagate_listener_errors",
            "PYIMMUT_TRACE": "trace_transitions",
        }
        for env_key, field_name in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), False)

        limit_env = env.get("PYIMMUT_MAX_QUEUED_TRANSITIONS")
        if limit_env is not None and "max_queued_transitions" not in overrides:
            try:
                config_kwargs["max_queued_transitions"] = int(limit_env)
            except ValueError as exc:
                raise ImmutConfigError(f"PYIMMUT_MAX_QUEUED_TRANSITIONS must be an integer, got {limit_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
