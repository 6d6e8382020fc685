"""Ordered listener registry notified on every commit."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_logger = logging.getLogger(__name__)

Listener = Callable[[Any, Any], None]
Unsubscribe = Callable[[], None]


@dataclass(slots=True, eq=False)
class _Subscription:
    """One registration of a listener.

    Entries are removed by identity, so registering the same callable twice
    yields two entries that are unsubscribed independently.
    """

    listener: Listener
    active: bool = True


def _describe(listener: Listener) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)


class SubscriberBus:
    """Ordered list of ``(next, prev)`` listeners."""

    def __init__(self) -> None:
        self._entries: list[_Subscription] = []

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Append *listener* and return a callable that removes this entry.

        The returned callable is idempotent.
        """
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        entry = _Subscription(listener)
        self._entries.append(entry)

        def unsubscribe() -> None:
            if not entry.active:
                return
            entry.active = False
            for index, candidate in enumerate(self._entries):
                if candidate is entry:
                    del self._entries[index]
                    break

        return unsubscribe

    def notify(self, next_state: Any, prev_state: Any) -> list[Exception]:
        """Run one notification round in registration order.

        Listeners added during the round are not called until the next
        round; listeners removed during the round are skipped if they have
        not run yet. Exceptions raised by listeners are logged and returned
        so the caller can decide whether to surface them.
        """
        errors: list[Exception] = []
        for entry in list(self._entries):
            if not entry.active:
                continue
            try:
                entry.listener(next_state, prev_state)
            except Exception as exc:  # noqa: BLE001
                _logger.warning("Subscriber %s failed", _describe(entry.listener), exc_info=True)
                errors.append(exc)
        return errors
