"""Synchronous fan-out of state snapshots to subscribed listeners."""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]
Listener = Callable[[Snapshot], None]


class StateBroadcaster:
    """Calls every listener, in subscription order, after each committed change.

    A listener that raises is logged and skipped; it never reaches the game loop.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)
