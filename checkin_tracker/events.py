"""Synchronous publish/subscribe bus used by the state facade."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Event(Enum):
    STATE_CHANGED = "state:changed"
    SITE_ADDED = "site:added"
    SITE_UPDATED = "site:updated"
    SITE_DELETED = "site:deleted"
    CREDENTIAL_CHECKED = "credential:checked"
    FILTER_CHANGED = "filter:changed"
    THEME_CHANGED = "theme:changed"
    VIEW_CHANGED = "view:changed"
    SEARCH_PERFORMED = "search:performed"
    EXPORT_COMPLETED = "export:completed"
    IMPORT_COMPLETED = "import:completed"


class EventBus:
    """Observer lists per event, called in registration order.

    A listener that raises is logged and skipped; the remaining listeners
    still run. Re-entrant mutations from inside a listener are not guarded.
    """

    def __init__(self) -> None:
        self._listeners: dict[Event, list[Listener]] = {}

    def subscribe(self, event: Event, callback: Listener) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._listeners.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(event, callback)

        return unsubscribe

    def unsubscribe(self, event: Event, callback: Listener) -> None:
        callbacks = self._listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: Event, data: Any = None) -> None:
        # copy: a listener may unsubscribe itself during delivery
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(data)
            except Exception:
                logger.exception("Error in event listener for %s", event.value)

    def listener_count(self, event: Event) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()
