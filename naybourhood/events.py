"""
In-process change feed for persisted tables.

Stores publish a ChangeEvent after every write; subscribers such as
SubscriptionState use it to refresh when a row they depend on changes.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    table: str
    event_type: str  # INSERT, UPDATE, DELETE
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)

    @property
    def row(self) -> dict:
        return self.new or self.old


ChangeHandler = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Thread-safe table-keyed pub/sub.

    Handlers run in registration order on the publishing thread. A handler
    that raises is logged and the remaining handlers still run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: dict[str, list[ChangeHandler]] = defaultdict(list)

    def subscribe(self, table: str, handler: ChangeHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers[table].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._handlers[table].remove(handler)
                except ValueError:
                    pass

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.table, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in change handler {handler!r} for {event.table}")

    def handler_count(self, table: str) -> int:
        with self._lock:
            return len(self._handlers.get(table, []))
