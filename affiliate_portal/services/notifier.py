"""
In-process change notifications for the click, conversion and progression tables.

Writers publish a ChangeEvent after committing a row; subscribers register a
callback for the tables (and optionally the single user) they care about.
Callbacks run synchronously inside publish(), so they should only schedule
work (see DashboardFeed), never do I/O themselves.

Only clicks and lazily created progression rows are written here. Conversion
inserts, conversion status updates and progression UPDATEs come from the
external attribution backend and are not published by this service; a
DashboardFeed only sees them once that backend publishes into the notifier.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("clicks", "conversions", "user_progression")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    operation: str  # INSERT | UPDATE
    user_id: Optional[str] = None  # owner of the affected row
    row_id: Optional[str] = None


Listener = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ChangeNotifier.subscribe(); close() stops delivery."""

    def __init__(self, notifier: "ChangeNotifier", callback: Listener, tables: frozenset[str], user_id: Optional[str]):
        self._notifier = notifier
        self.callback = callback
        self.tables = tables
        self.user_id = user_id
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if event.table not in self.tables:
            return False
        return self.user_id is None or event.user_id == self.user_id

    def close(self) -> None:
        if self.active:
            self.active = False
            self._notifier._remove(self)


class ChangeNotifier:
    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        callback: Listener,
        tables: Iterable[str] = WATCHED_TABLES,
        user_id: Optional[str] = None,
    ) -> Subscription:
        sub = Subscription(self, callback, frozenset(tables), user_id)
        self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver to every matching subscriber. Returns how many were notified.

        A failing listener is logged and skipped; it never reaches the writer.
        """
        delivered = 0
        for sub in list(self._subscriptions):
            if not sub.active or not sub.matches(event):
                continue
            try:
                sub.callback(event)
                delivered += 1
            except Exception:
                logger.exception("Change listener failed for %s %s", event.operation, event.table)
        return delivered

    def reset(self) -> None:
        """Drop all subscriptions (tests)."""
        for sub in list(self._subscriptions):
            sub.active = False
        self._subscriptions.clear()


# Process-wide notifier shared by the API routes
notifier = ChangeNotifier()


def get_notifier() -> ChangeNotifier:
    """Dependency for FastAPI."""
    return notifier
