from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Protocol

from expense_tracker.logger import get_logger

if TYPE_CHECKING:
    from expense_tracker.alerts import AlertEvent

logger = get_logger(__name__)

KIND_EXPENSE = "expense"
KIND_BUDGET = "budget"
KIND_SYSTEM = "system"


class NotificationSink(Protocol):
    def show(self, title: str, message: str) -> None: ...


class LoggingSink:
    def show(self, title: str, message: str) -> None:
        logger.info("%s: %s", title, message)


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    message: str
    timestamp: datetime
    kind: str = KIND_SYSTEM


class NotificationCenter:
    """Fire-and-forget alerts plus the feed shown on the notifications screen."""

    def __init__(
        self,
        sinks: Optional[Iterable[NotificationSink]] = None,
        clock: Callable[[], datetime] = datetime.now,
        limit: int = 100,
    ):
        self.sinks = list(sinks) if sinks is not None else [LoggingSink()]
        self.clock = clock
        self.limit = limit
        self._feed: list[Notification] = []
        self._ids = itertools.count(1)

    @property
    def feed(self) -> tuple[Notification, ...]:
        return tuple(self._feed)

    def notify(self, title: str, message: str, kind: str = KIND_SYSTEM) -> Notification:
        notification = Notification(
            id=str(next(self._ids)),
            title=title,
            message=message,
            timestamp=self.clock(),
            kind=kind,
        )
        self._feed.insert(0, notification)
        del self._feed[self.limit:]
        for sink in self.sinks:
            try:
                sink.show(title, message)
            except Exception:
                logger.exception("Notification sink %r failed", sink)
        return notification

    def expense_added(self, amount: Decimal) -> Notification:
        return self.notify(
            "Expense Added",
            f"Successfully added expense of ${amount:.2f}",
            kind=KIND_EXPENSE,
        )

    def expense_deleted(self, amount: Decimal) -> Notification:
        return self.notify(
            "Expense Deleted",
            f"Successfully deleted expense of ${amount:.2f}",
            kind=KIND_EXPENSE,
        )

    def budget_updated(self, value: Decimal) -> Notification:
        return self.notify(
            "Budget Updated",
            f"Your monthly budget has been set to ${value:.2f}",
            kind=KIND_BUDGET,
        )

    def budget_alert(self, event: "AlertEvent") -> Notification:
        return self.notify(event.title, event.message, kind=KIND_BUDGET)

    def clear(self) -> None:
        self._feed.clear()
