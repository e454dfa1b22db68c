from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from expense_tracker.budget_engine import ZERO, BudgetAggregator, BudgetState
from expense_tracker.logger import get_logger
from expense_tracker.notifications import NotificationCenter

logger = get_logger(__name__)

WARNING_THRESHOLD = Decimal("90")
EXCEEDED_THRESHOLD = Decimal("100")


class AlertLevel(str, Enum):
    WARNING = "warning"
    EXCEEDED = "exceeded"


@dataclass(frozen=True)
class AlertEvent:
    level: AlertLevel
    title: str
    message: str
    percentage: Decimal


def evaluate(percentage: Union[Decimal, float, int]) -> Optional[AlertEvent]:
    """Classify a spending percentage; below 90% there is nothing to report."""
    value = percentage if isinstance(percentage, Decimal) else Decimal(str(percentage))
    if value >= EXCEEDED_THRESHOLD:
        return AlertEvent(
            level=AlertLevel.EXCEEDED,
            title="Budget Exceeded",
            message="You have exceeded your monthly budget!",
            percentage=value,
        )
    if value >= WARNING_THRESHOLD:
        return AlertEvent(
            level=AlertLevel.WARNING,
            title="Budget Warning",
            message=f"You've used {value:.1f}% of your monthly budget.",
            percentage=value,
        )
    return None


class BudgetMonitor:
    """Turns budget snapshots into threshold alerts.

    With `dedupe` on, an alert is shown only when the alert level changes,
    so repeated recomputations at the same level stay quiet and dropping
    back under 90% re-arms the warning. With `dedupe` off every published
    snapshot at or above 90% is reported. The aggregator only publishes
    snapshots whose figures changed.
    """

    def __init__(
        self,
        aggregator: BudgetAggregator,
        notifications: NotificationCenter,
        dedupe: bool = True,
    ):
        self.notifications = notifications
        self.dedupe = dedupe
        self._last_level: Optional[AlertLevel] = None
        self._unsubscribe = aggregator.subscribe(self.check)

    def check(self, state: BudgetState) -> Optional[AlertEvent]:
        if state.monthly_budget <= ZERO:
            self._last_level = None
            return None
        event = evaluate(state.summary.spending_percentage)
        level = event.level if event else None
        if self.dedupe and level == self._last_level:
            return None
        self._last_level = level
        if event is not None:
            logger.info("Budget alert: %s at %s%%", event.level.value, event.percentage)
            self.notifications.budget_alert(event)
        return event

    def close(self) -> None:
        self._unsubscribe()
