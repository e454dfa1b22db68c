from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from expense_tracker.alerts import AlertEvent, BudgetMonitor, evaluate
from expense_tracker.api_client import ApiClient
from expense_tracker.backends import DataBackend, LocalBackend, RemoteBackend
from expense_tracker.budget_engine import (
    BudgetAggregator,
    BudgetSummary,
    CategoryTotal,
    ExpenseStats,
    category_breakdown,
    expense_stats,
)
from expense_tracker.config import Settings, load_settings
from expense_tracker.errors import PersistenceError, Result, TransportError, ValidationError
from expense_tracker.expense_store import ExpenseStore
from expense_tracker.logger import get_logger
from expense_tracker.notifications import NotificationCenter, NotificationSink
from expense_tracker.session import AuthSession
from expense_tracker.storage import KeyValueStorage, SQLKeyValueStorage
from expense_tracker.validation import parse_expense_form

logger = get_logger(__name__)

EXPENSE_NOT_FOUND = "Expense not found."


@dataclass(frozen=True)
class Dashboard:
    monthly_budget: Decimal
    summary: BudgetSummary
    stats: ExpenseStats
    categories: list[CategoryTotal]
    alert: Optional[AlertEvent]


class ExpenseTracker:
    """Session-level entry point.

    Every method returns a `Result`; validation, transport and persistence
    failures come back as failed results carrying a display-ready message.
    """

    def __init__(
        self,
        backend: DataBackend,
        storage: KeyValueStorage,
        notifications: Optional[NotificationCenter] = None,
        session: Optional[AuthSession] = None,
        default_budget: Optional[Decimal] = None,
        alert_dedupe: bool = True,
        today: Callable[[], date] = date.today,
    ):
        self.backend = backend
        self.today = today
        self.notifications = notifications or NotificationCenter()
        self.session = session
        self.store = ExpenseStore(backend, today=today)
        aggregator_kwargs = {}
        if default_budget is not None:
            aggregator_kwargs["default_budget"] = default_budget
        self.aggregator = BudgetAggregator(self.store, storage, today=today, **aggregator_kwargs)
        self.monitor = BudgetMonitor(self.aggregator, self.notifications, dedupe=alert_dedupe)

    def load_expenses(self) -> Result:
        try:
            return Result.ok(self.store.refresh())
        except (TransportError, PersistenceError) as exc:
            return Result.fail(str(exc) or "Failed to fetch expenses. Please try again.")

    def list_expenses(self) -> Result:
        return Result.ok(self.store.list())

    def search(self, query: str) -> Result:
        return Result.ok(self.store.search(query))

    def add_expense(self, form: Mapping[str, Any]) -> Result:
        try:
            draft = parse_expense_form(form, today=self.today())
        except ValidationError as exc:
            return Result.fail(str(exc), exc.errors)
        try:
            expense = self.store.add(draft)
        except (TransportError, PersistenceError) as exc:
            logger.error("Error adding expense: %s", exc)
            return Result.fail(str(exc) or "Failed to create expense. Please try again.")
        self.notifications.expense_added(expense.amount)
        return Result.ok(expense)

    def delete_expense(self, expense_id: str) -> Result:
        expense = self.store.find_by_id(expense_id)
        if expense is None:
            return Result.ok(False)
        try:
            deleted = self.store.remove(expense_id)
        except (TransportError, PersistenceError) as exc:
            logger.error("Error deleting expense: %s", exc)
            return Result.fail(str(exc) or "Failed to delete expense. Please try again.")
        if deleted:
            self.notifications.expense_deleted(expense.amount)
        return Result.ok(deleted)

    def get_expense(self, expense_id: str) -> Result:
        expense = self.store.find_by_id(expense_id)
        if expense is None:
            try:
                expense = self.backend.fetch_expense(expense_id)
            except (TransportError, PersistenceError) as exc:
                return Result.fail(
                    str(exc) or "Failed to fetch expense details. Please try again."
                )
        if expense is None:
            return Result.fail(EXPENSE_NOT_FOUND)
        return Result.ok(expense)

    def set_budget(self, amount: Any) -> Result:
        try:
            value = self.aggregator.set_budget(amount)
        except ValidationError as exc:
            return Result.fail(str(exc), exc.errors)
        except PersistenceError as exc:
            logger.error("Error saving budget: %s", exc)
            return Result.fail(str(exc))
        self.notifications.budget_updated(value)
        return Result.ok(value)

    def dashboard(self) -> Result:
        as_of = self.today()
        expenses = self.store.list()
        summary = self.aggregator.summary()
        return Result.ok(
            Dashboard(
                monthly_budget=self.aggregator.monthly_budget,
                summary=summary,
                stats=expense_stats(expenses, as_of),
                categories=category_breakdown(expenses, as_of),
                alert=evaluate(summary.spending_percentage),
            )
        )

    def login(self, username: str, password: str) -> Result:
        if self.session is None:
            return Result.fail("Login is not available.")
        return self.session.login(username, password)

    def logout(self) -> Result:
        if self.session is None:
            return Result.ok()
        return self.session.logout()

    def close(self) -> None:
        self.monitor.close()
        self.aggregator.close()


def build_tracker(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
    sinks: Optional[list[NotificationSink]] = None,
    opener: Optional[Callable[..., Any]] = None,
) -> ExpenseTracker:
    """Wire a tracker for the configured data backend variant."""
    settings = settings or load_settings()
    storage = storage or SQLKeyValueStorage.from_url(settings.storage_url)
    client_kwargs = {"opener": opener} if opener is not None else {}
    client = ApiClient(
        base_url=settings.api_base_url,
        timeout=settings.api_timeout_seconds,
        storage=storage,
        **client_kwargs,
    )
    if settings.data_backend == "remote":
        backend: DataBackend = RemoteBackend(client)
    else:
        backend = LocalBackend(storage, seed_samples=settings.seed_sample_expenses)
    logger.info("Using %s expense backend", settings.data_backend)
    return ExpenseTracker(
        backend=backend,
        storage=storage,
        notifications=NotificationCenter(sinks),
        session=AuthSession(client, storage),
        default_budget=settings.default_monthly_budget,
        alert_dedupe=settings.alert_dedupe,
    )
