from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

from expense_tracker.config import DEFAULT_MONTHLY_BUDGET
from expense_tracker.errors import PersistenceError, ValidationError
from expense_tracker.expense_store import ExpenseState, ExpenseStore
from expense_tracker.logger import get_logger
from expense_tracker.models import Expense, coerce_amount
from expense_tracker.state import Action, StateContainer
from expense_tracker.storage import MONTHLY_BUDGET_KEY, KeyValueStorage

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

SET_BUDGET = "SET_BUDGET"
RECOMPUTE = "RECOMPUTE"


@dataclass(frozen=True)
class BudgetSummary:
    total_spent: Decimal
    remaining_budget: Decimal
    spending_percentage: Decimal


@dataclass(frozen=True)
class ExpenseStats:
    total: Decimal
    monthly_total: Decimal
    transaction_count: int
    recent_expenses: tuple[Expense, ...]


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total_spent: Decimal
    percentage_of_total: Decimal


@dataclass(frozen=True)
class BudgetState:
    monthly_budget: Decimal
    summary: BudgetSummary


def attribution_date(expense: Expense) -> date:
    if expense.date is not None:
        return expense.date
    return expense.created_at.date()


def in_month(expense: Expense, as_of: date) -> bool:
    attributed = attribution_date(expense)
    return attributed.year == as_of.year and attributed.month == as_of.month


def compute(expenses: Iterable[Expense], budget: Decimal, as_of: date) -> BudgetSummary:
    budget = coerce_amount(budget)
    total_spent = _sum_amounts(expense for expense in expenses if in_month(expense, as_of))
    remaining = max(ZERO, budget - total_spent)
    if budget > ZERO:
        percentage = total_spent / budget * HUNDRED
    else:
        percentage = ZERO
    return BudgetSummary(
        total_spent=total_spent,
        remaining_budget=remaining,
        spending_percentage=percentage,
    )


def validate_budget(amount: Any) -> Decimal:
    if amount is None or isinstance(amount, bool) or str(amount).strip() == "":
        raise ValidationError({"budget": "Budget is required."})
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValidationError({"budget": "Please enter a valid number."}) from exc
    if not value.is_finite():
        raise ValidationError({"budget": "Please enter a valid number."})
    if value < ZERO:
        raise ValidationError({"budget": "Budget cannot be negative."})
    return value


def expense_stats(
    expenses: Iterable[Expense],
    as_of: date,
    recent_limit: int = 5,
) -> ExpenseStats:
    items = list(expenses)
    return ExpenseStats(
        total=_sum_amounts(items),
        monthly_total=_sum_amounts(item for item in items if in_month(item, as_of)),
        transaction_count=len(items),
        recent_expenses=tuple(items[:recent_limit]),
    )


def category_breakdown(expenses: Iterable[Expense], as_of: date) -> list[CategoryTotal]:
    totals: dict[str, Decimal] = {}
    for expense in expenses:
        if not in_month(expense, as_of):
            continue
        totals[expense.category] = totals.get(expense.category, ZERO) + coerce_amount(
            expense.amount
        )
    grand_total = sum(totals.values(), ZERO)
    breakdown = [
        CategoryTotal(
            category=category,
            total_spent=total,
            percentage_of_total=(total / grand_total * HUNDRED) if grand_total > ZERO else ZERO,
        )
        for category, total in totals.items()
    ]
    breakdown.sort(key=lambda item: (-item.total_spent, item.category))
    return breakdown


def _sum_amounts(expenses: Iterable[Expense]) -> Decimal:
    total = ZERO
    for expense in expenses:
        total += coerce_amount(getattr(expense, "amount", None))
    return total


class BudgetAggregator:
    """Holds the monthly budget and keeps the derived figures current.

    The budget is read from storage on construction (the default is written
    back on first use) and every expense-store snapshot triggers a
    recomputation; subscribers receive a new `BudgetState` whenever the
    figures change.
    """

    def __init__(
        self,
        store: ExpenseStore,
        storage: KeyValueStorage,
        default_budget: Decimal = DEFAULT_MONTHLY_BUDGET,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.storage = storage
        self.today = today
        budget = self._load_budget(default_budget)
        self._container = StateContainer(
            BudgetState(
                monthly_budget=budget,
                summary=compute(store.list(), budget, today()),
            ),
            self._reduce,
        )
        self._unsubscribe_store = store.subscribe(self._on_expenses)

    @property
    def state(self) -> BudgetState:
        return self._container.state

    @property
    def monthly_budget(self) -> Decimal:
        return self._container.state.monthly_budget

    def subscribe(self, listener: Callable[[BudgetState], None]) -> Callable[[], None]:
        return self._container.subscribe(listener)

    def summary(self) -> BudgetSummary:
        return compute(self.store.list(), self.monthly_budget, self.today())

    def set_budget(self, amount: Any) -> Decimal:
        value = validate_budget(amount)
        self.storage.set(MONTHLY_BUDGET_KEY, str(value))
        self._container.dispatch(Action(SET_BUDGET, value))
        logger.info("Monthly budget set to %s", value)
        return value

    def recompute(self) -> BudgetState:
        return self._container.dispatch(Action(RECOMPUTE, self.store.list()))

    def close(self) -> None:
        self._unsubscribe_store()

    def _on_expenses(self, state: ExpenseState) -> None:
        self._container.dispatch(Action(RECOMPUTE, state.expenses))

    def _reduce(self, state: BudgetState, action: Action) -> BudgetState:
        if action.type == SET_BUDGET:
            return BudgetState(
                monthly_budget=action.payload,
                summary=compute(self.store.list(), action.payload, self.today()),
            )
        if action.type == RECOMPUTE:
            return BudgetState(
                monthly_budget=state.monthly_budget,
                summary=compute(action.payload, state.monthly_budget, self.today()),
            )
        return state

    def _load_budget(self, default_budget: Decimal) -> Decimal:
        try:
            saved = self.storage.get(MONTHLY_BUDGET_KEY)
            if saved is None:
                self.storage.set(MONTHLY_BUDGET_KEY, str(default_budget))
                return default_budget
        except PersistenceError as exc:
            logger.error("Error loading budget: %s", exc)
            return default_budget
        try:
            return validate_budget(saved)
        except ValidationError:
            logger.warning("Ignoring stored budget %r", saved)
            return default_budget
