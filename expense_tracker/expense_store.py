from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Optional

from expense_tracker.backends import DataBackend
from expense_tracker.errors import PersistenceError, TransportError
from expense_tracker.logger import get_logger
from expense_tracker.models import Expense, ExpenseDraft
from expense_tracker.state import Action, StateContainer

logger = get_logger(__name__)

FETCH_START = "FETCH_START"
FETCH_SUCCESS = "FETCH_SUCCESS"
FETCH_ERROR = "FETCH_ERROR"
ADD_EXPENSE = "ADD_EXPENSE"
DELETE_EXPENSE = "DELETE_EXPENSE"


@dataclass(frozen=True)
class ExpenseState:
    expenses: tuple[Expense, ...] = ()
    loading: bool = False
    error: Optional[str] = None
    newest_first: bool = False


def expense_reducer(state: ExpenseState, action: Action) -> ExpenseState:
    if action.type == FETCH_START:
        return replace(state, loading=True, error=None)
    if action.type == FETCH_SUCCESS:
        return replace(state, loading=False, expenses=tuple(action.payload))
    if action.type == FETCH_ERROR:
        return replace(state, loading=False, error=action.payload)
    if action.type == ADD_EXPENSE:
        expense: Expense = action.payload
        others = tuple(item for item in state.expenses if item.id != expense.id)
        if state.newest_first:
            return replace(state, expenses=(expense, *others))
        return replace(state, expenses=(*others, expense))
    if action.type == DELETE_EXPENSE:
        return replace(
            state,
            expenses=tuple(item for item in state.expenses if item.id != action.payload),
        )
    return state


class ExpenseStore:
    """Authoritative, ordered expense collection for the current session.

    Mutations are persisted through the backend first; the in-memory
    snapshot only changes once the backend call has returned, so a failed
    write leaves the collection exactly as it was.
    """

    def __init__(self, backend: DataBackend, today: Callable[[], date] = date.today):
        self.backend = backend
        self.today = today
        self._container = StateContainer(
            ExpenseState(newest_first=backend.newest_first),
            expense_reducer,
        )

    @property
    def state(self) -> ExpenseState:
        return self._container.state

    def subscribe(self, listener: Callable[[ExpenseState], None]) -> Callable[[], None]:
        return self._container.subscribe(listener)

    def list(self) -> tuple[Expense, ...]:
        return self._container.state.expenses

    def find_by_id(self, expense_id: str) -> Optional[Expense]:
        for expense in self._container.state.expenses:
            if expense.id == expense_id:
                return expense
        return None

    def refresh(self) -> tuple[Expense, ...]:
        self._container.dispatch(Action(FETCH_START))
        try:
            expenses = self.backend.fetch_expenses()
        except (TransportError, PersistenceError) as exc:
            logger.error("Error fetching expenses: %s", exc)
            self._container.dispatch(Action(FETCH_ERROR, str(exc)))
            raise
        self._container.dispatch(Action(FETCH_SUCCESS, expenses))
        return self.list()

    def add(self, draft: ExpenseDraft) -> Expense:
        if draft.date is None:
            draft = replace(draft, date=self.today())
        expense = self.backend.create_expense(draft, self.list())
        self._container.dispatch(Action(ADD_EXPENSE, expense))
        logger.info("Added expense %s (%s)", expense.id, expense.amount)
        return expense

    def remove(self, expense_id: str) -> bool:
        expense = self.find_by_id(expense_id)
        if expense is None:
            return False
        remaining = tuple(item for item in self.list() if item.id != expense_id)
        self.backend.delete_expense(expense, remaining)
        self._container.dispatch(Action(DELETE_EXPENSE, expense_id))
        logger.info("Deleted expense %s", expense_id)
        return True

    def search(self, query: str) -> tuple[Expense, ...]:
        needle = (query or "").strip().lower()
        if not needle:
            return self.list()
        return tuple(
            expense
            for expense in self.list()
            if needle in expense.description.lower() or needle in expense.category.lower()
        )
