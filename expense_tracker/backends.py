"""
Expense persistence variants.

`LocalBackend` keeps the whole expense list as one JSON document in device
storage and assigns ids itself. `RemoteBackend` delegates to the remote data
service, which assigns ids and creation timestamps.
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable, Mapping, Optional, Sequence

from expense_tracker.api_client import NOT_FOUND_MESSAGE, ApiClient
from expense_tracker.errors import NotFoundError, PersistenceError, TransportError
from expense_tracker.logger import get_logger
from expense_tracker.models import (
    Expense,
    ExpenseDraft,
    draft_to_record,
    expense_to_record,
    normalize_expense,
    normalize_expenses,
    parse_timestamp,
)
from expense_tracker.storage import EXPENSES_KEY, KeyValueStorage

logger = get_logger(__name__)

SAMPLE_EXPENSES = [
    ("50.00", "Grocery Shopping", "Food"),
    ("30.00", "Movie Tickets", "Entertainment"),
    ("100.00", "Electric Bill", "Utilities"),
    ("45.00", "Restaurant Dinner", "Food"),
    ("80.00", "Gas Station", "Transportation"),
    ("25.00", "Coffee Shop", "Food"),
    ("60.00", "Internet Bill", "Utilities"),
    ("40.00", "Haircut", "Personal Care"),
]


def sample_expenses(now: datetime) -> list[Expense]:
    return [
        Expense(
            id=str(index),
            amount=Decimal(amount),
            description=description,
            category=category,
            created_at=now,
            date=now.date(),
        )
        for index, (amount, description, category) in enumerate(SAMPLE_EXPENSES, start=1)
    ]


class DataBackend(ABC):
    # Whether new records belong at the front of the list.
    newest_first: bool = False

    @abstractmethod
    def fetch_expenses(self) -> list[Expense]:
        ...

    @abstractmethod
    def fetch_expense(self, expense_id: str) -> Optional[Expense]:
        ...

    @abstractmethod
    def create_expense(self, draft: ExpenseDraft, current: Sequence[Expense]) -> Expense:
        """Persist a new expense and return the stored record.

        `current` is the committed collection the new record joins.
        """

    @abstractmethod
    def delete_expense(self, expense: Expense, remaining: Sequence[Expense]) -> None:
        ...


class LocalBackend(DataBackend):
    newest_first = False

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        seed_samples: bool = False,
    ):
        self.storage = storage
        self.clock = clock
        self.id_factory = id_factory
        self.seed_samples = seed_samples

    def fetch_expenses(self) -> list[Expense]:
        raw = self.storage.get(EXPENSES_KEY)
        if raw is None:
            seeded = sample_expenses(self.clock()) if self.seed_samples else []
            if seeded:
                self._write(seeded)
            return seeded
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Stored expenses are not valid JSON: %s", exc)
            raise PersistenceError("Stored expenses could not be read.") from exc
        if not isinstance(records, list):
            raise PersistenceError("Stored expenses could not be read.")
        expenses = normalize_expenses(records, now=self.clock)
        # Pin timestamps filled in above so attribution stays put across sessions.
        if any(
            isinstance(record, Mapping) and parse_timestamp(record.get("createdAt")) is None
            for record in records
        ):
            try:
                self._write(expenses)
            except PersistenceError as exc:
                logger.warning("Could not store filled-in expense timestamps: %s", exc)
        return expenses

    def fetch_expense(self, expense_id: str) -> Optional[Expense]:
        for expense in self.fetch_expenses():
            if expense.id == expense_id:
                return expense
        return None

    def create_expense(self, draft: ExpenseDraft, current: Sequence[Expense]) -> Expense:
        existing_ids = {expense.id for expense in current}
        expense_id = self.id_factory()
        while expense_id in existing_ids:
            expense_id = self.id_factory()
        now = self.clock()
        expense = Expense(
            id=expense_id,
            amount=draft.amount,
            description=draft.description,
            category=draft.category,
            created_at=now,
            date=draft.date,
        )
        self._write([*current, expense])
        return expense

    def delete_expense(self, expense: Expense, remaining: Sequence[Expense]) -> None:
        self._write(remaining)

    def _write(self, expenses: Sequence[Expense]) -> None:
        self.storage.set(
            EXPENSES_KEY,
            json.dumps([expense_to_record(expense) for expense in expenses]),
        )


class RemoteBackend(DataBackend):
    newest_first = True

    def __init__(self, client: ApiClient, clock: Callable[[], datetime] = datetime.now):
        self.client = client
        self.clock = clock

    def fetch_expenses(self) -> list[Expense]:
        try:
            records = self.client.list_expenses()
        except NotFoundError as exc:
            raise TransportError(NOT_FOUND_MESSAGE) from exc
        return normalize_expenses(records, now=self.clock)

    def fetch_expense(self, expense_id: str) -> Optional[Expense]:
        record = self.client.get_expense(expense_id)
        if record is None:
            return None
        try:
            return normalize_expense(record, now=self.clock)
        except ValueError as exc:
            raise TransportError("Unexpected response from server.") from exc

    def create_expense(self, draft: ExpenseDraft, current: Sequence[Expense]) -> Expense:
        try:
            record = self.client.create_expense(draft_to_record(draft))
        except NotFoundError as exc:
            raise TransportError(NOT_FOUND_MESSAGE) from exc
        try:
            return normalize_expense(record, now=self.clock)
        except ValueError as exc:
            raise TransportError("Unexpected response from server.") from exc

    def delete_expense(self, expense: Expense, remaining: Sequence[Expense]) -> None:
        try:
            self.client.delete_expense(expense.id)
        except NotFoundError:
            logger.warning("Expense %s was already gone from the server", expense.id)
