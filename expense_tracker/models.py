from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional

from expense_tracker.logger import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")

CATEGORIES = [
    "Food",
    "Transportation",
    "Entertainment",
    "Utilities",
    "Shopping",
    "Healthcare",
    "Education",
    "Other",
]
DEFAULT_CATEGORY = "Uncategorized"


@dataclass(frozen=True)
class ExpenseDraft:
    amount: Decimal
    description: str
    category: str
    date: Optional[date] = None


@dataclass(frozen=True)
class Expense:
    id: str
    amount: Decimal
    description: str
    category: str
    created_at: datetime
    date: Optional[date] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class User:
    id: str
    username: str
    email: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "User":
        return cls(
            id=str(record["id"]),
            username=str(record.get("username") or ""),
            email=record.get("email") or None,
        )

    def to_record(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email}


def coerce_amount(value: Any) -> Decimal:
    """Best-effort conversion of a raw amount; anything unusable counts as zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not amount.is_finite() or amount < ZERO:
        return ZERO
    return amount


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def normalize_expense(
    record: Mapping[str, Any],
    now: Callable[[], datetime] = datetime.now,
) -> Expense:
    """Turn a raw storage or wire record into an `Expense`.

    This is the only place record defaults are filled in: unusable amounts
    become zero, a blank category becomes "Uncategorized" and a missing
    creation timestamp becomes the current time. A missing `date` is left
    as None so attribution falls back to `created_at`.
    """
    raw_id = record.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        raise ValueError("Expense record is missing an id.")
    category = str(record.get("category") or "").strip()
    return Expense(
        id=str(raw_id),
        amount=coerce_amount(record.get("amount")),
        description=str(record.get("description") or "").strip(),
        category=category or DEFAULT_CATEGORY,
        created_at=parse_timestamp(record.get("createdAt")) or now(),
        date=parse_date(record.get("date")),
        user_id=str(record["userId"]) if record.get("userId") is not None else None,
    )


def normalize_expenses(
    records: Iterable[Mapping[str, Any]],
    now: Callable[[], datetime] = datetime.now,
) -> list[Expense]:
    expenses = []
    for record in records:
        if not isinstance(record, Mapping):
            logger.warning("Skipping malformed expense record: %r", record)
            continue
        try:
            expenses.append(normalize_expense(record, now=now))
        except ValueError as exc:
            logger.warning("Skipping expense record: %s", exc)
    return expenses


def expense_to_record(expense: Expense) -> dict:
    record = {
        "id": expense.id,
        "amount": str(expense.amount),
        "description": expense.description,
        "category": expense.category,
        "date": expense.date.isoformat() if expense.date else None,
        "createdAt": expense.created_at.isoformat(),
    }
    if expense.user_id is not None:
        record["userId"] = expense.user_id
    return record


def draft_to_record(draft: ExpenseDraft) -> dict:
    return {
        "amount": str(draft.amount),
        "description": draft.description,
        "category": draft.category,
        "date": draft.date.isoformat() if draft.date else None,
    }
