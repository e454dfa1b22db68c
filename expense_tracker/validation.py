from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from expense_tracker.errors import ValidationError
from expense_tracker.models import ExpenseDraft, parse_date

MAX_AMOUNT = Decimal("1000000")
MIN_DESCRIPTION_LENGTH = 3
MAX_DESCRIPTION_LENGTH = 200
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class ValidationResult:
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_expense(data: Mapping[str, Any], today: Optional[date] = None) -> ValidationResult:
    """Check a submitted expense form, collecting one message per bad field."""
    errors: dict[str, str] = {}

    amount_error = _check_amount(data.get("amount"))
    if amount_error:
        errors["amount"] = amount_error

    if not _text(data.get("category")):
        errors["category"] = "Category is required"

    description = _text(data.get("description"))
    if not description:
        errors["description"] = "Description is required"
    elif len(description) < MIN_DESCRIPTION_LENGTH:
        errors["description"] = (
            f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters long"
        )
    elif len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = (
            f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
        )

    raw_date = data.get("date")
    if raw_date not in (None, ""):
        parsed = parse_date(raw_date)
        if parsed is None:
            errors["date"] = "Please enter a valid date"
        elif parsed > (today or date.today()):
            errors["date"] = "Date cannot be in the future"

    return ValidationResult(errors=errors)


def parse_expense_form(data: Mapping[str, Any], today: Optional[date] = None) -> ExpenseDraft:
    result = validate_expense(data, today=today)
    if not result.is_valid:
        raise ValidationError(result.errors)
    return ExpenseDraft(
        amount=Decimal(str(data["amount"]).strip()),
        description=_text(data.get("description")),
        category=_text(data.get("category")),
        date=parse_date(data.get("date")),
    )


def validate_login(username: Optional[str], password: Optional[str]) -> ValidationResult:
    errors: dict[str, str] = {}
    username = _text(username)
    if not username:
        errors["username"] = "Username is required"
    elif len(username) < MIN_USERNAME_LENGTH:
        errors["username"] = (
            f"Username must be at least {MIN_USERNAME_LENGTH} characters long"
        )

    if not password:
        errors["password"] = "Password is required"
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = (
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    return ValidationResult(errors=errors)


def _check_amount(raw: Any) -> Optional[str]:
    if raw is None or isinstance(raw, bool) or str(raw).strip() == "":
        return "Amount is required"
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        return "Please enter a valid number"
    if not amount.is_finite():
        return "Please enter a valid number"
    if amount <= 0:
        return "Amount must be greater than 0"
    if amount > MAX_AMOUNT:
        return "Amount cannot exceed $1,000,000"
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
