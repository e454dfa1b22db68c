from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


class ValidationError(ValueError):
    """Raised when user input fails validation.

    `errors` maps each offending field to a display-ready message.
    """

    def __init__(self, errors: Mapping[str, str] | str) -> None:
        if isinstance(errors, str):
            errors = {"__all__": errors}
        self.errors = dict(errors)
        super().__init__(next(iter(self.errors.values()), "Invalid input."))


class NotFoundError(LookupError):
    """Raised when a record lookup by id has no match."""


class TransportError(RuntimeError):
    """Raised when the remote data service cannot be reached or misbehaves."""


class RateLimitedError(TransportError):
    """Raised when the remote data service answers with HTTP 429."""


class PersistenceError(RuntimeError):
    """Raised when on-device storage cannot be read or written."""


@dataclass(frozen=True)
class Result:
    success: bool
    data: Any = None
    error: str | None = None
    errors: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, errors: Mapping[str, str] | None = None) -> "Result":
        return cls(success=False, error=error, errors=dict(errors or {}))
