"""
On-device key/value storage.

Values are plain strings; callers serialize structured data themselves.
No transactional guarantee spans more than one key.
"""

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from expense_tracker.errors import PersistenceError
from expense_tracker.logger import get_logger

logger = get_logger(__name__)

USER_TOKEN_KEY = "userToken"
CURRENT_USER_KEY = "currentUser"
EXPENSES_KEY = "expenses"
MONTHLY_BUDGET_KEY = "monthlyBudget"

metadata = MetaData()

kv_entries = Table(
    "kv_entries",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage for sessions that need nothing durable."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class SQLKeyValueStorage:
    def __init__(self, engine: Engine):
        self.engine = engine
        try:
            metadata.create_all(engine)
        except SQLAlchemyError as exc:
            logger.error("Failed to initialise storage: %s", exc)
            raise PersistenceError("Storage is unavailable.") from exc

    @classmethod
    def from_url(cls, url: str) -> "SQLKeyValueStorage":
        connect_args = {}
        kwargs = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
            if url in {"sqlite://", "sqlite:///:memory:"}:
                kwargs["poolclass"] = StaticPool
        return cls(create_engine(url, connect_args=connect_args, **kwargs))

    def get(self, key: str) -> Optional[str]:
        try:
            with self.engine.begin() as conn:
                return conn.execute(
                    select(kv_entries.c.value).where(kv_entries.c.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to read %s: %s", key, exc)
            raise PersistenceError(f"Could not read {key} from storage.") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(kv_entries)
                    .where(kv_entries.c.key == key)
                    .values(value=value, updated_at=func.now())
                )
                if result.rowcount == 0:
                    conn.execute(insert(kv_entries).values(key=key, value=value))
        except SQLAlchemyError as exc:
            logger.error("Failed to write %s: %s", key, exc)
            raise PersistenceError(f"Could not write {key} to storage.") from exc

    def remove(self, key: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(kv_entries.delete().where(kv_entries.c.key == key))
        except SQLAlchemyError as exc:
            logger.error("Failed to remove %s: %s", key, exc)
            raise PersistenceError(f"Could not remove {key} from storage.") from exc
