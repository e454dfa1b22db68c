from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping

DEFAULT_MONTHLY_BUDGET = Decimal("1000")
DATA_BACKENDS = {"local", "remote"}


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./expense_tracker.db"
    storage_url: str = "sqlite:///./device_storage.db"
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 15.0
    data_backend: str = "local"
    default_monthly_budget: Decimal = DEFAULT_MONTHLY_BUDGET
    seed_sample_expenses: bool = False
    alert_dedupe: bool = True
    frontend_origin: str = "http://localhost:8081"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    defaults = Settings()
    return Settings(
        database_url=env.get("DATABASE_URL", defaults.database_url),
        storage_url=env.get("STORAGE_URL", defaults.storage_url),
        api_base_url=env.get("API_BASE_URL", defaults.api_base_url).rstrip("/"),
        api_timeout_seconds=_parse_float(
            env.get("API_TIMEOUT_SECONDS"), defaults.api_timeout_seconds
        ),
        data_backend=_parse_backend(env.get("DATA_BACKEND"), defaults.data_backend),
        default_monthly_budget=_parse_budget(
            env.get("DEFAULT_MONTHLY_BUDGET"), defaults.default_monthly_budget
        ),
        seed_sample_expenses=_parse_flag(
            env.get("SEED_SAMPLE_EXPENSES"), defaults.seed_sample_expenses
        ),
        alert_dedupe=_parse_flag(env.get("ALERT_DEDUPE"), defaults.alert_dedupe),
        frontend_origin=env.get("FRONTEND_ORIGIN", defaults.frontend_origin),
    )


def _parse_float(raw: str | None, fallback: float) -> float:
    if raw is None:
        return fallback
    try:
        value = float(raw)
    except ValueError:
        return fallback
    return value if value > 0 else fallback


def _parse_budget(raw: str | None, fallback: Decimal) -> Decimal:
    if raw is None:
        return fallback
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return fallback
    if not value.is_finite() or value < 0:
        return fallback
    return value


def _parse_backend(raw: str | None, fallback: str) -> str:
    if raw is None:
        return fallback
    normalized = raw.strip().lower()
    return normalized if normalized in DATA_BACKENDS else fallback


def _parse_flag(raw: str | None, fallback: bool) -> bool:
    if raw is None:
        return fallback
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback
