from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
)
from sqlalchemy.exc import IntegrityError

from expense_tracker.config import load_settings
from expense_tracker.logger import get_logger
from expense_tracker.validation import MAX_DESCRIPTION_LENGTH

logger = get_logger(__name__)

settings = load_settings()

app = FastAPI(title="Expense Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = settings.database_url
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()

TOKEN_PREFIX = "token_"

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), unique=True, nullable=False),
    Column("email", String(255)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

expenses = Table(
    "expenses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("description", String(MAX_DESCRIPTION_LENGTH), nullable=False),
    Column("category", String(255)),
    Column("date", Date),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class UserPayload(BaseModel):
    username: str
    email: Optional[str] = None

    @classmethod
    def validate_payload(cls, payload: "UserPayload") -> "UserPayload":
        payload.username = payload.username.strip()
        payload.email = payload.email.strip().lower() if payload.email else None
        if not payload.username:
            raise ValueError("Username required.")
        return payload


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class ExpensePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    description: str
    category: Optional[str] = None
    expense_date: Optional[date] = Field(default=None, alias="date")

    @classmethod
    def validate_payload(cls, payload: "ExpensePayload") -> "ExpensePayload":
        payload.description = payload.description.strip()
        payload.category = payload.category.strip() if payload.category else None
        if not payload.amount.is_finite() or payload.amount < 0:
            raise ValueError("Amount cannot be negative.")
        if not payload.description:
            raise ValueError("Description required.")
        if len(payload.description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters."
            )
        return payload


class ExpenseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    amount: Decimal
    description: str
    category: Optional[str] = None
    expense_date: Optional[date] = Field(default=None, alias="date")
    created_at: datetime = Field(alias="createdAt")
    user_id: Optional[str] = Field(default=None, alias="userId")


def get_user_id(authorization: Optional[str]) -> Optional[int]:
    """Resolve a `Bearer token_<id>` header; no header means an anonymous caller."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token.startswith(TOKEN_PREFIX):
        raise HTTPException(status_code=401, detail="Invalid session token.")
    try:
        user_id = int(token[len(TOKEN_PREFIX):])
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid session token.") from exc
    with engine.begin() as conn:
        result = conn.execute(select(users.c.id).where(users.c.id == user_id))
        if not result.first():
            raise HTTPException(status_code=401, detail="Invalid session token.")
    return user_id


def user_response(row) -> UserResponse:
    return UserResponse(
        id=str(row["id"]),
        username=row["username"],
        email=row["email"],
        created_at=row["created_at"],
    )


def expense_response(row) -> ExpenseResponse:
    return ExpenseResponse(
        id=str(row["id"]),
        amount=row["amount"],
        description=row["description"],
        category=row["category"],
        expense_date=row["date"],
        created_at=row["created_at"],
        user_id=str(row["user_id"]) if row["user_id"] is not None else None,
    )


def expense_conditions(expense_id: int, user_id: Optional[int]) -> list:
    conditions = [expenses.c.id == expense_id]
    if user_id is not None:
        conditions.append(expenses.c.user_id == user_id)
    return conditions


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/users", response_model=list[UserResponse])
def list_users(username: Optional[str] = Query(None)) -> list[UserResponse]:
    stmt = select(users).order_by(users.c.id.asc())
    if username is not None:
        stmt = stmt.where(users.c.username == username.strip())
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
    return [user_response(row) for row in rows]


@app.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserPayload) -> UserResponse:
    try:
        payload = UserPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(users)
        .values(username=payload.username, email=payload.email)
        .returning(users.c.id, users.c.username, users.c.email, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Username already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    logger.info("Created user %s", row["username"])
    return user_response(row)


@app.get("/expenses", response_model=list[ExpenseResponse])
def list_expenses(authorization: Optional[str] = Header(None)) -> list[ExpenseResponse]:
    user_id = get_user_id(authorization)
    stmt = select(expenses).order_by(expenses.c.created_at.desc(), expenses.c.id.desc())
    if user_id is not None:
        stmt = stmt.where(expenses.c.user_id == user_id)
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
    return [expense_response(row) for row in rows]


@app.get("/expenses/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: int, authorization: Optional[str] = Header(None)
) -> ExpenseResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(expenses).where(*expense_conditions(expense_id, user_id))
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Expense not found.")
    return expense_response(row)


@app.post("/expenses", response_model=ExpenseResponse, status_code=201)
def create_expense(
    payload: ExpensePayload, authorization: Optional[str] = Header(None)
) -> ExpenseResponse:
    user_id = get_user_id(authorization)
    try:
        payload = ExpensePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(expenses)
        .values(
            user_id=user_id,
            amount=payload.amount,
            description=payload.description,
            category=payload.category,
            date=payload.expense_date,
        )
        .returning(
            expenses.c.id,
            expenses.c.user_id,
            expenses.c.amount,
            expenses.c.description,
            expenses.c.category,
            expenses.c.date,
            expenses.c.created_at,
        )
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create expense.")
    return expense_response(row)


@app.delete("/expenses/{expense_id}")
def delete_expense(expense_id: int, authorization: Optional[str] = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = expenses.delete().where(*expense_conditions(expense_id, user_id))
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Expense not found.")
    return {"status": "deleted"}
