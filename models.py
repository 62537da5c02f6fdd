from typing import Optional
from decimal import Decimal
import datetime as dt
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime, UniqueConstraint

# These classes describe what data will be stored in the database.
# Each class = one table.
# Each variable inside becomes a column in that table.


def utc_now() -> datetime:
    """Timezone-aware creation timestamp for every table."""
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """Registered account. Email is the login and must be unique."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True, max_length=255)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    hashed_password: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class UserSettings(SQLModel, table=True):
    """Empty per-user settings row created at signup."""
    __tablename__ = "user_settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, unique=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class Transaction(SQLModel, table=True):
    """Income or expense owned by one user.
    - 'type' = either 'income' or 'expense'
    - 'category' is free text (e.g. 'groceries', 'salary')
    """
    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True) # owner
    type: str = Field(max_length=10) # 'income' or 'expense'
    amount: Decimal = Field(max_digits=12, decimal_places=2) # always > 0
    category: str = Field(max_length=100)
    description: Optional[str] = None
    date: dt.date # when the transaction happened
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class Budget(SQLModel, table=True):
    """Spending limit per (user, category, period). One row per triple."""
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "category", "period", name="uq_budget_user_category_period"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    category: str = Field(max_length=100)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    period: str = Field(default="monthly", max_length=20)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
