"""Pydantic schemas: request payloads and the typed records storage returns."""
from typing import Optional
from decimal import Decimal
import datetime as dt

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from utils import normalize_iso_date

TRANSACTION_TYPES = ("income", "expense")
DEFAULT_PERIOD = "monthly"
CATEGORY_MAX_LEN = 100
DESCRIPTION_MAX_LEN = 500


# Records (decoded once at the storage boundary)

class UserRead(BaseModel):
    """A user as returned to callers; never carries the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    created_at: Optional[dt.datetime] = None


class UserInDB(UserRead):
    """A user together with its credential hash (storage/auth use only)."""
    hashed_password: str

    def public(self) -> UserRead:
        return UserRead(**self.model_dump(exclude={"hashed_password"}))


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: str
    amount: Decimal
    category: str
    description: Optional[str] = None
    date: dt.date
    created_at: dt.datetime


class BudgetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    category: str
    amount: Decimal
    period: str
    created_at: dt.datetime


# Request payloads
# Fields are optional here; the services decide what is mandatory so that
# both storage backends enforce the same rules.

class StripMixin:
    """Shared validators for trimming text and normalizing dates."""
    @field_validator("category", "description", "period", check_fields=False, mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("date", check_fields=False, mode="before")
    @classmethod
    def normalize_date(cls, v):
        if v is None:
            return None
        return normalize_iso_date(v)


class UserCreate(BaseModel):
    """Payload for registering. Accepts the camelCase names too."""
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("first_name", "firstName")
    )
    last_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("last_name", "lastName")
    )


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TransactionCreate(StripMixin, BaseModel):
    """Payload for creating a transaction."""
    type: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LEN)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    date: Optional[dt.date] = None


class TransactionUpdate(StripMixin, BaseModel):
    """Partial update payload for transactions."""
    type: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LEN)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    date: Optional[dt.date] = None


class BudgetCreate(StripMixin, BaseModel):
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LEN)
    amount: Optional[Decimal] = None
    period: Optional[str] = None


class BudgetUpdate(StripMixin, BaseModel):
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LEN)
    amount: Optional[Decimal] = None
    period: Optional[str] = None


# Responses

class AuthResponse(BaseModel):
    """Returned by register and login."""
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class ProfileResponse(BaseModel):
    user: UserRead


class Message(BaseModel):
    message: str


class Totals(BaseModel):
    income: float = 0.0
    expense: float = 0.0


class CategoryTotal(BaseModel):
    category: str
    total: float


class StatsRead(BaseModel):
    totals: Totals
    balance: float
    category_breakdown: list[CategoryTotal] = Field(serialization_alias="categoryBreakdown")
