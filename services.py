"""Entity services: users, transactions and budgets.

Each service is built around one ``Storage`` handle and scopes every
transaction/budget operation to the owning user. Rows owned by someone else
look exactly like missing rows.
"""
import logging
from decimal import Decimal
from typing import Any, Optional, Sequence

from auth import get_password_hash, verify_password
from errors import Conflict, InvalidInput, NotFound, Unauthorized, reports_internal
from schemas import (
    DEFAULT_PERIOD,
    TRANSACTION_TYPES,
    BudgetRead,
    TransactionRead,
    UserRead,
)
from storage import DUPLICATE_EMAIL, Storage
from utils import clamp_pagination, compute_stats, normalize_iso_date, to_money

logger = logging.getLogger(__name__)


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(message)
    return value.strip()


def _money_or_400(value: Any) -> Decimal:
    try:
        return to_money(value)
    except ValueError as exc:
        raise InvalidInput(str(exc))


class UserService:
    def __init__(self, storage: Storage):
        self.storage = storage

    @reports_internal
    def register(
        self,
        email: Optional[str],
        password: Optional[str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRead:
        """Create an account; the returned user never includes the hash."""
        if not email or not email.strip() or not password:
            raise InvalidInput("Email and password are required")
        email = email.strip()

        if self.storage.get_user_by_email(email):
            raise Conflict(DUPLICATE_EMAIL)

        try:
            hashed = get_password_hash(password)
        except ValueError:
            raise InvalidInput("Password too long")

        user = self.storage.add_user(
            email, hashed, (first_name or "").strip(), (last_name or "").strip()
        )
        self.storage.add_user_settings(user.id)
        logger.info("Registered user id=%s", user.id)
        return user.public()

    @reports_internal
    def authenticate(self, email: Optional[str], password: Optional[str]) -> UserRead:
        """Check credentials. Unknown email and wrong password fail the same way."""
        if not email or not email.strip() or not password:
            raise InvalidInput("Email and password are required")

        user = self.storage.get_user_by_email(email.strip())
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning("Failed login attempt")
            raise Unauthorized("Invalid credentials")
        return user.public()

    @reports_internal
    def get_by_id(self, user_id: int) -> UserRead:
        user = self.storage.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user.public()


class TransactionService:
    REQUIRED = ("type", "amount", "category", "date")

    def __init__(self, storage: Storage):
        self.storage = storage

    def _clean(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalize whichever transaction fields are present."""
        cleaned: dict[str, Any] = {}
        for field, value in fields.items():
            if value is None:
                if field in self.REQUIRED:
                    raise InvalidInput("Type, amount, category, and date are required")
                if field == "description":
                    cleaned[field] = None
                continue

            if field == "type":
                if value not in TRANSACTION_TYPES:
                    raise InvalidInput("Type must be either income or expense")
                cleaned[field] = value
            elif field == "amount":
                cleaned[field] = _money_or_400(value)
            elif field == "category":
                cleaned[field] = _require_text(value, "Category is required")
            elif field == "description":
                cleaned[field] = str(value)
            elif field == "date":
                try:
                    cleaned[field] = normalize_iso_date(value)
                except ValueError as exc:
                    raise InvalidInput(str(exc))
            else:
                raise InvalidInput(f"Unknown field: {field}")
        return cleaned

    @reports_internal
    def list(self, owner_id: int, limit: Any = None, offset: Any = None) -> Sequence[TransactionRead]:
        """Owner's transactions, newest first, paginated leniently."""
        limit, offset = clamp_pagination(limit, offset)
        return self.storage.list_transactions(owner_id, limit=limit, offset=offset)

    @reports_internal
    def create(
        self,
        owner_id: int,
        tx_type: Any,
        amount: Any,
        category: Any,
        description: Any = None,
        date: Any = None,
    ) -> TransactionRead:
        fields = self._clean(
            {
                "type": tx_type,
                "amount": amount,
                "category": category,
                "description": description,
                "date": date,
            }
        )
        return self.storage.add_transaction(owner_id, fields)

    @reports_internal
    def update(self, owner_id: int, transaction_id: int, changes: dict[str, Any]) -> TransactionRead:
        """Merge the provided fields over the owned transaction."""
        cleaned = self._clean(changes)
        row = self.storage.update_transaction(owner_id, transaction_id, cleaned)
        if row is None:
            raise NotFound("Transaction not found")
        return row

    @reports_internal
    def delete(self, owner_id: int, transaction_id: int) -> None:
        if not self.storage.delete_transaction(owner_id, transaction_id):
            raise NotFound("Transaction not found")

    @reports_internal
    def stats(self, owner_id: int) -> dict[str, Any]:
        return compute_stats(self.storage.list_transactions(owner_id))


class BudgetService:
    def __init__(self, storage: Storage):
        self.storage = storage

    @reports_internal
    def list(self, owner_id: int) -> Sequence[BudgetRead]:
        return self.storage.list_budgets(owner_id)

    @reports_internal
    def create(
        self,
        owner_id: int,
        category: Any,
        amount: Any,
        period: Optional[str] = DEFAULT_PERIOD,
    ) -> BudgetRead:
        """Create the budget, or replace the amount of the existing one for
        the same (category, period)."""
        if category is None or amount is None:
            raise InvalidInput("Category and amount are required")
        category = _require_text(category, "Category and amount are required")
        amount = _money_or_400(amount)
        period = (period or "").strip() or DEFAULT_PERIOD
        return self.storage.upsert_budget(owner_id, category, amount, period)

    @reports_internal
    def update(
        self,
        owner_id: int,
        budget_id: int,
        category: Optional[str] = None,
        amount: Any = None,
        period: Optional[str] = None,
    ) -> BudgetRead:
        changes: dict[str, Any] = {}
        if category is not None:
            changes["category"] = _require_text(category, "Category cannot be empty")
        if amount is not None:
            changes["amount"] = _money_or_400(amount)
        if period is not None:
            changes["period"] = _require_text(period, "Period cannot be empty")

        row = self.storage.update_budget(owner_id, budget_id, changes)
        if row is None:
            raise NotFound("Budget not found")
        return row

    @reports_internal
    def delete(self, owner_id: int, budget_id: int) -> None:
        if not self.storage.delete_budget(owner_id, budget_id):
            raise NotFound("Budget not found")
