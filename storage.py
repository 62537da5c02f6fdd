"""Persistence backends for users, transactions and budgets.

Both backends implement the same ``Storage`` interface and hand back typed
records from ``schemas``; nothing above this module sees raw rows.

* ``SqlStorage`` works on a SQLModel session (SQLite or PostgreSQL).
* ``KeyValueStorage`` keeps each entity list as JSON under a fixed key in a
  string mapping, the same layout the browser-local fallback uses.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from errors import Conflict
from models import Budget, Transaction, User, UserSettings, utc_now
from schemas import BudgetRead, TransactionRead, UserInDB

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "User already exists with this email"
DUPLICATE_BUDGET = "A budget for this category and period already exists"


class Storage(ABC):
    """Owner-scoped persistence operations used by the services."""

    # users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserInDB]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserInDB]: ...

    @abstractmethod
    def add_user(
        self, email: str, hashed_password: str, first_name: str, last_name: str
    ) -> UserInDB:
        """Insert a user. Raises Conflict if the email is taken."""

    @abstractmethod
    def add_user_settings(self, user_id: int) -> None: ...

    # transactions
    @abstractmethod
    def list_transactions(
        self, user_id: int, limit: Optional[int] = None, offset: int = 0
    ) -> list[TransactionRead]:
        """Newest first: date desc, then created_at desc, then id desc."""

    @abstractmethod
    def add_transaction(self, user_id: int, fields: dict[str, Any]) -> TransactionRead: ...

    @abstractmethod
    def update_transaction(
        self, user_id: int, transaction_id: int, changes: dict[str, Any]
    ) -> Optional[TransactionRead]:
        """Apply changes to an owned row; None if no owned row matches."""

    @abstractmethod
    def delete_transaction(self, user_id: int, transaction_id: int) -> bool: ...

    # budgets
    @abstractmethod
    def list_budgets(self, user_id: int) -> list[BudgetRead]: ...

    @abstractmethod
    def upsert_budget(
        self, user_id: int, category: str, amount: Decimal, period: str
    ) -> BudgetRead:
        """Insert, or replace the amount of the existing (user, category, period) row."""

    @abstractmethod
    def update_budget(
        self, user_id: int, budget_id: int, changes: dict[str, Any]
    ) -> Optional[BudgetRead]:
        """None if no owned row matches; Conflict if the new key is taken."""

    @abstractmethod
    def delete_budget(self, user_id: int, budget_id: int) -> bool: ...


class SqlStorage(Storage):
    """Storage on top of one SQLModel session (one per request)."""

    def __init__(self, session: Session):
        self.session = session

    def _save(self, instance):
        """Persist and refresh an instance in the current session."""
        self.session.add(instance)
        self.session.commit()
        self.session.refresh(instance)
        return instance

    # users

    def get_user(self, user_id: int) -> Optional[UserInDB]:
        user = self.session.get(User, user_id)
        return UserInDB.model_validate(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        user = self.session.exec(select(User).where(User.email == email)).first()
        return UserInDB.model_validate(user) if user else None

    def add_user(self, email, hashed_password, first_name, last_name) -> UserInDB:
        user = User(
            email=email,
            hashed_password=hashed_password,
            first_name=first_name,
            last_name=last_name,
        )
        try:
            self._save(user)
        except IntegrityError:
            self.session.rollback()
            raise Conflict(DUPLICATE_EMAIL)
        return UserInDB.model_validate(user)

    def add_user_settings(self, user_id: int) -> None:
        self._save(UserSettings(user_id=user_id))

    # transactions

    def _owned_transaction(self, user_id: int, transaction_id: int) -> Optional[Transaction]:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def list_transactions(self, user_id, limit=None, offset=0) -> list[TransactionRead]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [TransactionRead.model_validate(row) for row in self.session.exec(stmt).all()]

    def add_transaction(self, user_id, fields) -> TransactionRead:
        row = self._save(Transaction(user_id=user_id, **fields))
        return TransactionRead.model_validate(row)

    def update_transaction(self, user_id, transaction_id, changes) -> Optional[TransactionRead]:
        row = self._owned_transaction(user_id, transaction_id)
        if row is None:
            return None
        for field, value in changes.items():
            setattr(row, field, value)
        return TransactionRead.model_validate(self._save(row))

    def delete_transaction(self, user_id, transaction_id) -> bool:
        row = self._owned_transaction(user_id, transaction_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.commit()
        return True

    # budgets

    def _owned_budget(self, user_id: int, budget_id: int) -> Optional[Budget]:
        stmt = select(Budget).where(Budget.id == budget_id, Budget.user_id == user_id)
        return self.session.exec(stmt).first()

    def _budget_by_key(self, user_id: int, category: str, period: str) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == user_id,
            Budget.category == category,
            Budget.period == period,
        )
        return self.session.exec(stmt).first()

    def list_budgets(self, user_id) -> list[BudgetRead]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id)
            .order_by(Budget.category, Budget.period, Budget.id)
        )
        return [BudgetRead.model_validate(row) for row in self.session.exec(stmt).all()]

    def upsert_budget(self, user_id, category, amount, period) -> BudgetRead:
        row = self._budget_by_key(user_id, category, period)
        if row is None:
            try:
                row = self._save(
                    Budget(user_id=user_id, category=category, amount=amount, period=period)
                )
                return BudgetRead.model_validate(row)
            except IntegrityError:
                # A concurrent writer inserted the same key first; update theirs.
                self.session.rollback()
                logger.info(
                    "Budget (%s, %s, %s) inserted concurrently, updating it",
                    user_id, category, period,
                )
                row = self._budget_by_key(user_id, category, period)
                if row is None:
                    raise
        row.amount = amount
        return BudgetRead.model_validate(self._save(row))

    def update_budget(self, user_id, budget_id, changes) -> Optional[BudgetRead]:
        row = self._owned_budget(user_id, budget_id)
        if row is None:
            return None
        for field, value in changes.items():
            setattr(row, field, value)
        try:
            self._save(row)
        except IntegrityError:
            self.session.rollback()
            raise Conflict(DUPLICATE_BUDGET)
        return BudgetRead.model_validate(row)

    def delete_budget(self, user_id, budget_id) -> bool:
        row = self._owned_budget(user_id, budget_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.commit()
        return True


class JsonFileStore(MutableMapping):
    """String key-value mapping persisted as one JSON object on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._data: dict[str, str] = {}
        if self.path.exists():
            self._data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            logger.info("Loaded %d keys from %s", len(self._data), self.path)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data), encoding="utf-8")

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


USERS_KEY = "moneybuddy-users"
USER_SETTINGS_KEY = "moneybuddy-user-settings"
TRANSACTIONS_KEY = "moneybuddy-transactions"
BUDGETS_KEY = "moneybuddy-budgets"
SEQUENCES_KEY = "moneybuddy-sequences"


class KeyValueStorage(Storage):
    """Storage over a string mapping holding JSON lists of records.

    Every read-modify-write runs under the instance lock, so one instance can
    be shared by concurrent requests.
    """

    def __init__(self, store: Optional[MutableMapping] = None):
        self.store = store if store is not None else {}
        self._lock = threading.RLock()

    def _load(self, key: str) -> list[dict[str, Any]]:
        raw = self.store.get(key)
        return json.loads(raw) if raw else []

    def _dump(self, key: str, rows: list[dict[str, Any]]) -> None:
        self.store[key] = json.dumps(rows)

    def _next_id(self, key: str) -> int:
        raw = self.store.get(SEQUENCES_KEY)
        sequences = json.loads(raw) if raw else {}
        sequences[key] = sequences.get(key, 0) + 1
        self.store[SEQUENCES_KEY] = json.dumps(sequences)
        return sequences[key]

    # users

    def get_user(self, user_id: int) -> Optional[UserInDB]:
        for row in self._load(USERS_KEY):
            if row["id"] == user_id:
                return UserInDB.model_validate(row)
        return None

    def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        for row in self._load(USERS_KEY):
            if row["email"] == email:
                return UserInDB.model_validate(row)
        return None

    def add_user(self, email, hashed_password, first_name, last_name) -> UserInDB:
        with self._lock:
            users = self._load(USERS_KEY)
            if any(row["email"] == email for row in users):
                raise Conflict(DUPLICATE_EMAIL)
            user = UserInDB(
                id=self._next_id(USERS_KEY),
                email=email,
                first_name=first_name,
                last_name=last_name,
                hashed_password=hashed_password,
                created_at=utc_now(),
            )
            users.append(user.model_dump(mode="json"))
            self._dump(USERS_KEY, users)
        return user

    def add_user_settings(self, user_id: int) -> None:
        with self._lock:
            settings = self._load(USER_SETTINGS_KEY)
            settings.append({"user_id": user_id, "created_at": utc_now().isoformat()})
            self._dump(USER_SETTINGS_KEY, settings)

    # transactions

    def _owned(self, key: str, user_id: int, record_cls) -> list:
        return [record_cls.model_validate(row) for row in self._load(key) if row["user_id"] == user_id]

    def list_transactions(self, user_id, limit=None, offset=0) -> list[TransactionRead]:
        rows = self._owned(TRANSACTIONS_KEY, user_id, TransactionRead)
        rows.sort(key=lambda t: (t.date, t.created_at, t.id), reverse=True)
        end = None if limit is None else offset + limit
        return rows[offset:end]

    def add_transaction(self, user_id, fields) -> TransactionRead:
        with self._lock:
            rows = self._load(TRANSACTIONS_KEY)
            record = TransactionRead(
                id=self._next_id(TRANSACTIONS_KEY),
                user_id=user_id,
                created_at=utc_now(),
                **fields,
            )
            rows.append(record.model_dump(mode="json"))
            self._dump(TRANSACTIONS_KEY, rows)
        return record

    def update_transaction(self, user_id, transaction_id, changes) -> Optional[TransactionRead]:
        with self._lock:
            rows = self._load(TRANSACTIONS_KEY)
            for index, row in enumerate(rows):
                if row["id"] == transaction_id and row["user_id"] == user_id:
                    record = TransactionRead.model_validate(row).model_copy(update=changes)
                    rows[index] = record.model_dump(mode="json")
                    self._dump(TRANSACTIONS_KEY, rows)
                    return record
        return None

    def delete_transaction(self, user_id, transaction_id) -> bool:
        return self._delete(TRANSACTIONS_KEY, user_id, transaction_id)

    def _delete(self, key: str, user_id: int, record_id: int) -> bool:
        with self._lock:
            rows = self._load(key)
            kept = [r for r in rows if not (r["id"] == record_id and r["user_id"] == user_id)]
            if len(kept) == len(rows):
                return False
            self._dump(key, kept)
        return True

    # budgets

    def list_budgets(self, user_id) -> list[BudgetRead]:
        rows = self._owned(BUDGETS_KEY, user_id, BudgetRead)
        rows.sort(key=lambda b: (b.category, b.period, b.id))
        return rows

    def upsert_budget(self, user_id, category, amount, period) -> BudgetRead:
        with self._lock:
            rows = self._load(BUDGETS_KEY)
            for index, row in enumerate(rows):
                if (row["user_id"], row["category"], row["period"]) == (user_id, category, period):
                    record = BudgetRead.model_validate(row).model_copy(update={"amount": amount})
                    rows[index] = record.model_dump(mode="json")
                    break
            else:
                record = BudgetRead(
                    id=self._next_id(BUDGETS_KEY),
                    user_id=user_id,
                    category=category,
                    amount=amount,
                    period=period,
                    created_at=utc_now(),
                )
                rows.append(record.model_dump(mode="json"))
            self._dump(BUDGETS_KEY, rows)
        return record

    def update_budget(self, user_id, budget_id, changes) -> Optional[BudgetRead]:
        with self._lock:
            rows = self._load(BUDGETS_KEY)
            for index, row in enumerate(rows):
                if row["id"] == budget_id and row["user_id"] == user_id:
                    break
            else:
                return None

            record = BudgetRead.model_validate(rows[index]).model_copy(update=changes)
            key = (user_id, record.category, record.period)
            if any(
                (r["user_id"], r["category"], r["period"]) == key and r["id"] != budget_id
                for r in rows
            ):
                raise Conflict(DUPLICATE_BUDGET)

            rows[index] = record.model_dump(mode="json")
            self._dump(BUDGETS_KEY, rows)
        return record

    def delete_budget(self, user_id, budget_id) -> bool:
        return self._delete(BUDGETS_KEY, user_id, budget_id)
