import datetime as dt
import pytest
from pydantic import ValidationError
from schemas import BudgetCreate, TransactionCreate, TransactionUpdate, UserCreate, UserInDB


def test_transaction_create_trims_category_and_description():
    payload = TransactionCreate(
        type="expense",
        amount="5",
        category="  taxi  ",
        description="  airport  ",
        date="2025-01-01",  # string on purpose, validator will handle
    )
    assert payload.category == "taxi"
    assert payload.description == "airport"
    assert payload.date == dt.date(2025, 1, 1)


def test_transaction_create_too_long_category_rejected():
    with pytest.raises(ValidationError):
        TransactionCreate(type="expense", amount=1, category="X" * 300, date="2025-01-01")


def test_transaction_update_parse_date_from_valid_string():
    obj = TransactionUpdate(**{"date": "2025-01-15"})

    assert isinstance(obj.date, dt.date)
    assert obj.date == dt.date(2025, 1, 15)


def test_transaction_update_rejects_invalid_date_format():
    with pytest.raises(ValidationError) as exc_info:
        TransactionUpdate(**{"date": "03/02/2025"})

    assert "Invalid date format. Expected YYYY-MM-DD." in str(exc_info.value)


def test_transaction_update_only_tracks_sent_fields():
    obj = TransactionUpdate(amount="12.30")
    assert obj.model_dump(exclude_unset=True) == {"amount": obj.amount}


def test_budget_create_trims_period():
    assert BudgetCreate(category="food", amount=1, period=" weekly ").period == "weekly"


def test_user_create_accepts_camel_case_names():
    user = UserCreate(email="a@example.com", password="x", firstName="Ada", lastName="Lovelace")
    assert user.first_name == "Ada"
    assert user.last_name == "Lovelace"


def test_user_in_db_public_drops_hash():
    user = UserInDB(id=1, email="a@example.com", hashed_password="$argon2id$...")
    public = user.public()
    assert public.id == 1
    assert "hashed_password" not in public.model_dump()
