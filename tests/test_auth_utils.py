# tests/test_auth_utils.py
from datetime import timedelta, datetime, timezone

import pytest
from jose import JWTError, jwt

from auth import (
    get_password_hash,
    verify_password,
    create_access_token,
    decode_access_token,
)
from config import SECRET_KEY, ALGORITHM


def test_password_hash_and_verify_roundtrip():
    plain = "MySecureP@ssw0rd"

    hashed = get_password_hash(plain)

    assert hashed != plain  # definitely not storing plaintext
    assert verify_password(plain, hashed) is True


def test_password_hash_is_salted():
    assert get_password_hash("same-password") != get_password_hash("same-password")


def test_verify_password_wrong_password():
    hashed = get_password_hash("correct-horse-battery-staple")

    assert verify_password("wrong-password", hashed) is False


def test_password_too_long_rejected():
    with pytest.raises(ValueError):
        get_password_hash("x" * 257)


def test_create_access_token_contains_sub_and_exp():
    token = create_access_token(data={"sub": "42"}, expires_delta=timedelta(minutes=5))

    assert isinstance(token, str)
    decoded = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

    assert decoded["sub"] == "42"
    assert "exp" in decoded

    # exp should be in the future (within ~10 minutes)
    exp = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc)
    now = datetime.now(timezone.utc)
    assert now < exp < now + timedelta(minutes=10)


def test_decode_access_token_roundtrip():
    token = create_access_token({"sub": "7", "email": "a@example.com"})
    payload = decode_access_token(token)
    assert payload["sub"] == "7"
    assert payload["email"] == "a@example.com"


def test_decode_access_token_rejects_expired():
    token = create_access_token({"sub": "7"}, expires_delta=timedelta(seconds=-10))
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_decode_access_token_rejects_other_secret():
    token = jwt.encode({"sub": "7"}, "some-other-secret", algorithm=ALGORITHM)
    with pytest.raises(JWTError):
        decode_access_token(token)
