import os
import sys
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

# Never touch a real database from the test suite
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_BACKEND"] = "sql"

ROOT_DIR = os.path.dirname(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from main import app, get_session, get_storage  # noqa: E402
from storage import KeyValueStorage  # noqa: E402


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
DBSession = Session


@pytest.fixture
def db_session():
    """A session on a fresh in-memory database."""
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    with DBSession(test_engine) as session:
        yield session


@pytest.fixture(params=["sql", "local"])
def client(request):
    """Return a TestClient on a fresh store, once per storage backend."""
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    app.dependency_overrides.clear()

    def override_get_session():
        with DBSession(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    if request.param == "local":
        kv_storage = KeyValueStorage()
        app.dependency_overrides[get_storage] = lambda: kv_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_helpers(client):
    """
    Common auth utilities shared across test modules.
    Provides register/login helpers and a token helper.
    """

    def register_user(email: str, password: str, **extra):
        return client.post(
            "/api/auth/register",
            json={"email": email, "password": password, **extra},
        )

    def login_user(email: str, password: str):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    def get_token(email: str, password: str) -> str:
        res_reg = register_user(email, password)
        assert res_reg.status_code in (201, 400)
        res_login = login_user(email, password)
        assert res_login.status_code == 200
        data = res_login.json()
        assert "access_token" in data
        return data["access_token"]

    def auth_headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    def headers_for(email: str, password: str = "Password123!") -> dict:
        return auth_headers(get_token(email, password))

    return {
        "register_user": register_user,
        "login_user": login_user,
        "get_token": get_token,
        "auth_headers": auth_headers,
        "headers_for": headers_for,
    }
