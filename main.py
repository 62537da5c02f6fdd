"""Main FastAPI application for MoneyBuddy, the personal finance tracker."""
import logging
import time
import datetime as dt
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel import SQLModel, create_engine, Session

from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import OperationalError

from auth import create_access_token, decode_access_token
from config import (
    APP_NAME,
    APP_VERSION,
    DATABASE_URL,
    LOCAL_STORE_PATH,
    LOG_LEVEL,
    STORAGE_BACKEND,
)
from errors import NotFound, ServiceError, Unauthorized
from schemas import (
    AuthResponse,
    BudgetCreate,
    BudgetRead,
    BudgetUpdate,
    Message,
    ProfileResponse,
    StatsRead,
    TransactionCreate,
    TransactionRead,
    TransactionUpdate,
    UserCreate,
    UserLogin,
    UserRead,
)
from services import BudgetService, TransactionService, UserService
from storage import JsonFileStore, KeyValueStorage, SqlStorage, Storage

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MoneyBuddy API", version=APP_VERSION)
# Prometheus metrics at /metrics
Instrumentator().instrument(app).expose(app)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    connect_args = {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    echo=False,
    pool_pre_ping=True,
)

# Shared by every request when STORAGE_BACKEND=local
local_storage = KeyValueStorage(JsonFileStore(LOCAL_STORE_PATH) if LOCAL_STORE_PATH else None)


# DEPENDENCIES

def get_session():
    """Provide a database session per request."""
    with Session(engine) as session:
        yield session


def get_storage(session: Session = Depends(get_session)) -> Storage:
    """Pick the configured backend for this request."""
    if STORAGE_BACKEND == "local":
        return local_storage
    return SqlStorage(session)


def get_user_service(storage: Storage = Depends(get_storage)) -> UserService:
    return UserService(storage)


def get_transaction_service(storage: Storage = Depends(get_storage)) -> TransactionService:
    return TransactionService(storage)


def get_budget_service(storage: Storage = Depends(get_storage)) -> BudgetService:
    return BudgetService(storage)


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    users: UserService = Depends(get_user_service),
) -> UserRead:
    """Resolve the acting user from a bearer token or reject with 401."""
    credentials_error = Unauthorized("Could not validate credentials")
    if not token:
        raise credentials_error

    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise credentials_error

    try:
        return users.get_by_id(user_id)
    except NotFound:
        raise credentials_error


# ERROR MAPPING

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.detail},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    detail = "Invalid input" + (f": {', '.join(fields)}" if fields else "")
    return JSONResponse(status_code=400, content={"error": "InvalidInput", "detail": detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal", "detail": "Internal server error"},
    )


@app.on_event("startup")
def on_startup() -> None:
    """
    Run once when the app starts:
    - Wait for the database to be ready
    - Create tables
    """
    if STORAGE_BACKEND == "local":
        logger.info("Using key-value storage (%s)", LOCAL_STORE_PATH or "in memory")
        return

    retries = 10
    delay = 2  # seconds
    last_exc: Exception | None = None

    for attempt in range(1, retries + 1):
        try:
            SQLModel.metadata.create_all(engine)
            logger.info("Database ready, tables created.")
            return
        except OperationalError as exc:
            last_exc = exc
            logger.warning(
                "DB not ready yet (attempt %d/%d); waiting %ds...",
                attempt, retries, delay,
            )
            time.sleep(delay)

    logger.error("Giving up connecting to the database.")
    if last_exc:
        raise last_exc
    raise RuntimeError("Database not reachable on startup.")


# HEALTH

@app.get("/")
def root():
    return {"message": "MoneyBuddy API is running. See /health for status."}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "app": APP_NAME,
        "version": APP_VERSION,
        "storage": STORAGE_BACKEND,
    }


# AUTH ENDPOINTS

@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register_user(
    user_in: UserCreate,
    users: UserService = Depends(get_user_service),
):
    """Register a new user and log them in."""
    user = users.register(
        user_in.email, user_in.password, user_in.first_name, user_in.last_name
    )
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return AuthResponse(message="User created successfully", access_token=token, user=user)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(
    user_in: UserLogin,
    users: UserService = Depends(get_user_service),
):
    """Authenticate a user and return a bearer token."""
    user = users.authenticate(user_in.email, user_in.password)
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return AuthResponse(message="Login successful", access_token=token, user=user)


@app.get("/api/auth/profile", response_model=ProfileResponse)
def read_profile(current_user: UserRead = Depends(get_current_user)):
    """Return the current authenticated user."""
    return ProfileResponse(user=current_user)


# TRANSACTION ENDPOINTS

@app.get("/api/transactions", response_model=list[TransactionRead])
def list_transactions(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    current_user: UserRead = Depends(get_current_user),
    transactions: TransactionService = Depends(get_transaction_service),
):
    """List the user's transactions, newest first."""
    # limit/offset arrive as raw strings; bad values fall back to the defaults
    return transactions.list(current_user.id, limit, offset)


@app.get("/api/transactions/stats", response_model=StatsRead)
def transaction_stats(
    current_user: UserRead = Depends(get_current_user),
    transactions: TransactionService = Depends(get_transaction_service),
):
    """Income/expense totals and expense breakdown by category."""
    return transactions.stats(current_user.id)


@app.post("/api/transactions", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    current_user: UserRead = Depends(get_current_user),
    transactions: TransactionService = Depends(get_transaction_service),
):
    return transactions.create(
        current_user.id,
        payload.type,
        payload.amount,
        payload.category,
        payload.description,
        payload.date,
    )


# Only the fields provided in the request are changed, for PUT and PATCH alike.
@app.api_route(
    "/api/transactions/{transaction_id}",
    methods=["PUT", "PATCH"],
    response_model=TransactionRead,
)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    current_user: UserRead = Depends(get_current_user),
    transactions: TransactionService = Depends(get_transaction_service),
):
    changes = payload.model_dump(exclude_unset=True)
    return transactions.update(current_user.id, transaction_id, changes)


@app.delete("/api/transactions/{transaction_id}", response_model=Message)
def delete_transaction(
    transaction_id: int,
    current_user: UserRead = Depends(get_current_user),
    transactions: TransactionService = Depends(get_transaction_service),
):
    transactions.delete(current_user.id, transaction_id)
    return Message(message="Transaction deleted successfully")


# BUDGET ENDPOINTS

@app.get("/api/budgets", response_model=list[BudgetRead])
def list_budgets(
    current_user: UserRead = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    """List the user's budgets ordered by category."""
    return budgets.list(current_user.id)


# Creating an existing (category, period) replaces its amount.
@app.post("/api/budgets", response_model=BudgetRead, status_code=201)
def create_budget(
    payload: BudgetCreate,
    current_user: UserRead = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    return budgets.create(current_user.id, payload.category, payload.amount, payload.period)


@app.api_route(
    "/api/budgets/{budget_id}",
    methods=["PUT", "PATCH"],
    response_model=BudgetRead,
)
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    current_user: UserRead = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    return budgets.update(current_user.id, budget_id, **payload.model_dump(exclude_unset=True))


@app.delete("/api/budgets/{budget_id}", response_model=Message)
def delete_budget(
    budget_id: int,
    current_user: UserRead = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    budgets.delete(current_user.id, budget_id)
    return Message(message="Budget deleted successfully")
