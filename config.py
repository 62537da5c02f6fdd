"""Runtime configuration read from the environment (and an optional .env file)."""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _normalize_database_url(url: str) -> str:
    # Heroku/Render hand out postgres://, SQLAlchemy only knows postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = _normalize_database_url(
    os.getenv("DATABASE_URL", "sqlite:///./moneybuddy.db")
)

# "sql" (default) or "local" for the JSON key-value store
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sql").strip().lower()
LOCAL_STORE_PATH = os.getenv("LOCAL_STORE_PATH", "")

SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_TO_SOMETHING_RANDOM_AND_SECRET")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

APP_NAME = "moneybuddy"
APP_VERSION = "0.1.0"
