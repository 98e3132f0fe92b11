# backend/retail_ledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retail_ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retail_ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Levels applied to stock records created lazily or by initialize-in-all-stores
    DEFAULT_MIN_STOCK_LEVEL = _env_int("DEFAULT_MIN_STOCK_LEVEL", 5)
    DEFAULT_MAX_STOCK_LEVEL = _env_int("DEFAULT_MAX_STOCK_LEVEL", 100)

    # Retry policy for lock/optimistic-version conflicts
    STOCK_RETRY_ATTEMPTS = _env_int("STOCK_RETRY_ATTEMPTS", 3)
    STOCK_RETRY_BACKOFF_SECONDS = float(os.environ.get("STOCK_RETRY_BACKOFF_SECONDS", "0.1"))
