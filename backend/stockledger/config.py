# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///stockledger.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Access guard
    SESSION_TIMEOUT_MINUTES = _env_int("SESSION_TIMEOUT_MINUTES", 30)
    MAX_FAILED_ATTEMPTS = _env_int("MAX_FAILED_ATTEMPTS", 3)
    LOCKOUT_MINUTES = _env_int("LOCKOUT_MINUTES", 15)
    ACTIVITY_DEBOUNCE_SECONDS = _env_int("ACTIVITY_DEBOUNCE_SECONDS", 30)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Catalog
    SEED_SAMPLE_DATA = _env_bool("SEED_SAMPLE_DATA", False)

    SECURITY_LOG_RETENTION_DAYS = _env_int("SECURITY_LOG_RETENTION_DAYS", 30)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
