# backend/serialpos/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/serialpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///serialpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # PostgreSQL only: server-side statement timeout so a stuck query cannot
    # hold serial reservations or register rows forever.
    DB_STATEMENT_TIMEOUT_MS = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "15000"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Serialized unit reservations
    SERIAL_RESERVATION_TTL_MINUTES = int(os.environ.get("SERIAL_RESERVATION_TTL_MINUTES", "10"))
    RESERVATION_SWEEP_INTERVAL_SECONDS = int(os.environ.get("RESERVATION_SWEEP_INTERVAL_SECONDS", "300"))
    RESERVATION_SWEEP_ENABLED = _env_flag("RESERVATION_SWEEP_ENABLED", True)

    SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "12"))

    # Upper bound for any unit price, in cents
    MAX_PRICE_CENTS = 999_999_999
