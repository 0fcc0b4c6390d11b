# backend/batchpos/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file next to the instance by default; any SQLAlchemy URL works
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///batchpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Register defaults (the tax rate can be changed per POS session)
    POS_TAX_RATE_PERCENT = os.environ.get("POS_TAX_RATE_PERCENT", "8")
    POS_DEFAULT_PAYMENT_METHOD = os.environ.get("POS_DEFAULT_PAYMENT_METHOD", "cash")
    POS_PAYMENT_METHODS = _csv(os.environ.get("POS_PAYMENT_METHODS", "cash,card,e-wallet"))

    # "overwrite": read the row, write max(0, value - qty) (no concurrency guard)
    # "conditional": single UPDATE ... WHERE value >= qty
    POS_STOCK_WRITE_MODE = os.environ.get("POS_STOCK_WRITE_MODE", "overwrite")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Register sessions unused this long are dropped; 0 disables eviction
    POS_SESSION_IDLE_SECONDS = int(os.environ.get("POS_SESSION_IDLE_SECONDS", "1800"))
    POS_MAX_SESSIONS = int(os.environ.get("POS_MAX_SESSIONS", "200"))
