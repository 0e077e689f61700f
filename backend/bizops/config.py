from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bizops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bizops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded wait for every store call. SQLite applies it as the busy timeout.
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))

    # Read-only aggregation is retried on lock/timeout; write workflows never are.
    READ_RETRY_ATTEMPTS = int(os.environ.get("READ_RETRY_ATTEMPTS", "3"))

    # Receivable due dates for non-cash sales
    CREDIT_DUE_DAYS = int(os.environ.get("CREDIT_DUE_DAYS", "30"))
    INSTALLMENT_DUE_DAYS = int(os.environ.get("INSTALLMENT_DUE_DAYS", "7"))

    # One loyalty point per 10 currency units (1000 cents)
    LOYALTY_CENTS_PER_POINT = int(os.environ.get("LOYALTY_CENTS_PER_POINT", "1000"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def get_setting(key: str, default=None):
    """Read a config value from the active app, falling back to Config then default."""
    from flask import current_app, has_app_context

    if has_app_context():
        return current_app.config.get(key, getattr(Config, key, default))
    return getattr(Config, key, default)
