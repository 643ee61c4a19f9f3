# backend/storepos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar days (receipt numbers, daily summary) are evaluated in this zone
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "UTC")

    LOW_STOCK_THRESHOLD = 5

    # Bounded wait for stock row locks before a posting is reported as retryable
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.05"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = 24
    SESSION_IDLE_TIMEOUT_HOURS = 2

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
