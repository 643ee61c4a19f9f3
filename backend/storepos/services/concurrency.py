# Overview: Transaction, locking, and retry helpers shared by the write services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict, RetryableError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the unit of work in a mode that serializes competing writers.

    - sqlite: BEGIN IMMEDIATE takes the write lock before any read, so a
      read-check-then-decrement can't interleave with another checkout.
      The busy timeout bounds how long we wait for it.
    - postgresql: bound lock waits so contention surfaces as
      OperationalError (then RetryableError) instead of blocking forever.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config["LOCK_TIMEOUT_SECONDS"] * 1000)
        db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work, rolling back on any failure.

    Retries on OperationalError (deadlocks, lock timeouts), StaleDataError
    (optimistic locking conflicts) and ConcurrencyConflict (unique-key
    collisions such as receipt numbers). When retries are exhausted the
    failure is surfaced as RetryableError; every other exception propagates
    unchanged after the rollback.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("RETRY_BACKOFF_BASE", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrencyConflict) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise RetryableError(
                    "The operation could not complete because of concurrent activity; retry the request",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.warning("Retrying after concurrency failure (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
