# Overview: Retry and row-locking helpers for order placement and order edits.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

# Lock timeouts/deadlocks and version_id mismatches on Product/Order rows
RETRYABLE_ERRORS = (OperationalError, StaleDataError)
ORDER_WRITE_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 0.05


def locked(query):
    """SELECT ... FOR UPDATE where the backend supports it (SQLite ignores the clause)."""
    return query.with_for_update()


def retry_write(operation, *, label: str, attempts: int = ORDER_WRITE_ATTEMPTS, delay: float = RETRY_DELAY_SECONDS):
    """
    Run `operation`, retrying when a concurrent writer wins the race.

    Each failed attempt rolls the session back so the next one re-reads
    stock levels, discount usage and the order sequence. The last failure
    propagates.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error("%s failed after %s attempts: %s", label, attempts, exc)
                raise
            current_app.logger.warning("%s hit a concurrent write (attempt %s): %s", label, attempt, exc)
            time.sleep(delay * attempt)
            attempt += 1
