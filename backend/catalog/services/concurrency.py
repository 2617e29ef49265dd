# Overview: Row locking and retry helpers shared by the stock and pricing services.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)

# Failures worth another attempt: lock timeouts/deadlocks and Product.version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


class StorageError(RuntimeError):
    """500-level: the database rejected or failed a read or write."""


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a stock or price write is about to change.

    SQLite ignores the clause; there the Product.version_id check raises
    StaleDataError instead, which run_with_retry handles the same way.
    """
    return query.with_for_update()


def run_with_retry(func, *, label: str = "write", attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a read-modify-write unit, retrying it from scratch on RETRYABLE_ERRORS.

    func must re-read everything it changes: the session is rolled back
    before each new attempt. Other exceptions propagate untouched, so
    NotFoundError and ValidationError raised inside func reach the caller
    on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("%s failed after %s attempts: %s", label, attempts, exc)
                raise
            logger.warning("Retrying %s after concurrency conflict (attempt %s): %s", label, attempt, exc)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
