# Overview: Locking and retry helpers shared by every service that writes inventory or documents.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Lost updates on SQLite are still caught by version_id_col checks.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, rolling back and retrying on concurrency failures.

    func must be safe to re-run from scratch: it re-reads everything it
    needs and commits at most once. Domain errors propagate on the first
    attempt; only OperationalError (locks, deadlocks) and StaleDataError
    (version mismatch) are retried, with exponential backoff.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent write conflict (%s), retry %d/%d",
                type(exc).__name__,
                attempt + 1,
                attempts - 1,
            )
            time.sleep(backoff_base * (2 ** attempt))
