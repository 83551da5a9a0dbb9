# Overview: Transaction boundary for business operations; row locking and retry on conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db

# Conflicts worth a second attempt with a fresh read
RETRIABLE_ERRORS = (OperationalError, StaleDataError, ConcurrencyConflictError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The conditional UPDATEs in inventory_service are what keep SQLite safe.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run one business operation as one transaction.

    func must re-read everything it needs and commit at the end. Any
    exception rolls the session back, so nothing partial survives.
    Retriable conflicts (lost deduction race, stale version_id, DB lock)
    are retried with a fresh session; everything else propagates at once.
    """
    if attempts is None:
        attempts = current_app.config.get("CONCURRENCY_RETRY_ATTEMPTS", 2)
    if backoff_base is None:
        backoff_base = current_app.config.get("CONCURRENCY_RETRY_BACKOFF", 0.05)
    attempts = max(1, int(attempts))

    for attempt in range(attempts):
        try:
            return func()
        except RETRIABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
