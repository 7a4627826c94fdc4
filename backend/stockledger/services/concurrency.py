# Overview: Commit helpers for the inventory store; retry transient SQLite lock errors.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on transient lock failures.

    Retries on OperationalError ("database is locked" under SQLite) and
    StaleDataError (a product row changed under its version_id). The session
    is rolled back before each retry, so func must re-apply its changes.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_with_retry(apply, *, attempts: int = 3, backoff_base: float = 0.05):
    """Apply staged changes and commit, retrying the whole unit on lock errors."""
    def _op():
        result = apply()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
