# Overview: Service-layer operations for concurrency; transaction boundaries and retry on lock contention.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


class RetryableContention(Exception):
    """
    A guarded UPDATE matched no row because another transaction changed it
    first. The whole unit of work is rolled back and re-run from fresh reads.
    """
    pass


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the guarded UPDATEs in inventory_service provide the safety.
    """
    return query.with_for_update()


def _configured_attempts() -> int:
    try:
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB unit of work, retrying on storage contention only.

    - OperationalError (locks, deadlocks) and RetryableContention are retried
      after a rollback with exponential backoff. Contention that outlasts
      every attempt surfaces as ConflictError.
    - StaleDataError (document version mismatch) is a lost race: rolled back
      and surfaced as ConflictError, never retried.
    - Anything else is rolled back and re-raised untouched.
    """
    if attempts is None:
        attempts = _configured_attempts()
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except RetryableContention as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError(f"Gave up after {attempts} attempts: {exc}") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except StaleDataError as exc:
            db.session.rollback()
            raise ConflictError(
                "Document was modified by another transaction; re-read and retry"
            ) from exc
        except Exception:
            db.session.rollback()
            raise


def run_in_transaction(func, *, attempts: int | None = None):
    """Run func and commit as one atomic unit, with run_with_retry semantics."""
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts)

