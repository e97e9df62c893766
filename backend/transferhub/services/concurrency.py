# Overview: Unit-of-work and retry helpers shared by the transfer services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ReconciliationConflict
from ..extensions import db

# Driver messages for lock waits and serialization failures (SQLite, PostgreSQL, MySQL).
TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "busy",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
    "could not obtain lock",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_transient(exc: Exception) -> bool:
    """True for conflicts worth re-running: version clashes and lock or busy errors."""
    if isinstance(exc, (StaleDataError, ReconciliationConflict)):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in TRANSIENT_MARKERS)
    return False


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute func as one unit of work and commit it.

    Any exception rolls back everything func wrote. Lock and version conflicts
    (lock/busy OperationalError, StaleDataError, ReconciliationConflict) re-run
    func from scratch, up to `attempts` times, then surface as
    ReconciliationConflict. Other OperationalErrors (missing tables, bad SQL)
    propagate unchanged on the first failure.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSFER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSFER_RETRY_BACKOFF", 0.05)

    last_exc = None
    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError, ReconciliationConflict) as exc:
            db.session.rollback()
            if not is_transient(exc):
                raise
            last_exc = exc
            current_app.logger.warning(
                "Concurrent write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    if isinstance(last_exc, ReconciliationConflict):
        raise last_exc
    raise ReconciliationConflict(
        f"Operation could not complete after {attempts} attempts: {last_exc}"
    ) from last_exc
