# Overview: Transaction helpers shared by every mutating service operation.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientStorageError
from ..extensions import db


# Unique guards whose violation means "a concurrent writer got there first";
# re-running the whole operation resolves them.
# Constraint names match PostgreSQL messages; column lists match SQLite's.
_RETRYABLE_UNIQUE_MARKERS = (
    "uq_saleable_prices_product_rank",
    "saleable_prices.product_id, saleable_prices.order_rank",
    "uq_branch_balances_branch",
    "branch_balances.branch_id",
    "uq_expiry_alerts_batch",
    "expiry_alerts.batch_id",
    "uq_notification_recipient",
    "notification_recipients.notification_id, notification_recipients.user_id",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there begin_write() holds the
    database write lock instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the current unit of work as a writer.

    On SQLite this issues BEGIN IMMEDIATE so the checks that follow and the
    writes they guard run under one write lock. Other dialects rely on
    lock_for_update() row locks.
    """
    conn = db.session.connection()
    if conn.dialect.name != "sqlite":
        return
    dbapi_conn = conn.connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _is_retryable_integrity_error(exc: IntegrityError) -> bool:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in text for marker in _RETRYABLE_UNIQUE_MARKERS)


def run_atomic(func):
    """
    Run func() as one unit of work: commit on success, roll back everything
    on any failure.

    Lock/busy errors and optimistic version conflicts are re-raised as
    TransientStorageError; every other exception propagates unchanged.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise TransientStorageError("Storage conflict, retry the operation") from exc
    except IntegrityError as exc:
        db.session.rollback()
        if _is_retryable_integrity_error(exc):
            raise TransientStorageError("Concurrent update conflict, retry the operation") from exc
        raise
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Re-run an atomic operation from scratch on transient storage failures.

    Caller-side only (CLI, scheduler entry points); core operations never
    retry themselves.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (TransientStorageError, OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
