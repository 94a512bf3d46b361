# Overview: Locking and conflict translation for units of work.

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

# Driver messages that mean "another writer holds the row or database".
_LOCK_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock timeout", "lock wait timeout")

# Unique keys two concurrent writers may both try to create.
_RACE_KEYS = ("uq_inventory_product_store", "inventory_records.product_id, inventory_records.store_id")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    begin_write() covers SQLite by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write(session: Session) -> None:
    """
    Serialize writers on SQLite.

    pysqlite defers BEGIN until the first DML statement, so two units could both
    read the same quantity before either writes. BEGIN IMMEDIATE takes the
    reserved lock before any read. Skipped when the connection is already inside
    a transaction.
    """
    bind = session.get_bind()
    if bind.dialect.name != "sqlite":
        return
    raw = session.connection().connection.driver_connection
    if not raw.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


def as_conflict(exc: Exception) -> ConcurrencyConflictError:
    """Translate a driver/ORM concurrency failure into the domain error."""
    logger.warning("Concurrent write conflict: %s", exc)
    return ConcurrencyConflictError(
        "The record was modified by a concurrent operation; resubmit the request",
        {"cause": type(exc).__name__},
    )


def is_conflict(exc: BaseException) -> bool:
    """
    True when exc means another writer got there first.

    The unit is rolled back and the caller decides whether to resubmit;
    nothing here retries.
    """
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _LOCK_MARKERS)
    if isinstance(exc, IntegrityError):
        message = str(exc.orig if exc.orig is not None else exc)
        return any(key in message for key in _RACE_KEYS)
    return False
