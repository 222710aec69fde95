# Overview: Service-layer helpers for locking, retries and versioned commits.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StaleRecordError, StructuralIntegrityError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Only OperationalError (deadlocks, lock timeouts) is retried. func must
    do its own reads and commit, since the session is rolled back between
    attempts. Domain errors propagate on the first attempt.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Transient database error, retrying",
                extra={"attempt": attempt + 1, "attempts": attempts},
            )
            time.sleep(backoff_base * (2 ** attempt))


STALE_MESSAGE = "the record was changed by another request; reload and retry"


@contextmanager
def versioned_write(message: str | None = None, *, error_cls=StaleRecordError):
    """
    Wrap the whole write path of an operation on versioned rows.

    Versioned rows (version_id_col) are updated with
    UPDATE ... WHERE version_id = :seen, so a concurrent writer that got
    there first makes the statement match zero rows. That can surface at an
    explicit flush, an autoflush before a query, or the commit; all three
    roll the session back and raise error_cls.
    """
    try:
        yield
    except StaleDataError:
        db.session.rollback()
        raise error_cls(message or STALE_MESSAGE)


def commit_versioned(message: str | None = None, *, error_cls=StaleRecordError) -> None:
    with versioned_write(message, error_cls=error_cls):
        db.session.commit()


@contextmanager
def unique_guard(index_name: str, columns: str, message: str, *, error_cls=StructuralIntegrityError):
    """
    Turn a violation of one named unique index into a domain error.

    PostgreSQL reports the index name, SQLite only the "table.column" list,
    so either must match exactly. Any other IntegrityError propagates unchanged.
    """
    try:
        yield
    except IntegrityError as e:
        detail = str(e.orig)
        failed_columns = detail.split("constraint failed:", 1)[-1].strip()
        if index_name not in detail and failed_columns != columns:
            raise
        db.session.rollback()
        raise error_cls(message)
