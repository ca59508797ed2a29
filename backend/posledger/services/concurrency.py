# Overview: Transaction boundary and row-locking helpers shared by write services.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db

_DEPTH_KEY = "posledger.atomic_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the write lock is taken
    up front by begin_immediate() and version_id checks catch the rest.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    On SQLite, take the database write lock before the first read so that a
    check-then-update sequence cannot interleave with another writer.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic():
    """
    Run a block as one database transaction.

    Commits on success. On any exception the session is rolled back and the
    exception re-raised; nothing is retried. Nested blocks join the outermost
    transaction and never commit on their own.
    """
    depth = db.session.info.get(_DEPTH_KEY, 0)
    if depth:
        db.session.info[_DEPTH_KEY] = depth + 1
        try:
            yield db.session
        finally:
            db.session.info[_DEPTH_KEY] = depth
        return

    db.session.info[_DEPTH_KEY] = 1
    try:
        begin_immediate()
        yield db.session
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified by another transaction; reload and try again") from exc
    except Exception:
        db.session.rollback()
        raise
    finally:
        db.session.info[_DEPTH_KEY] = 0
