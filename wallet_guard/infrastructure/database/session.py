"""Database session management, connection pooling and the atomic unit of work"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from wallet_guard.config import settings
from wallet_guard.domain.exceptions import ConflictError, TransactionTimeoutError

# PostgreSQL SQLSTATE codes
LOCK_NOT_AVAILABLE = "55P03"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


def _configure_sqlite(engine: Engine) -> None:
    """
    Make SQLite take the write lock when a transaction begins.

    pysqlite defers BEGIN until the first write, which lets two readers
    both pass a balance check before either writes. BEGIN IMMEDIATE
    serializes writers for the whole unit of work.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, lock_timeout_ms: int | None = None) -> Engine:
    """Create an engine; SQLite gets a busy timeout in place of lock_timeout"""
    timeout_ms = lock_timeout_ms or settings.lock_timeout_ms
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout_ms / 1000},
        )
        _configure_sqlite(engine)
        return engine

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _translate_operational_error(exc: OperationalError) -> Exception:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode == LOCK_NOT_AVAILABLE:
        return TransactionTimeoutError("Timed out waiting for the account lock")
    if pgcode in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return ConflictError("Concurrent update detected; retry the operation")
    if "database is locked" in str(exc.orig):
        return TransactionTimeoutError("Timed out waiting for the database lock")
    return exc


@contextmanager
def atomic(db: Session, lock_timeout_ms: int | None = None) -> Iterator[Session]:
    """
    Run a block as one unit of work.

    Commits when the block finishes, rolls back everything written in the
    block on any exception. Lock waits are bounded; a timed out or
    conflicting unit of work has made no writes and can be retried.
    """
    if db.in_transaction():
        # Start from a fresh snapshot so earlier reads cannot leak in
        db.rollback()

    timeout_ms = lock_timeout_ms or settings.lock_timeout_ms
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = {int(timeout_ms)}"))
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        translated = _translate_operational_error(e)
        if translated is e:
            raise
        logging.warning(f"Unit of work aborted: {translated}")
        raise translated from e
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Concurrent write to the same record; retry the operation") from e
    except BaseException:
        db.rollback()
        raise
