"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from collections_desk.config import settings


def create_db_engine(database_url: str) -> Engine:
    """Build an engine; SQLite (tests, local runs) skips the server pool settings"""
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(database_url, connect_args={"check_same_thread": False})
        _emit_sqlite_begin(sqlite_engine)
        return sqlite_engine

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def _emit_sqlite_begin(sqlite_engine: Engine) -> None:
    """
    Let SQLAlchemy issue BEGIN itself on SQLite.

    pysqlite only starts a transaction before DML, so a SAVEPOINT issued after
    plain SELECTs would open (and its RELEASE would commit) the outer
    transaction. Disabling the driver's handling and emitting BEGIN on every
    transaction start keeps savepoints nested inside the caller's transaction.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on any error"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
