# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator

from alembic import command
from alembic.config import Config
from fastapi import HTTPException
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, SLOT_LOCK_TIMEOUT_MS
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import BookingError

logger = logging.getLogger(__name__)

# backend/alembic, next to backend/src
ALEMBIC_DIR = Path(__file__).resolve().parents[2] / "alembic"


def configure_sqlite_engine(engine: Engine, busy_timeout_ms: int = SLOT_LOCK_TIMEOUT_MS) -> Engine:
    """
    Make SQLite transactions take the write lock up front.

    pysqlite defers BEGIN until the first write, which lets two transactions
    both read a slot as open before either writes. Emitting BEGIN IMMEDIATE
    ourselves serializes writers for the whole database, and the busy timeout
    bounds how long a writer waits before failing with "database is locked".

    The timeout is set again at the start of every transaction, from the
    connection's "busy_timeout_ms" execution option when one is given, so a
    caller can bound a single transaction more tightly than the engine
    default.

    Args:
        engine: SQLite engine to configure
        busy_timeout_ms: Default wait for the write lock

    Returns:
        The same engine, for chaining
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore
        # Disable pysqlite's own transaction handling
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore
        timeout_ms = conn.get_execution_options().get("busy_timeout_ms", busy_timeout_ms)
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {int(timeout_ms)}")
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(database_url: str, **kwargs: Any) -> Engine:
    """
    Create an engine for the given URL with the settings this service relies on.

    SQLite engines are configured for cross-thread use and immediate
    transactions; every other backend gets the pooled defaults.
    """
    if database_url.startswith("sqlite"):
        connect_args: Dict[str, Any] = {"check_same_thread": False}
        connect_args.update(kwargs.pop("connect_args", {}))
        sqlite_engine = create_engine(database_url, connect_args=connect_args, future=True, **kwargs)
        return configure_sqlite_engine(sqlite_engine)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=DB_POOL_RECYCLE_SECONDS,
        echo=False,          # Disable SQL logging
        future=True,         # Use SQLAlchemy 2.0 style
        **kwargs,
    )


engine = build_engine(DATABASE_URL)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)


# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# SQLAlchemy event listeners to automatically set created_at and updated_at
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    now = utc_now()
    for column_name in ("created_at", "updated_at"):
        if hasattr(mapper, "columns") and column_name in mapper.columns:  # type: ignore
            if getattr(target, column_name, None) is None:  # type: ignore
                setattr(target, column_name, now)  # type: ignore


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    if hasattr(mapper, "columns") and "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())  # type: ignore


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Handles cleanup even if an exception occurs during request processing.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except (HTTPException, BookingError):
        # Expected business outcomes, not errors
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI dependency injection.

    Useful for scripts, such as the queue integrity check, that run outside
    a request.

    Yields:
        Session: SQLAlchemy database session

    Example:
        ```python
        with get_db_context() as db:
            appointment = db.get(Appointment, appointment_id)
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except (HTTPException, BookingError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()


def get_alembic_config(database_url: str = DATABASE_URL) -> Config:
    """
    Alembic configuration for the migrations in backend/alembic.

    The URL overrides whatever alembic.ini holds, and env.py leaves logging
    alone so callers keep their own handlers.
    """
    alembic_cfg = Config(str(ALEMBIC_DIR.parent / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    # ConfigParser interpolation treats % specially (URL-encoded passwords)
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    alembic_cfg.attributes["configure_logger"] = False
    return alembic_cfg


def upgrade_database(database_url: str = DATABASE_URL, revision: str = "head") -> None:
    """
    Bring the schema up to the given migration revision.

    The schema is owned by the Alembic migrations, not by Base.metadata, so
    partial indexes and check constraints are created exactly as migrated.
    """
    try:
        command.upgrade(get_alembic_config(database_url), revision)
        logger.info(f"Database upgraded to {revision}")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to upgrade database: {e}")
        raise


def drop_tables(bind: Engine = engine) -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    Also drops the alembic_version table so the next upgrade starts from
    the first revision.

    WARNING: This will permanently delete all data in the tables!
    """
    import models  # noqa: F401
    try:
        Base.metadata.drop_all(bind=bind)
        with bind.begin() as conn:
            conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
