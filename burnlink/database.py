from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import SQLModel, Session, create_engine

from .config import settings
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith("postgresql")


def _ensure_sqlite_dir(database_url: str) -> None:
    """
    Ensure the parent folder exists for SQLite file-based DB URLs like:
      sqlite:///./data/burnlink.sqlite
      sqlite:////absolute/path/to/db.sqlite
    """
    if not database_url.startswith("sqlite:///"):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    Pragmas that make SQLite behave under concurrent request handlers.
    Writers queue on busy_timeout instead of failing with 'database is locked'.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA busy_timeout=5000;")  # before WAL switch, which itself needs the lock
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


def _postgres_session_settings(engine: Engine) -> None:
    """
    Per-connection settings for Postgres: no statement may run unbounded.
    """

    @event.listens_for(engine, "connect")
    def _set_postgres_settings(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("SET statement_timeout = 30000;")
        cursor.close()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create and return an SQLAlchemy engine.

    - Uses settings.resolved_database_url unless a URL is passed in
    - SQLite gets pragmas + check_same_thread=False for threaded servers
    - Postgres works by just changing DATABASE_URL
    """
    database_url = database_url or settings.resolved_database_url

    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)

    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    if _is_postgres(database_url):
        _postgres_session_settings(engine)

    return engine


_engine: Optional[Engine] = None


def default_engine() -> Engine:
    """
    Single, shared engine for the app process (built on first use).
    """
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


def register_models() -> None:
    """
    Central place to import ALL models so SQLModel registers them.
    """
    from .models.drop import Drop  # noqa: F401
    from .models.view import View  # noqa: F401
    from .models.user import User  # noqa: F401
    from .models.user_session import UserSession  # noqa: F401
    from .models.invite import Invite  # noqa: F401


def init_db(engine: Optional[Engine] = None, create_tables: bool = True) -> None:
    """
    Register models, then create missing tables.
    Non-destructive: create_all will not drop or alter existing tables.
    """
    register_models()
    if create_tables:
        SQLModel.metadata.create_all(engine or default_engine())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency:
        def route(db: Session = Depends(get_db)):
            ...
    Ensures the session is closed after each request.
    """
    with Session(default_engine()) as session:
        yield session


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    One logical state transition: commit on success, roll back on any error.

    Integrity violations propagate unchanged (callers map them to business
    outcomes). Any other driver error becomes StoreUnavailable.

    Usage:
        with transaction(db):
            db.exec(update(...))
            db.add(...)
    """
    try:
        yield session
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except DBAPIError as exc:
        session.rollback()
        logger.error("Store failure, transaction rolled back: %s", exc.__class__.__name__)
        raise StoreUnavailable("store unavailable") from exc
    except Exception:
        session.rollback()
        raise
