"""Engine and session handling.

``DATABASE_URL`` may be a PostgreSQL URL (Railway, Neon, ...) or a path to a
SQLite file.  When it is unset we default to a file named ``viva_queue.db``
located in the same directory as this module.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from models import Settings

logger = logging.getLogger(__name__)

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_FILENAME = os.path.join(PROJECT_DIR, "viva_queue.db")

DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DB_FILENAME)
DEFAULT_STUDENTS_TO_SHOW = int(os.getenv("DEFAULT_STUDENTS_TO_SHOW", "5"))

_engine: Optional[Engine] = None


def get_database_url(raw: str = DATABASE_URL) -> str:
    """Turn the configured value into a SQLAlchemy URL."""
    if raw.startswith("postgres://"):
        # Heroku/Railway style URLs use the legacy scheme
        return "postgresql+psycopg2://" + raw[len("postgres://"):]
    if raw.startswith("postgresql://"):
        return "postgresql+psycopg2://" + raw[len("postgresql://"):]
    if "://" in raw:
        return raw
    return f"sqlite:///{raw}"


def create_db_engine(url: Optional[str] = None) -> Engine:
    database_url = url or get_database_url()

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        logger.info("Using SQLite database: %s", database_url)
    else:
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            connect_args={"connect_timeout": 10},
        )
        logger.info("Using PostgreSQL database")

    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables if they do not exist and make sure the settings row is there."""
    engine = engine or get_engine()
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        if session.get(Settings, 1) is None:
            session.add(Settings(id=1, students_to_show=DEFAULT_STUDENTS_TO_SHOW))
            session.commit()


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    with Session(get_engine()) as session:
        yield session
