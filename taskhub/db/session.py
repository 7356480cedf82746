# File: taskhub/db/session.py
"""
Database session management for TaskHub.

Creates the SQLAlchemy engine from settings, exposes the session factory and
the FastAPI ``get_db`` dependency, and provides schema initialization helpers.
"""

import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from taskhub.core.config import settings
from taskhub.db.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections get ``check_same_thread`` disabled and foreign key
    enforcement switched on, which the cascade rules on tasks rely on.
    """
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    connect_args.update(kwargs.pop("connect_args", {}))

    db_engine = create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        echo=settings.DEBUG,
        **kwargs,
    )

    if is_sqlite:
        @event.listens_for(db_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    logger.info(f"Created database engine for {db_engine.url.render_as_string(hide_password=True)}")
    return db_engine


engine = create_db_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# -----------------------------------------------------------------------------
# FastAPI Dependency
# -----------------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    Yield a database session and close it when the request finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def verify_db_connection(db_engine: Engine = None) -> bool:
    """Run a trivial query against the database."""
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1")).scalar()
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


def init_db(db_engine: Engine = None, reset: bool = False) -> None:
    """
    Create all tables.

    Args:
        db_engine: Engine to initialize, defaults to the application engine
        reset: Drop all tables first
    """
    target = db_engine or engine
    if reset:
        logger.info("Dropping all tables for reset...")
        Base.metadata.drop_all(bind=target)
    logger.info("Creating tables via SQLAlchemy...")
    Base.metadata.create_all(bind=target)
