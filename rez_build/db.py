"""Database engine and session management for rez_build.

This module provides SQLAlchemy engine creation, session factory,
and base model class for the build history tables.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from rez_build.config import get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def get_engine(db_url: str | None = None) -> Any:
    """Create and return a SQLAlchemy engine.

    For file-backed SQLite databases the parent directory is created.

    Args:
        db_url: Database URL. If not provided, uses settings default.

    Returns:
        SQLAlchemy Engine instance.
    """
    if db_url is None:
        settings = get_settings()
        db_url = settings.db_url

    connect_args: dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        database = make_url(db_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        db_url,
        connect_args=connect_args,
        echo=False,
    )


def get_session_factory(engine: Any | None = None) -> sessionmaker[Session]:
    """Create and return a session factory.

    Args:
        engine: SQLAlchemy engine. If not provided, creates one from settings.

    Returns:
        Session factory (sessionmaker).
    """
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Args:
        session_factory: Optional session factory. Creates one if not provided.

    Yields:
        SQLAlchemy Session instance.
    """
    if session_factory is None:
        session_factory = get_session_factory()

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Any | None = None) -> None:
    """Create all tables defined by ORM models.

    Args:
        engine: SQLAlchemy engine. If not provided, creates one from settings.
    """
    # Import models so they are registered with the mapper before creating tables
    from rez_build.builds import models as builds_models  # noqa: F401

    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
