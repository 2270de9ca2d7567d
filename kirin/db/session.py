"""
Database session management for Kirin.

Provides SQLAlchemy engine and session factory construction. Nothing here is
a module-level singleton; the worker runtime builds one engine per process
and passes the session factory to the store explicitly.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from kirin.config import KirinSettings
from kirin.db.models import Base


def build_engine(url: str, *, pool_size: int = 5, max_overflow: int = 10, **kwargs) -> Engine:
    """Create a SQLAlchemy Engine.

    SQLite URLs skip the pool sizing arguments, which its pools reject.

    Args:
        url: SQLAlchemy database URL
        pool_size: Connection pool size for server databases
        max_overflow: Extra connections allowed above pool_size

    Returns:
        SQLAlchemy Engine instance
    """
    if url.startswith("sqlite"):
        return create_engine(url, future=True, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
        future=True,
        **kwargs,
    )


def engine_from_settings(settings: KirinSettings) -> Engine:
    return build_engine(
        settings.database_url,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
    )


def get_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Get a session factory bound to the engine.

    Returns:
        SQLAlchemy sessionmaker instance
    """
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Get a database session with automatic commit/rollback.

    Yields:
        SQLAlchemy Session instance

    Usage:
        with session_scope(factory) as session:
            session.add(model)
    """
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables defined in the Base metadata.

    Used for development and tests; production schemas are managed by the
    Alembic migrations under alembic/.
    """
    Base.metadata.create_all(bind=engine)

