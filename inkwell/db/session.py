"""
Inkwell Database Session Management.

Single entry point for DB initialisation plus the transaction scope every
service operation runs in: one session, commit on success, rollback on any
error.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from inkwell.db.base import Base, engine_registry

CORE_ENGINE = "inkwell_core"

SessionFactory = Callable[[], Session]


def init_db(
    db_url: str,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    **engine_kwargs,
) -> sessionmaker:
    """
    Register the "inkwell_core" engine and return its session factory.

    Args:
        db_url:        SQLAlchemy URL (postgresql://… in production).
        create_tables: Run Base.metadata.create_all() — dev / ``inkwell init``.
        pool_*:        Engine pool settings (ignored for SQLite).
    """
    import inkwell.db.models  # noqa: F401  (register tables on Base.metadata)

    engine = engine_registry.register(
        CORE_ENGINE, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        **engine_kwargs,
    )

    if create_tables:
        Base.metadata.create_all(engine)

    return engine_registry.get_session_factory(CORE_ENGINE)


def get_session_factory() -> sessionmaker:
    """Session factory for the core database."""
    try:
        return engine_registry.get_session_factory(CORE_ENGINE)
    except KeyError:
        raise RuntimeError("Database not initialized. Call init_db() first.") from None


@contextmanager
def session_scope(session_factory: Optional[SessionFactory] = None) -> Generator[Session, None, None]:
    """
    Transaction scope with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            doc = session.get(Document, doc_id)
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown."""
    engine_registry.dispose()
