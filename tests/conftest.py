"""
Inkwell Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


OWNER = "user_owner"
STRANGER = "user_stranger"


# ---------------------------------------------------------------------------
# Environment setup: avoid touching real Redis / Postgres in unit tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config():
    """Reset global singletons between tests."""
    import inkwell.engine.config as cfg_mod
    from inkwell.engine.context import clear_execution_context
    from inkwell.engine.logging import shutdown_logging

    cfg_mod._platform_config = cfg_mod.PlatformConfig()
    clear_execution_context()
    yield
    shutdown_logging()
    clear_execution_context()
    cfg_mod._platform_config = None


@pytest.fixture
def config():
    from inkwell.engine.config import get_platform_config

    return get_platform_config()


class FrozenClock:
    """Deterministic clock; call ``advance`` to move time forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FrozenClock()


# ---------------------------------------------------------------------------
# Database: in-memory SQLite shared by every session of a test
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    import inkwell.db.models  # noqa: F401
    from inkwell.db.base import Base

    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """A plain session for arranging rows and asserting on them."""
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Callers
# ---------------------------------------------------------------------------

@pytest.fixture
def owner():
    """Run the test as the document owner."""
    from inkwell.engine.context import execution_context

    with execution_context(OWNER, display_name="Owner") as ctx:
        yield ctx


@pytest.fixture
def as_stranger():
    """Context manager factory: ``with as_stranger(): ...`` runs as another user."""
    from inkwell.engine.context import execution_context

    return lambda: execution_context(STRANGER, display_name="Stranger")


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def services(session_factory, clock, config):
    """All document services wired to the test database and clock."""
    from inkwell.documents import (
        BlockService,
        CommentService,
        DocumentService,
        DocumentTreeService,
        PreferencesService,
        RetentionService,
        VersionService,
    )

    prefs = PreferencesService(session_factory, clock=clock, config=config)
    return SimpleNamespace(
        blocks=BlockService(session_factory, clock=clock, config=config),
        documents=DocumentService(session_factory, clock=clock, config=config),
        tree=DocumentTreeService(session_factory, clock=clock, config=config),
        comments=CommentService(session_factory, clock=clock, config=config),
        preferences=prefs,
        versions=VersionService(session_factory, clock=clock, config=config, preferences=prefs),
        retention=RetentionService(session_factory, clock=clock, config=config, preferences=prefs),
    )


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_document(session_factory):
    """Insert a document directly; returns its id."""
    from inkwell.db.models import Document

    def _make(
        title: str = "Untitled",
        user_id: str = OWNER,
        parent_id: Optional[int] = None,
        **fields: Any,
    ) -> int:
        session = session_factory()
        try:
            doc = Document(title=title, user_id=user_id, parent_id=parent_id, **fields)
            session.add(doc)
            session.commit()
            return doc.id
        finally:
            session.close()

    return _make


@pytest.fixture
def make_versions(session_factory, clock):
    """Insert versions with explicit ages (days before ``clock()``); returns ids."""
    from inkwell.db.models import DocumentVersion

    def _make(document_id: int, ages_in_days: List[float], user_id: str = OWNER) -> List[int]:
        session = session_factory()
        try:
            rows = [
                DocumentVersion(
                    document_id=document_id,
                    user_id=user_id,
                    document_snapshot={"title": f"v{i}", "icon": None, "cover_image": None, "tags": None},
                    blocks_snapshot=[],
                    created_at=clock() - timedelta(days=age),
                    change_description=f"version {i}",
                )
                for i, age in enumerate(ages_in_days)
            ]
            session.add_all(rows)
            session.commit()
            return [r.id for r in rows]
        finally:
            session.close()

    return _make


@pytest.fixture
def editor_blocks():
    """Editor payload builder: one block per text."""

    def _build(*texts: str, type: str = "paragraph") -> List[dict]:
        return [
            {"id": f"client-{i}", "type": type, "content": [{"type": "text", "text": t}], "props": {}}
            for i, t in enumerate(texts)
        ]

    return _build
