"""Unit tests for inkwell.db — EngineRegistry, session_scope, timestamps."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from inkwell.db.base import EngineRegistry, as_utc
from inkwell.db.models import Document
from inkwell.db.session import session_scope


class TestEngineRegistry:
    def setup_method(self):
        self.registry = EngineRegistry()

    def teardown_method(self):
        self.registry.dispose()

    def test_register_sqlite(self):
        engine = self.registry.register("scratch", "sqlite://")
        assert self.registry.get("scratch") is engine
        assert self.registry.registered_names == ["scratch"]
        assert self.registry.health_check("scratch") is True

    def test_unknown_engine(self):
        with pytest.raises(KeyError, match="not registered"):
            self.registry.get("missing")
        with pytest.raises(KeyError, match="not found"):
            self.registry.get_session_factory("missing")
        assert self.registry.health_check("missing") is False

    def test_sessions_keep_loaded_state_after_commit(self):
        self.registry.register("scratch", "sqlite://")
        session = self.registry.get_session("scratch")
        assert session.expire_on_commit is False
        session.close()

    def test_dispose_one(self):
        self.registry.register("a", "sqlite://")
        self.registry.register("b", "sqlite://")
        self.registry.dispose("a")
        assert self.registry.registered_names == ["b"]


class TestSessionScope:
    def test_commits(self, session_factory):
        with session_scope(session_factory) as session:
            session.add(Document(title="Kept", user_id="u"))

        with session_scope(session_factory) as session:
            assert session.scalars(select(Document.title)).all() == ["Kept"]

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.add(Document(title="Lost", user_id="u"))
                session.flush()
                raise RuntimeError("boom")

        with session_scope(session_factory) as session:
            assert session.scalars(select(Document)).all() == []

    def test_uninitialized_database(self):
        from inkwell.db.session import get_session_factory

        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()


class TestAsUtc:
    def test_naive_gets_utc(self):
        assert as_utc(datetime(2024, 1, 1)).tzinfo is timezone.utc

    def test_aware_unchanged(self):
        value = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert as_utc(value) is value

    def test_none(self):
        assert as_utc(None) is None
