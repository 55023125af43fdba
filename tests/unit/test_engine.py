"""Module-level engine management and the sequence counters built on it."""

import pytest
from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from inventory_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.services.sequence_service import SequenceService


@pytest.fixture
def initialized(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'engine.db'}")
    create_tables()
    yield engine
    reset_engine()


def counter_value(name):
    session = get_session()
    try:
        return session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
    finally:
        session.close()


class TestModuleEngine:
    def test_uninitialized_access_fails(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()
        assert not is_postgres()

    def test_initialized_engine_is_shared(self, initialized):
        assert get_engine() is initialized
        assert get_session_factory()().bind is initialized
        assert not is_postgres()

    def test_drop_tables(self, initialized):
        assert "stock_levels" in inspect(initialized).get_table_names()
        drop_tables()
        assert inspect(initialized).get_table_names() == []

    def test_reset_clears_state(self, initialized):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_session()


class TestSessionScope:
    def test_commits_on_success(self, initialized):
        with session_scope() as session:
            session.add(SequenceCounter(name="scope:commit", current_value=3))
        assert counter_value("scope:commit") == 3

    def test_rolls_back_on_error(self, initialized):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(SequenceCounter(name="scope:rollback", current_value=3))
                session.flush()
                raise ValueError("abort")
        assert counter_value("scope:rollback") is None


class TestSequenceService:
    def test_values_increase_per_name(self):
        engine = build_engine("sqlite:///:memory:")
        create_tables(engine)
        session = Session(bind=engine)
        try:
            sequences = SequenceService(session)
            movements = SequenceService.tenant_sequence(SequenceService.STOCK_MOVEMENT, "t1")
            audits = SequenceService.tenant_sequence(SequenceService.AUDIT_LOG, "t1")

            assert [sequences.next_value(movements) for _ in range(3)] == [1, 2, 3]
            assert sequences.next_value(audits) == 1
            assert movements == "stock_movement:t1"
        finally:
            session.close()
            engine.dispose()
