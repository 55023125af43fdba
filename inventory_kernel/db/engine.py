"""
Module: inventory_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the whole system.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except
    create_tables, which imports models so Base.metadata is complete).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) on stock aggregates and sequence counters.
    - SQLite runs every transaction as BEGIN IMMEDIATE, so concurrent
      writers queue on the database lock instead of failing on upgrade.
    - In-memory SQLite uses a single shared connection (StaticPool) so every
      session sees the same database.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - OperationalError ("database is locked") if a SQLite writer waits longer
      than sqlite_timeout seconds.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_begin_immediate(engine: Engine) -> None:
    """Take the SQLite write lock at BEGIN instead of at first write."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_timeout: float = 30.0,
) -> Engine:
    """
    Create an engine for the given URL without touching module state.

    SQLite URLs get BEGIN IMMEDIATE transactions; ``:memory:`` URLs also
    get a StaticPool.  Every other backend gets a QueuePool at
    READ COMMITTED.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        kwargs: dict = {
            "echo": echo,
            "connect_args": {"check_same_thread": False, "timeout": sqlite_timeout},
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _install_sqlite_begin_immediate(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_timeout: float = 30.0,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Postconditions: All subsequent get_engine/get_session calls use this
        engine.  A second call replaces the first (without disposing it;
        use reset_engine() for that).

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg://... or sqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_timeout: Seconds a SQLite writer waits for the database lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        sqlite_timeout=sqlite_timeout,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Each thread needs its own session; hand this factory to anything that
    runs work off the calling thread.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, the session is committed and closed.
        On exception, the session is rolled back and closed, and the
        exception is re-raised.

    Usage:
        with session_scope() as session:
            session.add(entity)
    """
    session = session_factory() if session_factory is not None else get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all inventory tables.

    Imports every model module first so Base.metadata holds every table.
    """
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres(engine: Engine | None = None) -> bool:
    """Check if the given (or current) engine is PostgreSQL."""
    target = engine or _engine
    if target is None:
        return False
    return target.dialect.name == "postgresql"
