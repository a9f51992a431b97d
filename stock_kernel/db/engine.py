"""
Module: stock_kernel.db.engine
Responsibility: Owns the process-wide engine and session factory for the
    stock ledger, and creates or drops its schema.
Architecture position: Kernel > DB.  The model modules are imported lazily
    by create_tables/drop_tables so Base.metadata is complete without db/
    importing models/ at module load.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Stock decrements rely on
      conditional UPDATEs and sequence counters on SELECT ... FOR UPDATE,
      not on a stronger isolation level.
    - SQLite connections enforce foreign keys and open every transaction
      with BEGIN IMMEDIATE, so two writers serialise on the database lock
      instead of one failing at commit.  The driver's own transaction
      handling is switched off so nested SAVEPOINTs work.

Failure modes:
    - RuntimeError from any accessor called before init_engine_from_url().
"""

import atexit

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_engine(url: str, echo: bool, busy_timeout: int) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": busy_timeout},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the ledger engine for ``database_url`` and make it current.

    Pool settings apply to PostgreSQL only; for SQLite ``pool_timeout`` is
    the busy timeout while waiting on another writer.  Calling again
    replaces the current engine without disposing it.
    """
    global _engine, _session_factory

    if database_url.startswith("sqlite"):
        engine = _sqlite_engine(database_url, echo, pool_timeout)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per thread."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


def _ledger_metadata():
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401
    import stock_kernel.services.sequence_service  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    metadata = _ledger_metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables() -> None:
    """Drop every ledger table. Destroys all stock history."""
    metadata = _ledger_metadata()
    metadata.drop_all(get_engine())
    logger.warning("tables_dropped", extra={"table_count": len(metadata.tables)})


def reset_engine() -> None:
    """Dispose the current engine and forget it. Used by test teardown."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
