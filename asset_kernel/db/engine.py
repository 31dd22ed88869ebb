"""
Module: asset_kernel.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory.
    Hosts call ``init_engine_from_url`` once; services receive sessions from
    ``get_session_factory``.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Locking model:
    - PostgreSQL sessions run at READ COMMITTED.  Contended rows (sequence
      counters, assets, requisitions) are taken with FOR UPDATE, and the
      server-side ``lock_timeout`` turns a long wait into an error.
    - SQLite (development and tests) runs with pysqlite's implicit
      transactions switched off; every transaction opens with
      ``BEGIN IMMEDIATE`` so writers queue on the database lock, bounded by
      the busy timeout.

Errors:
    - RuntimeError from the accessors while no engine is initialized.
    - OperationalError on lock timeout, translated by db/transaction.py.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from asset_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_SQLITE_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _sqlite_engine(database_url: str, echo: bool, lock_timeout_seconds: float) -> Engine:
    engine = create_engine(
        database_url,
        echo=echo,
        poolclass=StaticPool if database_url in _SQLITE_MEMORY_URLS else QueuePool,
        connect_args={"timeout": lock_timeout_seconds, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Transactions are opened by the "begin" hook below, not by pysqlite.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout_seconds: float = 5.0,
) -> Engine:
    """
    Engine for PostgreSQL or SQLite, without touching module state.

    ``lock_timeout_seconds`` bounds every lock wait: PostgreSQL
    ``lock_timeout`` or the SQLite busy timeout.  Pool settings apply to
    PostgreSQL only.
    """
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo, lock_timeout_seconds)

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
        connect_args={"options": f"-c lock_timeout={int(lock_timeout_seconds * 1000)}"},
    )


# ---------------------------------------------------------------------------
# Process-wide engine
# ---------------------------------------------------------------------------


def init_engine_from_url(database_url: str, **engine_options) -> Engine:
    """
    Build the process-wide engine and session factory.

    ``engine_options`` are passed to ``build_engine``.  A second call
    disposes the previous engine first.  Sessions do not expire on commit,
    so DTOs built after commit read loaded values without a new query.
    """
    global _engine, _SessionFactory

    reset_engine()
    _engine = build_engine(database_url, **engine_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={
        "dialect": _engine.dialect.name,
        **{k: v for k, v in engine_options.items() if k != "echo"},
    })
    return _engine


def _require_initialized() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    _require_initialized()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for hosts and worker threads that open their own sessions."""
    return _require_initialized()


def get_session() -> Session:
    return _require_initialized()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Session committed on normal exit, rolled back on error, always closed.

    For setup and tooling.  Workflow operations use ``db.transaction.atomic``
    instead, which also translates storage errors.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create every table registered on ``Base.metadata``.

    Only imported models are registered; the full schema is built by
    ``asset_modules._orm_registry.create_all_tables()``.
    """
    from asset_kernel.db.base import Base

    Base.metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    from asset_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())
    logger.info("tables_dropped", extra={"table_count": len(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the process-wide engine, if any, and forget the factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
