"""
Module: estate_kernel.db.engine
Responsibility: Engine initialization, session factory management, and the
    transactional scope helper.  Single point of database configuration.
Architecture position: Kernel > DB.  May import db/base.py; create_tables
    imports the ORM registry so every table is known to the metadata.

Invariants enforced:
    - Every connection wait is bounded: pool_timeout on PostgreSQL, the
      driver busy timeout on SQLite, and a statement_timeout option on
      PostgreSQL connections.  Nothing blocks indefinitely.
    - PostgreSQL sessions run READ COMMITTED with explicit FOR UPDATE row
      locks where stronger isolation is needed.
    - SQLite connections get the pysqlite transactional recipe (driver
      autocommit off, explicit BEGIN) so SAVEPOINTs nest correctly.

Failure modes:
    - RuntimeError if get_engine/get_session called before init_engine_from_url().
    - sqlalchemy TimeoutError when the pool is exhausted for pool_timeout
      seconds; the unit of work maps this to TransientStoreFailure.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from estate_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _install_sqlite_transaction_recipe(engine: Engine) -> None:
    # pysqlite issues its own BEGIN lazily, which breaks SAVEPOINT nesting.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: float = 10,
    statement_timeout_seconds: float = 10,
) -> Engine:
    """
    Initialize the engine and session factory.

    ``sqlite://`` in-memory URLs share a single connection (StaticPool) so
    every session in the process sees the same database.

    Args:
        database_url: PostgreSQL or SQLite URL.
        echo: Log SQL statements.
        pool_size / max_overflow: PostgreSQL pool bounds.
        pool_timeout: Seconds to wait for a pooled connection.
        statement_timeout_seconds: Busy timeout (SQLite) or server-side
            statement timeout (PostgreSQL).
    """
    global _engine, _SessionFactory

    if _is_sqlite(database_url):
        kwargs: dict = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": statement_timeout_seconds,
            },
        }
        if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite:"):
            kwargs["poolclass"] = StaticPool
        _engine = create_engine(database_url, echo=echo, **kwargs)
        _install_sqlite_transaction_recipe(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            isolation_level="READ COMMITTED",
            connect_args={
                "options": f"-c statement_timeout={int(statement_timeout_seconds * 1000)}",
            },
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for multi-threaded callers (one session per thread)."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Transactional scope: commit on normal exit, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            ctx = EstateContext(session=session)
            LandService(ctx).register_parcel(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every table and register the ORM immutability listeners."""
    from estate_kernel.db.base import Base
    from estate_kernel.db.immutability import register_immutability_listeners
    from estate_modules.orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    register_immutability_listeners()


def drop_tables() -> None:
    """Drop all tables. Testing only."""
    from estate_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"
