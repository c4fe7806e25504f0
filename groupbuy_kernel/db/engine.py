"""
Module: groupbuy_kernel.db.engine
Responsibility: SQLAlchemy engine construction, transactional scope and
    schema creation.  This is the single point of database connection
    configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py and
    models/ (create_tables/drop_tables only).  MUST NOT import from
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; writers serialize on the group-buy
      row through the version compare-and-set in VersionGuard.
    - SQLite connections enable foreign keys (ON DELETE CASCADE) and wait on
      a locked database for ``sqlite_busy_timeout`` seconds instead of
      failing immediately.
    - session_scope() commits on success and rolls back on ANY exit by
      exception, including cancellation (KeyboardInterrupt, CancelledError),
      so partial writes are never committed.

Failure modes:
    - OperationalError from the driver (lock timeout, connectivity); the
      service facade turns these into StorageError.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from groupbuy_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Create an engine for PostgreSQL or SQLite without touching module state.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://... or sqlite:///path).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "timeout": sqlite_busy_timeout,
                "check_same_thread": False,
            },
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


@contextmanager
def session_scope(
    factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except BaseException:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all tables and indexes defined in the models.

    Idempotent: existing tables are left untouched.
    """
    from groupbuy_kernel.db.base import Base
    import groupbuy_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from groupbuy_kernel.db.base import Base
    import groupbuy_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
