"""SQLAlchemy engine/session setup for the job catalog.

Usage patterns
--------------
- Build an engine with `make_engine(url)` and a factory with
  `make_session_factory(engine)`; both are passed explicitly to the code
  that needs them (no module-level connection).
- `session_scope(factory)` yields a session and always closes it.

SQLite note
-----------
The pysqlite driver manages transactions on its own and breaks SAVEPOINT
handling. For SQLite URLs the engine takes over BEGIN emission so nested
transactions (`Session.begin_nested()`) behave as on PostgreSQL.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from jobportal.config import coalesce_database_url


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        # disable pysqlite's own BEGIN handling
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


def make_engine(
    url: str | None = None,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> Engine:
    """Create a SQLAlchemy engine with sensible defaults.

    - pool_pre_ping avoids stale connections
    - pool sizing only applies to server databases
    """
    url = coalesce_database_url(url)

    # SQLite does not use pool sizing the same way; keep kwargs minimal.
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=echo, pool_pre_ping=True)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
        )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a session and ensure it is closed on every exit path.

    Commits are left to the caller; an uncommitted transaction is rolled
    back when the session closes.
    """
    session: Session = factory()
    try:
        yield session
    finally:
        session.close()
