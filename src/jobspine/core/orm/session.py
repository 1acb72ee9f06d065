"""SQLAlchemy engine factory and session factory.

Manifesto:
    The claim protocol relies on a row-level write lock held between the
    SELECT of due jobs and the UPDATE to ``running``. PostgreSQL and MySQL
    give us that with ``SELECT ... FOR UPDATE``. SQLite has no row locks, so
    SQLite engines open every transaction with ``BEGIN IMMEDIATE``: the
    write lock is taken before the SELECT and a competing claimer blocks
    until the first one commits.

This module provides:

* ``create_jobspine_engine``  -- Create a SA engine from a URL.
* ``JobSpineSession``         -- Session with ``expire_on_commit=False``.
* ``jobspine_session_factory``-- ``sessionmaker`` producing ``JobSpineSession``.
* ``init_db``                 -- Create the jobspine tables.

Tags:
    jobspine, orm, sqlalchemy, session, engine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from jobspine.core.orm.base import JobSpineBase


def create_jobspine_engine(
    url: str = "sqlite:///jobspine.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///...``, ``postgresql+psycopg://...``, etc.)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            # Hand transaction control to SQLAlchemy so "begin" below is used
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class JobSpineSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Snapshots read inside a session stay usable after commit.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def jobspine_session_factory(engine: Engine) -> sessionmaker[JobSpineSession]:
    """Return a ``sessionmaker`` bound to *engine*."""
    return sessionmaker(bind=engine, class_=JobSpineSession)


def init_db(engine: Engine) -> None:
    """Create all jobspine tables that do not exist yet.

    Production schemas are expected to be managed by migrations; this is
    for development, tests and ``jobspine db init``.
    """
    from jobspine.core.orm import tables  # noqa: F401  (register mappers)

    JobSpineBase.metadata.create_all(engine)
