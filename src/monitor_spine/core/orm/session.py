"""SQLAlchemy engine factory, session factory and schema bootstrap.

This module provides:

* ``create_monitor_engine``   -- Create a SA engine from a URL.
* ``MonitorSession``          -- A pre-configured ``Session`` subclass.
* ``monitor_session_factory`` -- ``sessionmaker`` producing ``MonitorSession``.
* ``init_schema``             -- Create every monitor-spine table.

Every unit of work (one imported record, one retention batch) runs in
``with factory.begin() as session:`` so it either commits as a whole or
rolls back as a whole.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from monitor_spine.core.orm.base import MonitorBase


def create_monitor_engine(
    url: str = "sqlite:///monitor.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL to stdout.
    pool_size:
        Connection pool size (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        # The consumer thread and the sweeper thread share the engine
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs.setdefault("poolclass", StaticPool)
        else:
            database = make_url(url).database
            if database:
                Path(database).parent.mkdir(parents=True, exist_ok=True)

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class MonitorSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Rows returned by an importer stay readable after the record's
    transaction has committed.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def monitor_session_factory(engine: Engine) -> sessionmaker[MonitorSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``MonitorSession`` instances."""
    return sessionmaker(bind=engine, class_=MonitorSession)


def init_schema(engine: Engine) -> None:
    """Create all monitor-spine tables that do not exist yet."""
    # Register every mapped class on the metadata
    from monitor_spine.core.orm import tables  # noqa: F401

    MonitorBase.metadata.create_all(engine)
