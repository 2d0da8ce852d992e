"""Entity stores over a SQLAlchemy session.

An :class:`EntityStore` pairs an open ``Session`` with one mapped entity
table and exposes the only operations the import pipeline and the
retention sweeper need: point lookup, upsert, and bulk delete by key set.
The store never commits; the caller owns the transaction.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                      EntityStore[T]                                │
    │                                                                    │
    │   session: Session          ← caller-owned unit of work            │
    │   table: type[T]            ← one entity kind                      │
    │                                                                    │
    │   get(key)                          → T | None                     │
    │   upsert(row)                       → T                            │
    │   delete_by_keys(keys)              → int                          │
    │   delete_by_process_instance_keys() → int                          │
    ├────────────────────────────────────────────────────────────────────┤
    │                   ProcessInstanceStore                             │
    │   find_keys_started_before(cutoff_ms, limit, offset) → list[int]   │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    >>> with factory.begin() as session:
    ...     store = EntityStore(session, MessageTable)
    ...     row = store.get(100)
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Generic, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from monitor_spine.core.orm.base import MonitorBase
from monitor_spine.core.orm.tables import ProcessInstanceTable

T = TypeVar("T", bound=MonitorBase)


class EntityStore(Generic[T]):
    """Keyed storage for one entity kind within a session.

    Parameters:
        session: Open SQLAlchemy session; the caller commits or rolls back.
        table: Mapped entity class with a ``key`` primary key.
    """

    def __init__(self, session: Session, table: type[T]) -> None:
        self.session = session
        self.table = table

    def get(self, key: int) -> T | None:
        """Point lookup by engine key."""
        return self.session.get(self.table, key)

    def upsert(self, row: T) -> T:
        """Insert *row* if new, otherwise keep the already-tracked instance.

        Rows obtained from :meth:`get` are already tracked by the session,
        so mutating them in place is enough; new rows are added and flushed
        so that constraint violations surface inside the caller's
        transaction.
        """
        if row not in self.session:
            self.session.add(row)
        self.session.flush()
        return row

    def delete_by_keys(self, keys: Collection[int]) -> int:
        """Delete rows whose ``key`` is in *keys*. Returns rows affected."""
        if not keys:
            return 0
        stmt = delete(self.table).where(self.table.key.in_(list(keys)))
        return self.session.execute(stmt, execution_options={"synchronize_session": False}).rowcount

    def delete_by_process_instance_keys(self, keys: Collection[int]) -> int:
        """Delete rows owned by any process instance in *keys*."""
        if not keys:
            return 0
        column = getattr(self.table, "process_instance_key", None)
        if column is None:
            raise TypeError(f"{self.table.__tablename__} has no process_instance_key column")
        stmt = delete(self.table).where(column.in_(list(keys)))
        return self.session.execute(stmt, execution_options={"synchronize_session": False}).rowcount

    def count(self) -> int:
        """Total number of rows of this kind."""
        return self.session.scalar(select(func.count()).select_from(self.table)) or 0


class ProcessInstanceStore(EntityStore[ProcessInstanceTable]):
    """Process-instance store with the retention range query."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ProcessInstanceTable)

    def find_keys_started_before(
        self,
        cutoff_ms: int,
        limit: int,
        offset: int = 0,
    ) -> list[int]:
        """Return one bounded page of keys with ``start_time < cutoff_ms``.

        Ordered by key so that concurrent sweepers page identically.
        """
        stmt = (
            select(ProcessInstanceTable.key)
            .where(ProcessInstanceTable.start_time < cutoff_ms)
            .order_by(ProcessInstanceTable.key)
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt))


__all__ = ["EntityStore", "ProcessInstanceStore"]
