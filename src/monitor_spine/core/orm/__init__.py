"""SQLAlchemy 2.0 ORM layer for monitor-spine.

Modules
-------
base        MonitorBase (declarative base) + EntityMixin
session     Engine factory, MonitorSession, schema bootstrap
tables      One mapped class per entity kind (ProcessInstanceTable, JobTable, ...)
"""

from __future__ import annotations

from monitor_spine.core.orm.base import EntityMixin, MonitorBase
from monitor_spine.core.orm.session import (
    MonitorSession,
    create_monitor_engine,
    init_schema,
    monitor_session_factory,
)
from monitor_spine.core.orm.tables import *  # noqa: F401,F403

__all__ = [
    "MonitorBase",
    "EntityMixin",
    "create_monitor_engine",
    "MonitorSession",
    "monitor_session_factory",
    "init_schema",
]
