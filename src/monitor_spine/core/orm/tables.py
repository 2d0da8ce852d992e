"""SQLAlchemy 2.0 ORM table definitions for monitor-spine.

One mapped class per materialized entity kind. Column conventions:

* ``key`` -> ``BigInteger`` primary key, engine-assigned, never generated
* ``*_key`` -> ``BigInteger`` references to other engine entities; plain
  columns, no ``ForeignKey`` (rows are imported in log order, so a child
  may legitimately arrive before its parent)
* ``timestamp`` / ``start_time`` / ``end_time`` / ``due_date`` -> epoch
  milliseconds as emitted by the engine
* ``process_instance_key`` is indexed on every table that is deleted by the
  retention sweeper

Usage::

    from monitor_spine.core.orm import MonitorBase, create_monitor_engine

    engine = create_monitor_engine("sqlite:///monitor.db")
    MonitorBase.metadata.create_all(engine)
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from monitor_spine.core.orm.base import EntityMixin, MonitorBase


class ProcessTable(EntityMixin, MonitorBase):
    """Deployed process definitions (``key`` = process definition key)."""

    __tablename__ = "processes"

    bpmn_process_id: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    resource_name: Mapped[str | None] = mapped_column(Text)
    resource: Mapped[str | None] = mapped_column(Text)


class ProcessInstanceTable(EntityMixin, MonitorBase):
    __tablename__ = "process_instances"

    bpmn_process_id: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    process_definition_key: Mapped[int] = mapped_column(BigInteger, nullable=False)
    parent_process_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    parent_element_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    start_time: Mapped[int | None] = mapped_column(BigInteger)
    end_time: Mapped[int | None] = mapped_column(BigInteger)

    __table_args__ = (Index("ix_process_instances_start_time", "start_time"),)


class ElementInstanceTable(EntityMixin, MonitorBase):
    """Activities/elements of a process instance (``key`` = element instance key)."""

    __tablename__ = "element_instances"

    process_instance_key: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    process_definition_key: Mapped[int | None] = mapped_column(BigInteger)
    element_id: Mapped[str | None] = mapped_column(Text)
    bpmn_element_type: Mapped[str | None] = mapped_column(Text)
    flow_scope_key: Mapped[int | None] = mapped_column(BigInteger)


class VariableTable(EntityMixin, MonitorBase):
    __tablename__ = "variables"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str | None] = mapped_column(Text)
    scope_key: Mapped[int | None] = mapped_column(BigInteger)
    process_instance_key: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class JobTable(EntityMixin, MonitorBase):
    __tablename__ = "jobs"

    job_type: Mapped[str] = mapped_column(Text, nullable=False)
    worker: Mapped[str | None] = mapped_column(Text)
    retries: Mapped[int | None] = mapped_column(Integer)
    element_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    process_instance_key: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class IncidentTable(EntityMixin, MonitorBase):
    __tablename__ = "incidents"

    error_type: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)
    bpmn_process_id: Mapped[str | None] = mapped_column(Text)
    process_definition_key: Mapped[int | None] = mapped_column(BigInteger)
    process_instance_key: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    element_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    job_key: Mapped[int | None] = mapped_column(BigInteger)
    created: Mapped[int | None] = mapped_column(BigInteger)
    resolved: Mapped[int | None] = mapped_column(BigInteger)


class MessageTable(EntityMixin, MonitorBase):
    """Published messages. Not owned by a process instance; never swept."""

    __tablename__ = "messages"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    correlation_key: Mapped[str | None] = mapped_column(Text)
    message_id: Mapped[str | None] = mapped_column(Text)
    payload: Mapped[str | None] = mapped_column(Text)


class MessageSubscriptionTable(EntityMixin, MonitorBase):
    """Intermediate and start-event message subscriptions.

    Start-event subscriptions belong to a process definition and carry no
    ``process_instance_key`` until they correlate.
    """

    __tablename__ = "message_subscriptions"

    message_name: Mapped[str] = mapped_column(Text, nullable=False)
    correlation_key: Mapped[str | None] = mapped_column(Text)
    process_instance_key: Mapped[int | None] = mapped_column(BigInteger, index=True)
    element_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    process_definition_key: Mapped[int | None] = mapped_column(BigInteger)
    target_flow_node_id: Mapped[str | None] = mapped_column(Text)


class TimerTable(EntityMixin, MonitorBase):
    __tablename__ = "timers"

    due_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False)
    target_element_id: Mapped[str | None] = mapped_column(Text)
    element_instance_key: Mapped[int | None] = mapped_column(BigInteger)
    process_instance_key: Mapped[int | None] = mapped_column(BigInteger, index=True)
    process_definition_key: Mapped[int | None] = mapped_column(BigInteger)


class ErrorTable(EntityMixin, MonitorBase):
    """Exporter-side processing errors (``key`` = error event position)."""

    __tablename__ = "errors"

    exception_message: Mapped[str | None] = mapped_column(Text)
    stacktrace: Mapped[str | None] = mapped_column(Text)
    process_instance_key: Mapped[int | None] = mapped_column(BigInteger, index=True)


# Tables deleted by ``process_instance_key`` before their process instance.
PROCESS_INSTANCE_DEPENDENTS: tuple[type[MonitorBase], ...] = (
    ElementInstanceTable,
    VariableTable,
    JobTable,
    IncidentTable,
    MessageSubscriptionTable,
    TimerTable,
    ErrorTable,
)

__all__ = [
    "ProcessTable",
    "ProcessInstanceTable",
    "ElementInstanceTable",
    "VariableTable",
    "JobTable",
    "IncidentTable",
    "MessageTable",
    "MessageSubscriptionTable",
    "TimerTable",
    "ErrorTable",
    "PROCESS_INSTANCE_DEPENDENTS",
]
