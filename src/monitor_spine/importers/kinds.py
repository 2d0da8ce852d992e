"""Per-domain importer declarations.

Each ``*_SPEC`` names the domain value model and the table(s) it projects
onto. ``create`` receives only creation-time fields; ``refresh`` lists the
fields that track the latest record for the key. Everything else (lookup,
``state``/``timestamp`` overwrite, transaction, counter) is shared by
:class:`~monitor_spine.importers.base.EntityImporter`.
"""

from __future__ import annotations

import json

from monitor_spine.core.orm.tables import (
    ElementInstanceTable,
    ErrorTable,
    IncidentTable,
    JobTable,
    MessageSubscriptionTable,
    MessageTable,
    ProcessInstanceTable,
    ProcessTable,
    TimerTable,
    VariableTable,
)
from monitor_spine.importers.base import ImporterSpec, Projection
from monitor_spine.records import (
    ErrorValue,
    IncidentValue,
    JobValue,
    MessageStartEventSubscriptionValue,
    MessageSubscriptionValue,
    MessageValue,
    ProcessInstanceValue,
    ProcessValue,
    Record,
    TimerValue,
    ValueType,
    VariableValue,
)

# ── Process ──────────────────────────────────────────────────────────────

PROCESS_SPEC = ImporterSpec(
    kind="process",
    value_type=ValueType.PROCESS,
    value_model=ProcessValue,
    description="number of processed processes",
    projections=(
        Projection(
            table=ProcessTable,
            create=lambda key, record, v: ProcessTable(
                key=key,
                bpmn_process_id=v.bpmn_process_id,
                version=v.version,
                resource_name=v.resource_name,
                resource=v.resource,
            ),
        ),
    ),
)


# ── Process instance / element instance ──────────────────────────────────

_ENDED_INTENTS = frozenset({"ELEMENT_COMPLETED", "ELEMENT_TERMINATED"})


def _create_process_instance(key: int, record: Record, v: ProcessInstanceValue) -> ProcessInstanceTable:
    return ProcessInstanceTable(
        key=key,
        bpmn_process_id=v.bpmn_process_id,
        version=v.version,
        process_definition_key=v.process_definition_key,
        parent_process_instance_key=v.parent_process_instance_key,
        parent_element_instance_key=v.parent_element_instance_key,
        start_time=record.timestamp,
    )


def _refresh_process_instance(row: ProcessInstanceTable, record: Record, v: ProcessInstanceValue) -> None:
    if record.intent in _ENDED_INTENTS:
        row.end_time = record.timestamp


PROCESS_INSTANCE_SPEC = ImporterSpec(
    kind="process_instance",
    value_type=ValueType.PROCESS_INSTANCE,
    value_model=ProcessInstanceValue,
    description="number of processed process instance records",
    projections=(
        Projection(
            table=ElementInstanceTable,
            create=lambda key, record, v: ElementInstanceTable(
                key=key,
                process_instance_key=v.process_instance_key,
                process_definition_key=v.process_definition_key,
                element_id=v.element_id,
                bpmn_element_type=v.bpmn_element_type,
                flow_scope_key=v.flow_scope_key,
            ),
        ),
        Projection(
            table=ProcessInstanceTable,
            create=_create_process_instance,
            refresh=_refresh_process_instance,
            key_of=lambda record, v: v.process_instance_key,
            applies=lambda v: v.bpmn_element_type == "PROCESS",
        ),
    ),
)


# ── Variable ─────────────────────────────────────────────────────────────


def _refresh_variable(row: VariableTable, record: Record, v: VariableValue) -> None:
    row.value = v.value


VARIABLE_SPEC = ImporterSpec(
    kind="variable",
    value_type=ValueType.VARIABLE,
    value_model=VariableValue,
    description="number of processed variables",
    projections=(
        Projection(
            table=VariableTable,
            create=lambda key, record, v: VariableTable(
                key=key,
                name=v.name,
                scope_key=v.scope_key,
                process_instance_key=v.process_instance_key,
            ),
            refresh=_refresh_variable,
        ),
    ),
)


# ── Job ──────────────────────────────────────────────────────────────────


def _refresh_job(row: JobTable, record: Record, v: JobValue) -> None:
    row.retries = v.retries
    row.worker = v.worker


JOB_SPEC = ImporterSpec(
    kind="job",
    value_type=ValueType.JOB,
    value_model=JobValue,
    description="number of processed jobs",
    projections=(
        Projection(
            table=JobTable,
            create=lambda key, record, v: JobTable(
                key=key,
                job_type=v.type,
                element_instance_key=v.element_instance_key,
                process_instance_key=v.process_instance_key,
            ),
            refresh=_refresh_job,
        ),
    ),
)


# ── Incident ─────────────────────────────────────────────────────────────


def _refresh_incident(row: IncidentTable, record: Record, v: IncidentValue) -> None:
    if record.intent == "RESOLVED":
        row.resolved = record.timestamp


INCIDENT_SPEC = ImporterSpec(
    kind="incident",
    value_type=ValueType.INCIDENT,
    value_model=IncidentValue,
    description="number of processed incidents",
    projections=(
        Projection(
            table=IncidentTable,
            create=lambda key, record, v: IncidentTable(
                key=key,
                error_type=v.error_type,
                error_message=v.error_message,
                bpmn_process_id=v.bpmn_process_id,
                process_definition_key=v.process_definition_key,
                process_instance_key=v.process_instance_key,
                element_instance_key=v.element_instance_key,
                job_key=v.job_key,
                created=record.timestamp,
            ),
            refresh=_refresh_incident,
        ),
    ),
)


# ── Message ──────────────────────────────────────────────────────────────

MESSAGE_SPEC = ImporterSpec(
    kind="message",
    value_type=ValueType.MESSAGE,
    value_model=MessageValue,
    description="number of processed messages",
    projections=(
        Projection(
            table=MessageTable,
            create=lambda key, record, v: MessageTable(
                key=key,
                name=v.name,
                correlation_key=v.correlation_key,
                message_id=v.message_id,
                payload=json.dumps(v.variables, sort_keys=True),
            ),
        ),
    ),
)


# ── Message subscriptions ────────────────────────────────────────────────

MESSAGE_SUBSCRIPTION_SPEC = ImporterSpec(
    kind="message_subscription",
    value_type=ValueType.MESSAGE_SUBSCRIPTION,
    value_model=MessageSubscriptionValue,
    description="number of processed message subscriptions",
    projections=(
        Projection(
            table=MessageSubscriptionTable,
            create=lambda key, record, v: MessageSubscriptionTable(
                key=key,
                message_name=v.message_name,
                correlation_key=v.correlation_key,
                process_instance_key=v.process_instance_key,
                element_instance_key=v.element_instance_key,
            ),
        ),
    ),
)

# Start-event subscriptions belong to the process definition and never carry
# a process_instance_key; the retention sweeper leaves them alone.
MESSAGE_START_EVENT_SUBSCRIPTION_SPEC = ImporterSpec(
    kind="message_start_event_subscription",
    value_type=ValueType.MESSAGE_START_EVENT_SUBSCRIPTION,
    value_model=MessageStartEventSubscriptionValue,
    description="number of processed message start event subscriptions",
    projections=(
        Projection(
            table=MessageSubscriptionTable,
            create=lambda key, record, v: MessageSubscriptionTable(
                key=key,
                message_name=v.message_name,
                correlation_key=v.correlation_key,
                process_definition_key=v.process_definition_key,
                target_flow_node_id=v.start_event_id,
            ),
        ),
    ),
)


# ── Timer ────────────────────────────────────────────────────────────────

TIMER_SPEC = ImporterSpec(
    kind="timer",
    value_type=ValueType.TIMER,
    value_model=TimerValue,
    description="number of processed timers",
    projections=(
        Projection(
            table=TimerTable,
            create=lambda key, record, v: TimerTable(
                key=key,
                due_date=v.due_date,
                repetitions=v.repetitions,
                target_element_id=v.target_element_id,
                element_instance_key=v.element_instance_key,
                process_instance_key=v.process_instance_key,
                process_definition_key=v.process_definition_key,
            ),
        ),
    ),
)


# ── Error ────────────────────────────────────────────────────────────────

ERROR_SPEC = ImporterSpec(
    kind="error",
    value_type=ValueType.ERROR,
    value_model=ErrorValue,
    description="number of processed errors",
    projections=(
        Projection(
            table=ErrorTable,
            create=lambda key, record, v: ErrorTable(
                key=key,
                exception_message=v.exception_message,
                stacktrace=v.stacktrace,
                process_instance_key=v.process_instance_key,
            ),
            # error records carry no entity key of their own
            key_of=lambda record, v: v.error_event_position,
        ),
    ),
)


ALL_SPECS: tuple[ImporterSpec, ...] = (
    PROCESS_SPEC,
    PROCESS_INSTANCE_SPEC,
    VARIABLE_SPEC,
    JOB_SPEC,
    INCIDENT_SPEC,
    MESSAGE_SPEC,
    MESSAGE_SUBSCRIPTION_SPEC,
    MESSAGE_START_EVENT_SUBSCRIPTION_SPEC,
    TIMER_SPEC,
    ERROR_SPEC,
)
