"""Tests for EntityImporter and the per-domain importer declarations."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError

from helpers import PROCESS_DEFINITION_KEY, message_value, process_instance_value
from monitor_spine.core.errors import RecordImportError, StoreUnavailableError
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
from monitor_spine.core.repositories import EntityStore
from monitor_spine.importers.base import EntityImporter
from monitor_spine.importers.kinds import (
    ALL_SPECS,
    ERROR_SPEC,
    INCIDENT_SPEC,
    JOB_SPEC,
    MESSAGE_SPEC,
    MESSAGE_START_EVENT_SUBSCRIPTION_SPEC,
    MESSAGE_SUBSCRIPTION_SPEC,
    PROCESS_INSTANCE_SPEC,
    PROCESS_SPEC,
    TIMER_SPEC,
    VARIABLE_SPEC,
)


def _row(session_factory, table, key):
    with session_factory() as session:
        return EntityStore(session, table).get(key)


def _count(session_factory, table):
    with session_factory() as session:
        return EntityStore(session, table).count()


# =============================================================================
# Message -- the reference scenario
# =============================================================================


class TestMessageImporter:
    @pytest.fixture
    def importer(self, session_factory, registry):
        return EntityImporter(MESSAGE_SPEC, session_factory, registry)

    def test_creates_row_on_first_sight(self, importer, session_factory, make_record):
        importer.import_record(make_record("MESSAGE", "PUBLISHED", key=100, value=message_value(), timestamp=1))

        row = _row(session_factory, MessageTable, 100)
        assert row.name == "orderPlaced"
        assert row.correlation_key == "order-7"
        assert row.message_id == "msg-1"
        assert row.state == "published"
        assert row.timestamp == 1
        assert json.loads(row.payload) == {"amount": 42, "currency": "EUR"}

    def test_later_record_updates_state_only(self, importer, session_factory, make_record):
        importer.import_record(make_record("MESSAGE", "PUBLISHED", key=100, value=message_value(), timestamp=1))
        importer.import_record(
            make_record(
                "MESSAGE",
                "EXPIRED",
                key=100,
                value=message_value(name="renamed", variables={"other": True}),
                timestamp=2,
            )
        )

        row = _row(session_factory, MessageTable, 100)
        assert row.state == "expired"
        assert row.timestamp == 2
        assert row.name == "orderPlaced"
        assert json.loads(row.payload) == {"amount": 42, "currency": "EUR"}
        assert _count(session_factory, MessageTable) == 1

    def test_payload_is_canonical_json(self, importer, session_factory, make_record):
        importer.import_record(
            make_record("MESSAGE", "PUBLISHED", key=1, value=message_value(variables={"b": 1, "a": 2}))
        )
        assert _row(session_factory, MessageTable, 1).payload == '{"a": 2, "b": 1}'

    def test_replay_is_idempotent(self, importer, session_factory, make_record):
        record = make_record("MESSAGE", "PUBLISHED", key=100, value=message_value(), timestamp=1)
        importer.import_record(record)
        first = _row(session_factory, MessageTable, 100)
        importer.import_record(record)
        second = _row(session_factory, MessageTable, 100)

        assert (first.state, first.timestamp, first.payload) == (second.state, second.timestamp, second.payload)
        assert _count(session_factory, MessageTable) == 1

    def test_counter_counts_applied_records(self, importer, registry, make_record):
        importer.import_record(make_record("MESSAGE", "PUBLISHED", key=1, value=message_value()))
        importer.import_record(make_record("MESSAGE", "EXPIRED", key=1, value=message_value()))
        assert importer.processed == 2
        assert registry.get("monitor_importer_message_total").value == 2

    def test_invalid_value_rejected_without_writes(self, importer, session_factory, registry, make_record):
        with pytest.raises(RecordImportError) as exc_info:
            importer.import_record(make_record("MESSAGE", "PUBLISHED", key=5, value={"correlationKey": "x"}))

        assert exc_info.value.context.key == 5
        assert exc_info.value.context.value_type == "MESSAGE"
        assert _count(session_factory, MessageTable) == 0
        assert importer.processed == 0


# =============================================================================
# Process instances
# =============================================================================


class TestProcessInstanceImporter:
    PI = 2251799813685300

    @pytest.fixture
    def importer(self, session_factory, registry):
        return EntityImporter(PROCESS_INSTANCE_SPEC, session_factory, registry)

    def test_process_element_creates_instance_and_element_rows(self, importer, session_factory, make_record):
        importer.import_record(
            make_record(
                "PROCESS_INSTANCE", "ELEMENT_ACTIVATING", key=self.PI, value=process_instance_value(self.PI), timestamp=10
            )
        )

        instance = _row(session_factory, ProcessInstanceTable, self.PI)
        assert instance.start_time == 10
        assert instance.end_time is None
        assert instance.bpmn_process_id == "order-process"
        assert instance.process_definition_key == PROCESS_DEFINITION_KEY
        assert instance.state == "element_activating"

        element = _row(session_factory, ElementInstanceTable, self.PI)
        assert element.process_instance_key == self.PI
        assert element.bpmn_element_type == "PROCESS"

    def test_completion_sets_end_time_and_keeps_start(self, importer, session_factory, make_record):
        value = process_instance_value(self.PI)
        for intent, ts in [("ELEMENT_ACTIVATING", 10), ("ELEMENT_ACTIVATED", 11), ("ELEMENT_COMPLETED", 50)]:
            importer.import_record(make_record("PROCESS_INSTANCE", intent, key=self.PI, value=value, timestamp=ts))

        instance = _row(session_factory, ProcessInstanceTable, self.PI)
        assert instance.start_time == 10
        assert instance.end_time == 50
        assert instance.state == "element_completed"
        assert instance.timestamp == 50

    def test_termination_sets_end_time(self, importer, session_factory, make_record):
        value = process_instance_value(self.PI)
        importer.import_record(make_record("PROCESS_INSTANCE", "ELEMENT_ACTIVATING", key=self.PI, value=value, timestamp=1))
        importer.import_record(make_record("PROCESS_INSTANCE", "ELEMENT_TERMINATED", key=self.PI, value=value, timestamp=9))
        assert _row(session_factory, ProcessInstanceTable, self.PI).end_time == 9

    def test_inner_element_only_touches_element_instances(self, importer, session_factory, make_record):
        task_key = self.PI + 5
        importer.import_record(
            make_record(
                "PROCESS_INSTANCE",
                "ELEMENT_ACTIVATED",
                key=task_key,
                value=process_instance_value(self.PI, element_type="SERVICE_TASK", element_id="charge"),
            )
        )

        assert _row(session_factory, ElementInstanceTable, task_key).element_id == "charge"
        assert _count(session_factory, ProcessInstanceTable) == 0

    def test_store_outage_becomes_transient_error(self, make_record, registry):
        factory = MagicMock()
        factory.begin.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))
        importer = EntityImporter(PROCESS_INSTANCE_SPEC, factory, registry)

        with pytest.raises(StoreUnavailableError):
            importer.import_record(
                make_record("PROCESS_INSTANCE", "ELEMENT_ACTIVATING", key=self.PI, value=process_instance_value(self.PI))
            )
        assert importer.processed == 0


# =============================================================================
# Other domains
# =============================================================================


class TestOtherDomains:
    def test_process(self, session_factory, registry, make_record):
        EntityImporter(PROCESS_SPEC, session_factory, registry).import_record(
            make_record(
                "PROCESS",
                "CREATED",
                key=PROCESS_DEFINITION_KEY,
                value={
                    "bpmnProcessId": "order-process",
                    "version": 3,
                    "processDefinitionKey": PROCESS_DEFINITION_KEY,
                    "resourceName": "order.bpmn",
                    "resource": "PGRlZmluaXRpb25zLz4=",
                },
            )
        )
        row = _row(session_factory, ProcessTable, PROCESS_DEFINITION_KEY)
        assert (row.bpmn_process_id, row.version, row.resource_name) == ("order-process", 3, "order.bpmn")
        assert row.state == "created"

    def test_variable_value_follows_latest_record(self, session_factory, registry, make_record):
        importer = EntityImporter(VARIABLE_SPEC, session_factory, registry)
        value = {"name": "amount", "value": "42", "scopeKey": 7, "processInstanceKey": 7}
        importer.import_record(make_record("VARIABLE", "CREATED", key=30, value=value))
        importer.import_record(make_record("VARIABLE", "UPDATED", key=30, value={**value, "value": "43"}))

        row = _row(session_factory, VariableTable, 30)
        assert row.value == "43"
        assert row.state == "updated"
        assert row.process_instance_key == 7

    def test_job_retries_and_worker_follow_latest_record(self, session_factory, registry, make_record):
        importer = EntityImporter(JOB_SPEC, session_factory, registry)
        value = {"type": "charge", "retries": 3, "elementInstanceKey": 8, "processInstanceKey": 7}
        importer.import_record(make_record("JOB", "CREATED", key=40, value=value))
        importer.import_record(make_record("JOB", "FAILED", key=40, value={**value, "retries": 2, "worker": "w-1"}))

        row = _row(session_factory, JobTable, 40)
        assert (row.job_type, row.retries, row.worker, row.state) == ("charge", 2, "w-1", "failed")

    def test_incident_created_and_resolved(self, session_factory, registry, make_record):
        importer = EntityImporter(INCIDENT_SPEC, session_factory, registry)
        value = {
            "errorType": "JOB_NO_RETRIES",
            "errorMessage": "no more retries",
            "bpmnProcessId": "order-process",
            "processInstanceKey": 7,
            "elementInstanceKey": 8,
            "jobKey": 40,
        }
        importer.import_record(make_record("INCIDENT", "CREATED", key=50, value=value, timestamp=100))
        importer.import_record(make_record("INCIDENT", "RESOLVED", key=50, value=value, timestamp=200))

        row = _row(session_factory, IncidentTable, 50)
        assert (row.created, row.resolved, row.state) == (100, 200, "resolved")
        assert row.error_type == "JOB_NO_RETRIES"

    def test_message_subscription(self, session_factory, registry, make_record):
        EntityImporter(MESSAGE_SUBSCRIPTION_SPEC, session_factory, registry).import_record(
            make_record(
                "MESSAGE_SUBSCRIPTION",
                "CREATED",
                key=60,
                value={"messageName": "paid", "correlationKey": "order-7", "processInstanceKey": 7, "elementInstanceKey": 9},
            )
        )
        row = _row(session_factory, MessageSubscriptionTable, 60)
        assert (row.message_name, row.process_instance_key, row.element_instance_key) == ("paid", 7, 9)

    def test_start_event_subscription_has_no_instance(self, session_factory, registry, make_record):
        EntityImporter(MESSAGE_START_EVENT_SUBSCRIPTION_SPEC, session_factory, registry).import_record(
            make_record(
                "MESSAGE_START_EVENT_SUBSCRIPTION",
                "CREATED",
                key=61,
                value={"messageName": "start", "processDefinitionKey": PROCESS_DEFINITION_KEY, "startEventId": "s1"},
            )
        )
        row = _row(session_factory, MessageSubscriptionTable, 61)
        assert row.process_instance_key is None
        assert row.process_definition_key == PROCESS_DEFINITION_KEY
        assert row.target_flow_node_id == "s1"

    def test_timer(self, session_factory, registry, make_record):
        EntityImporter(TIMER_SPEC, session_factory, registry).import_record(
            make_record(
                "TIMER",
                "TRIGGERED",
                key=70,
                value={"dueDate": 1_700_000_060_000, "repetitions": 1, "targetElementId": "wait", "processInstanceKey": 7},
            )
        )
        row = _row(session_factory, TimerTable, 70)
        assert (row.due_date, row.repetitions, row.state) == (1_700_000_060_000, 1, "triggered")

    def test_error_keyed_by_event_position(self, session_factory, registry, make_record):
        EntityImporter(ERROR_SPEC, session_factory, registry).import_record(
            make_record(
                "ERROR",
                "CREATED",
                key=-1,
                value={"errorEventPosition": 4242, "exceptionMessage": "npe", "processInstanceKey": 7},
            )
        )
        assert _row(session_factory, ErrorTable, -1) is None
        row = _row(session_factory, ErrorTable, 4242)
        assert row.exception_message == "npe"
        assert row.process_instance_key == 7


# =============================================================================
# Constraint races
# =============================================================================


class TestIntegrityRetry:
    @pytest.fixture
    def importer(self, session_factory, registry):
        return EntityImporter(MESSAGE_SPEC, session_factory, registry)

    def test_retried_once(self, importer, make_record):
        record = make_record("MESSAGE", "PUBLISHED", key=1, value=message_value())
        race = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        with patch.object(importer, "_apply", side_effect=[race, []]) as apply:
            importer.import_record(record)
        assert apply.call_count == 2
        assert importer.processed == 1

    def test_second_failure_rejects_record(self, importer, make_record):
        record = make_record("MESSAGE", "PUBLISHED", key=1, value=message_value())
        race = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        with patch.object(importer, "_apply", side_effect=[race, race]):
            with pytest.raises(RecordImportError):
                importer.import_record(record)
        assert importer.processed == 0


# =============================================================================
# Records the store rejects
# =============================================================================


class TestStoreRejections:
    @pytest.fixture
    def importer(self, session_factory, registry):
        return EntityImporter(MESSAGE_SPEC, session_factory, registry)

    @pytest.mark.parametrize(
        "failure",
        [
            OverflowError("Python int too large to convert to SQLite INTEGER"),
            DataError("INSERT", {}, Exception("value out of range for type bigint")),
        ],
    )
    def test_driver_rejection_becomes_import_error(self, importer, make_record, failure):
        record = make_record("MESSAGE", "PUBLISHED", key=1, value=message_value())
        with patch.object(importer, "_apply", side_effect=failure):
            with pytest.raises(RecordImportError) as exc_info:
                importer.import_record(record)

        assert exc_info.value.context.key == 1
        assert exc_info.value.context.value_type == "MESSAGE"
        assert importer.processed == 0

    def test_invalidated_connection_is_transient(self, make_record, registry):
        factory = MagicMock()
        factory.begin.side_effect = DBAPIError("INSERT", {}, Exception("server closed"), connection_invalidated=True)
        importer = EntityImporter(MESSAGE_SPEC, factory, registry)

        with pytest.raises(StoreUnavailableError):
            importer.import_record(make_record("MESSAGE", "PUBLISHED", key=1, value=message_value()))

    def test_out_of_range_value_key_rejected_before_store(self, session_factory, registry, make_record):
        importer = EntityImporter(JOB_SPEC, session_factory, registry)
        record = make_record(
            "JOB", "CREATED", key=5, value={"type": "charge", "processInstanceKey": 2**64}
        )

        with pytest.raises(RecordImportError) as exc_info:
            importer.import_record(record)

        assert exc_info.value.context.key == 5
        assert _count(session_factory, JobTable) == 0


def test_one_spec_per_domain():
    assert len({spec.value_type for spec in ALL_SPECS}) == len(ALL_SPECS) == 10
    assert len({spec.kind for spec in ALL_SPECS}) == len(ALL_SPECS)
