"""Workflow-engine export records.

The engine exports one JSON document per record::

    {
      "partitionId": 1,
      "position": 4294967345,
      "key": 2251799813685251,
      "timestamp": 1700000000000,
      "recordType": "EVENT",
      "valueType": "MESSAGE",
      "intent": "PUBLISHED",
      "value": {"name": "orderCreated", "correlationKey": "order-1", ...}
    }

:class:`Record` models the metadata envelope; the ``value`` mapping is
validated lazily by the importer of the matching domain against one of the
``*Value`` models below, so that an unknown domain or a malformed payload
fails only that one record.

``recordType`` and ``valueType`` stay raw strings on the envelope: the
dispatcher classifies them, and an unexpected value must reach it instead
of failing decoding.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from monitor_spine.core.errors import RecordDecodeError

# Engine keys, positions and timestamps are signed 64-bit longs; anything
# wider cannot be stored in a BIGINT column.
Int64 = Annotated[int, Field(ge=-(2**63), le=2**63 - 1)]


class RecordType(str, Enum):
    """Classification of a record within the log."""

    EVENT = "EVENT"
    COMMAND = "COMMAND"
    COMMAND_REJECTION = "COMMAND_REJECTION"


class ValueType(str, Enum):
    """Record domains materialized by monitor-spine."""

    PROCESS = "PROCESS"
    PROCESS_INSTANCE = "PROCESS_INSTANCE"
    VARIABLE = "VARIABLE"
    JOB = "JOB"
    INCIDENT = "INCIDENT"
    MESSAGE = "MESSAGE"
    MESSAGE_SUBSCRIPTION = "MESSAGE_SUBSCRIPTION"
    MESSAGE_START_EVENT_SUBSCRIPTION = "MESSAGE_START_EVENT_SUBSCRIPTION"
    TIMER = "TIMER"
    ERROR = "ERROR"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class Record(_CamelModel):
    """Metadata envelope plus raw domain value."""

    partition_id: int = 0
    position: Int64 = 0
    key: Int64
    timestamp: Int64
    record_type: str
    value_type: str
    intent: str
    value: dict[str, Any] = Field(default_factory=dict)

    @property
    def state(self) -> str:
        """Lifecycle label stored for this record (lowercased intent)."""
        return self.intent.lower()


# ── Domain values ────────────────────────────────────────────────────────


class ProcessValue(_CamelModel):
    bpmn_process_id: str
    version: int
    process_definition_key: Int64
    resource_name: str | None = None
    resource: str | None = None


class ProcessInstanceValue(_CamelModel):
    bpmn_process_id: str
    version: int
    process_definition_key: Int64
    process_instance_key: Int64
    element_id: str | None = None
    flow_scope_key: Int64 | None = None
    bpmn_element_type: str
    parent_process_instance_key: Int64 | None = None
    parent_element_instance_key: Int64 | None = None


class VariableValue(_CamelModel):
    name: str
    value: str | None = None
    scope_key: Int64 | None = None
    process_instance_key: Int64


class JobValue(_CamelModel):
    type: str
    worker: str | None = None
    retries: int | None = None
    element_instance_key: Int64 | None = None
    process_instance_key: Int64


class IncidentValue(_CamelModel):
    error_type: str | None = None
    error_message: str | None = None
    bpmn_process_id: str | None = None
    process_definition_key: Int64 | None = None
    process_instance_key: Int64
    element_instance_key: Int64 | None = None
    job_key: Int64 | None = None


class MessageValue(_CamelModel):
    name: str
    correlation_key: str | None = None
    message_id: str | None = None
    time_to_live: int | None = None
    variables: dict[str, Any] = Field(default_factory=dict)


class MessageSubscriptionValue(_CamelModel):
    message_name: str
    correlation_key: str | None = None
    process_instance_key: Int64
    element_instance_key: Int64 | None = None


class MessageStartEventSubscriptionValue(_CamelModel):
    message_name: str
    correlation_key: str | None = None
    process_definition_key: Int64
    start_event_id: str | None = None
    process_instance_key: Int64 | None = None


class TimerValue(_CamelModel):
    due_date: Int64
    repetitions: int
    target_element_id: str | None = None
    element_instance_key: Int64 | None = None
    process_instance_key: Int64 | None = None
    process_definition_key: Int64 | None = None


class ErrorValue(_CamelModel):
    exception_message: str | None = None
    stacktrace: str | None = None
    error_event_position: Int64
    process_instance_key: Int64 | None = None


# ── Decoding ─────────────────────────────────────────────────────────────


def decode_record(payload: bytes | str | Mapping[str, Any]) -> Record:
    """Decode one exported record.

    Accepts the raw JSON text (``bytes``/``str``) or an already parsed
    mapping.

    Raises:
        RecordDecodeError: if the payload is not JSON or lacks envelope fields.
    """
    try:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        data = json.loads(payload) if isinstance(payload, str) else payload
        if not isinstance(data, Mapping):
            raise RecordDecodeError(f"record must be a JSON object, got {type(data).__name__}")
        return Record.model_validate(data)
    except RecordDecodeError:
        raise
    except ValidationError as exc:
        # data is a mapping here; keep what identifies the record for the log
        raise RecordDecodeError(f"undecodable record: {exc}", cause=exc).with_context(
            key=data.get("key"), value_type=data.get("valueType"), position=data.get("position")
        ) from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RecordDecodeError(f"undecodable record: {exc}", cause=exc) from exc


__all__ = [
    "RecordType",
    "ValueType",
    "Record",
    "ProcessValue",
    "ProcessInstanceValue",
    "VariableValue",
    "JobValue",
    "IncidentValue",
    "MessageValue",
    "MessageSubscriptionValue",
    "MessageStartEventSubscriptionValue",
    "TimerValue",
    "ErrorValue",
    "decode_record",
]
