"""Record builders shared by the test modules."""

from __future__ import annotations

import itertools
from typing import Any

_positions = itertools.count(1)

PROCESS_DEFINITION_KEY = 2251799813685249


def build_record(
    value_type: str,
    intent: str,
    *,
    key: int,
    value: dict[str, Any],
    timestamp: int = 1_700_000_000_000,
    record_type: str = "EVENT",
    partition_id: int = 1,
    position: int | None = None,
) -> dict[str, Any]:
    """Exported JSON document in the engine's camelCase layout."""
    return {
        "partitionId": partition_id,
        "position": position if position is not None else next(_positions),
        "key": key,
        "timestamp": timestamp,
        "recordType": record_type,
        "valueType": value_type,
        "intent": intent,
        "value": value,
    }


def message_value(**overrides: Any) -> dict[str, Any]:
    value = {
        "name": "orderPlaced",
        "correlationKey": "order-7",
        "messageId": "msg-1",
        "timeToLive": 60_000,
        "variables": {"amount": 42, "currency": "EUR"},
    }
    value.update(overrides)
    return value


def process_instance_value(
    process_instance_key: int,
    *,
    element_type: str = "PROCESS",
    element_id: str = "order-process",
    **overrides: Any,
) -> dict[str, Any]:
    value = {
        "bpmnProcessId": "order-process",
        "version": 1,
        "processDefinitionKey": PROCESS_DEFINITION_KEY,
        "processInstanceKey": process_instance_key,
        "elementId": element_id,
        "flowScopeKey": -1 if element_type == "PROCESS" else process_instance_key,
        "bpmnElementType": element_type,
        "parentProcessInstanceKey": -1,
        "parentElementInstanceKey": -1,
    }
    value.update(overrides)
    return value
