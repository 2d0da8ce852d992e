"""Tests for the MonitorService lifecycle (in-memory stream, in-memory store)."""

from __future__ import annotations

import time

import pytest

from helpers import message_value, process_instance_value
from monitor_spine.core.orm.tables import MessageTable, ProcessInstanceTable
from monitor_spine.core.repositories import EntityStore
from monitor_spine.core.retention import epoch_ms
from monitor_spine.core.settings import MonitorSettings
from monitor_spine.service import MonitorService
from monitor_spine.streams.memory import InMemoryStreamClient


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _settings(**overrides) -> MonitorSettings:
    values = {
        "redis_xread_block_millis": 10,
        "reconnect_base_delay": 0.01,
        "reconnect_max_delay": 0.05,
        "retention_jitter_min_seconds": 0.0,
        "retention_jitter_max_seconds": 0.0,
    }
    values.update(overrides)
    return MonitorSettings(**values)


@pytest.fixture
def client():
    return InMemoryStreamClient()


@pytest.fixture
def make_service(engine, client, registry):
    services = []

    def _make(**overrides) -> MonitorService:
        service = MonitorService(_settings(**overrides), engine=engine, stream_client=client, registry=registry)
        services.append(service)
        return service

    yield _make
    for service in services:
        service.stop()


def test_consumes_records(make_service, client, make_payload):
    service = make_service()
    service.start()
    client.publish("zeebe:MESSAGE", make_payload("MESSAGE", "PUBLISHED", key=100, value=message_value()))

    assert _wait_for(lambda: len(client.acked) == 1)
    with service.session_factory() as session:
        assert EntityStore(session, MessageTable).get(100).state == "published"


def test_health(make_service, client):
    service = make_service()
    service.start()
    assert _wait_for(lambda: service.health()["healthy"])

    health = service.health()
    assert health["database"] == {"healthy": True}
    assert health["retention"] == {"healthy": True, "enabled": False}
    assert health["consumer"]["client"] == "memory"


def test_unhealthy_before_start(make_service):
    assert make_service().health()["healthy"] is False


def test_retention_disabled_never_scheduled(make_service):
    service = make_service(retention_enabled=False)
    service.start()
    assert service.scheduler.is_running is False


def test_retention_runs_at_startup(make_service, client, make_payload):
    service = make_service(retention_enabled=True, retention_days=7)
    old = epoch_ms(service.sweeper._clock()) - 30 * 24 * 3600 * 1000
    pi = 2251799813685300
    client.publish(
        "zeebe:PROCESS_INSTANCE",
        make_payload("PROCESS_INSTANCE", "ELEMENT_ACTIVATING", key=pi, value=process_instance_value(pi), timestamp=old),
    )
    client.connect()
    service.consumer.run_once()
    with service.session_factory() as session:
        assert EntityStore(session, ProcessInstanceTable).count() == 1

    service.start()

    def _expired() -> bool:
        with service.session_factory() as session:
            return EntityStore(session, ProcessInstanceTable).count() == 0

    assert _wait_for(_expired)
    assert service.scheduler.tick_count >= 1
    assert service.health()["retention"]["healthy"] is True


def test_stop_is_idempotent(make_service):
    service = make_service()
    service.start()
    service.stop()
    service.stop()
    assert service.consumer.is_running is False


def test_start_twice_keeps_one_consumer(make_service):
    service = make_service()
    service.start()
    thread = service.consumer._thread
    service.start()
    assert service.consumer._thread is thread


def test_restart_after_stop_sweeps_again(make_service):
    service = make_service(retention_enabled=True, retention_days=7)
    service.start()
    assert _wait_for(lambda: service.scheduler.tick_count >= 1)
    service.stop()
    failures = service.scheduler.health()["failures"]

    old = epoch_ms(service.sweeper._clock()) - 30 * 24 * 3600 * 1000
    with service.session_factory.begin() as session:
        session.add(
            ProcessInstanceTable(key=1, bpmn_process_id="p", version=1, process_definition_key=1, start_time=old)
        )

    service.start()

    def _expired() -> bool:
        with service.session_factory() as session:
            return EntityStore(session, ProcessInstanceTable).count() == 0

    assert _wait_for(_expired)
    assert service.scheduler.health()["failures"] == failures
