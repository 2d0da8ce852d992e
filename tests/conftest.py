"""
Shared pytest fixtures for monitor-spine tests.

This module provides:
- In-memory SQLite engine / session factory with the entity schema
- An isolated metrics registry per test
- ``make_record`` -- builder for exported record envelopes
- structlog reset so tests never depend on a previous configure_logging()
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator
from typing import Any

import pytest
import structlog

from monitor_spine.core.orm import create_monitor_engine, init_schema, monitor_session_factory
from monitor_spine.core.settings import clear_settings_cache
from monitor_spine.observability.metrics import MetricsRegistry
from monitor_spine.records import Record

from helpers import build_record

# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_global_state() -> Generator[None, None, None]:
    """Drop cached settings and structlog configuration around each test."""
    clear_settings_cache()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    clear_settings_cache()
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _clean_monitor_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Ignore MONITOR_* variables and .env files of the developer machine."""
    for name in list(os.environ):
        if name.startswith("MONITOR_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with all entity tables created."""
    eng = create_monitor_engine("sqlite:///:memory:")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return monitor_session_factory(engine)


@pytest.fixture
def registry() -> MetricsRegistry:
    """Fresh registry so counters start at zero in every test."""
    return MetricsRegistry()


# =============================================================================
# Records
# =============================================================================


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Build a decoded :class:`Record`; same arguments as :func:`build_record`."""

    def _make(*args: Any, **kwargs: Any) -> Record:
        return Record.model_validate(build_record(*args, **kwargs))

    return _make


@pytest.fixture
def make_payload() -> Callable[..., bytes]:
    """Build the raw JSON bytes of a record as found on the stream."""

    def _make(*args: Any, **kwargs: Any) -> bytes:
        return json.dumps(build_record(*args, **kwargs)).encode("utf-8")

    return _make


