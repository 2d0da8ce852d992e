"""
Structured logging for monitor-spine.

The importer and the retention sweeper run unattended; their log events are
the only trace of a skipped record or a rolled-back sweep. Events are
key/value pairs so an operator can search by ``key``, ``value_type``,
``stream`` or ``position``.

Processor chain built by :func:`configure_logging`:
    ::

        TimeStamper(iso) -> add_log_level -> add_logger_name
            -> merge_contextvars            (LogContext / bind_context)
            -> _service_fields              service.name, service.version
            -> _expand_monitor_errors       error=<MonitorError> -> dict
            -> [JSON] format_exc_info, _ecs_field_names, JSONRenderer
            -> [console] ConsoleRenderer

Example:
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> with LogContext(consumer="monitor-1"):
    ...     logger.info("consumer.started", group="simple-monitor")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from monitor_spine import __version__
from monitor_spine.core.errors import MonitorError

_service_name = "monitor-spine"


def _service_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    event_dict.setdefault("service.version", __version__)
    return event_dict


def _expand_monitor_errors(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Render ``error=MonitorError(...)`` with its category and record context."""
    error = event_dict.get("error")
    if isinstance(error, MonitorError):
        event_dict["error"] = error.to_dict()
    return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename timestamp and level to their Elastic Common Schema names."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "monitor-spine",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        json_format: JSON lines when True, coloured console output when
            False, JSON unless stdout is a terminal when None.
        service: Value of ``service.name`` on every event.
    """
    global _service_name
    _service_name = service

    if json_format is None:
        json_format = not sys.stdout.isatty()
    numeric_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_fields,
        _expand_monitor_errors,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, _ecs_field_names, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and SQLAlchemy records go through the same handler
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every later event of the current thread or task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Scoped :func:`bind_context`; restores the previous values on exit.

    Example:
        with LogContext(sweep_cutoff=cutoff_ms):
            logger.info("retention.sweep.start")
    """

    def __init__(self, **kwargs: Any):
        self._fields = kwargs
        self._previous: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        current = structlog.contextvars.get_contextvars()
        self._previous = {k: current[k] for k in self._fields if k in current}
        bind_context(**self._fields)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self._fields)
        if self._previous:
            bind_context(**self._previous)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "LogContext",
]
