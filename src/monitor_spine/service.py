"""Monitor service lifecycle.

Wires settings, entity store, importers, stream consumer and retention
sweeper into one object with ``start`` / ``stop`` / ``health``.

┌──────────────────────────────────────────────────────────────────────────┐
│  MonitorService                                                           │
│                                                                           │
│   engine ── session_factory ──┬── RecordDispatcher ── StreamConsumer      │
│                               │                        (consumer thread)  │
│                               └── RetentionSweeper ─── ThreadScheduler    │
│                                                        (sweeper thread)   │
└──────────────────────────────────────────────────────────────────────────┘

Example:
    >>> service = MonitorService.from_settings(get_settings())
    >>> service.start()
    >>> service.health()["healthy"]
    True
    >>> service.stop()
"""

from __future__ import annotations

import signal
import threading
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from monitor_spine.core.logging import get_logger
from monitor_spine.core.orm.session import create_monitor_engine, init_schema, monitor_session_factory
from monitor_spine.core.retention import RetentionSweeper
from monitor_spine.core.retry import ExponentialBackoff
from monitor_spine.core.scheduling import ThreadSchedulerBackend
from monitor_spine.core.settings import MonitorSettings
from monitor_spine.importers.dispatcher import RecordDispatcher
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry
from monitor_spine.streams.consumer import StreamConsumer
from monitor_spine.streams.protocol import StreamClient
from monitor_spine.streams.redis_streams import RedisStreamClient

logger = get_logger(__name__)


class MonitorService:
    """Owns the consumer thread and the retention schedule."""

    def __init__(
        self,
        settings: MonitorSettings,
        *,
        engine: Engine | None = None,
        stream_client: StreamClient | None = None,
        registry: MetricsRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or get_metrics_registry()

        self._owns_engine = engine is None
        self.engine = engine or create_monitor_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
        )
        init_schema(self.engine)
        self.session_factory = monitor_session_factory(self.engine)

        self.dispatcher = RecordDispatcher.from_specs(self.session_factory, registry=self.registry)
        self.client = stream_client or RedisStreamClient(
            settings.redis_url,
            group=settings.redis_consumer_group,
            consumer=settings.redis_consumer_name,
            stream_prefix=settings.redis_stream_prefix,
        )
        self.consumer = StreamConsumer(
            self.client,
            self.dispatcher,
            batch_size=settings.redis_xread_count,
            block_ms=settings.redis_xread_block_millis,
            backoff=ExponentialBackoff(
                base_delay=settings.reconnect_base_delay,
                max_delay=settings.reconnect_max_delay,
            ),
            registry=self.registry,
        )
        self.sweeper = RetentionSweeper.from_settings(settings, self.session_factory, self.registry)
        self.scheduler = ThreadSchedulerBackend(name="retention", join_timeout=30.0)
        self._stopped = threading.Event()
        self._started = False

    @classmethod
    def from_settings(cls, settings: MonitorSettings, **kwargs: Any) -> MonitorService:
        return cls(settings, **kwargs)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Start consuming; schedule retention when enabled."""
        if self._started:
            return
        self._stopped.clear()
        self.consumer.start_background()
        if self.sweeper.enabled:
            # an interrupt from a previous stop() that hit an idle sweeper
            self.sweeper.clear_interrupt()
            self.scheduler.start(
                self.sweeper.run_cycle,
                interval_seconds=self.settings.retention_interval_seconds,
                run_immediately=True,
            )
        self._started = True
        logger.info(
            "service.started",
            retention_enabled=self.sweeper.enabled,
            retention_days=self.sweeper.days,
            domains=self.dispatcher.domains,
        )

    def stop(self) -> None:
        """Stop sweeper and consumer; unacknowledged entries stay pending."""
        if not self._started:
            return
        self.sweeper.interrupt()
        self.scheduler.stop()
        self.consumer.stop()
        if self._owns_engine:
            self.engine.dispose()
        self._started = False
        self._stopped.set()
        logger.info("service.stopped")

    def run_forever(self) -> None:
        """Start and block until SIGINT/SIGTERM."""

        def _handle(signum: int, frame: Any) -> None:
            logger.info("service.signal", signal=signal.Signals(signum).name)
            self._stopped.set()

        signal.signal(signal.SIGINT, _handle)
        signal.signal(signal.SIGTERM, _handle)
        self.start()
        try:
            while not self._stopped.wait(1.0):
                pass
        finally:
            self.stop()

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    def database_ok(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("service.database_unreachable")
            return False

    def health(self) -> dict[str, Any]:
        consumer = self.consumer.health()
        database = self.database_ok()
        retention = self.scheduler.health() if self.sweeper.enabled else {"healthy": True, "enabled": False}
        return {
            "healthy": consumer["healthy"] and database and retention["healthy"],
            "consumer": consumer,
            "database": {"healthy": database},
            "retention": retention,
        }


__all__ = ["MonitorService"]
