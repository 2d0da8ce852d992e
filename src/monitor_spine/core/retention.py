"""Data retention for materialized process instances.

Process instances whose start time lies further back than the retention
window are removed together with everything recorded under them. One
sweep handles at most ``batch_size`` instances so a single transaction
stays small; later sweeps pick up the remainder.

┌──────────────────────────────────────────────────────────────────────────┐
│  RetentionSweeper.run_cycle()                                             │
│                                                                           │
│   disabled? ──► skipped result, nothing touched                           │
│   wait uniform(jitter_min, jitter_max)     ◄── interrupt() aborts here    │
│   with session_factory.begin():            ◄── one transaction            │
│       keys = process instances with start_time < cutoff (≤ batch_size)    │
│       delete element instances, variables, jobs, incidents,               │
│              message subscriptions, timers, errors  WHERE pi_key IN keys  │
│       delete process instances               WHERE key IN keys            │
└──────────────────────────────────────────────────────────────────────────┘

Timestamps are epoch milliseconds, the unit the engine exports.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from monitor_spine.core.errors import RetentionError, RetentionInterruptedError
from monitor_spine.core.logging import LogContext, get_logger
from monitor_spine.core.orm.tables import PROCESS_INSTANCE_DEPENDENTS, ProcessInstanceTable
from monitor_spine.core.repositories import EntityStore, ProcessInstanceStore
from monitor_spine.core.settings import MonitorSettings
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime."""
    return int(moment.timestamp() * 1000)


def compute_cutoff(days: int, now: datetime | None = None) -> int:
    """Cutoff for a retention window of *days*, in epoch milliseconds.

    Instances that started strictly before the cutoff are expired.
    """
    return epoch_ms((now or _utcnow()) - timedelta(days=days))


@dataclass
class SweepResult:
    """Outcome of one retention cycle."""

    cutoff: int | None = None
    keys: list[int] = field(default_factory=list)
    deleted: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0
    skipped: bool = False

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())

    @property
    def process_instances_deleted(self) -> int:
        return self.deleted.get(ProcessInstanceTable.__tablename__, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cutoff": self.cutoff,
            "keys": len(self.keys),
            "deleted": dict(self.deleted),
            "total_deleted": self.total_deleted,
            "duration_seconds": round(self.duration_seconds, 3),
            "skipped": self.skipped,
        }


class RetentionSweeper:
    """Deletes expired process instances and their dependent rows.

    Example:
        >>> sweeper = RetentionSweeper(session_factory, enabled=True, days=7)
        >>> result = sweeper.run_cycle(jitter=False)
        >>> result.process_instances_deleted
        32
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        enabled: bool = False,
        days: int = 7,
        batch_size: int = 32,
        jitter_min: float = 8.192,
        jitter_max: float = 16.384,
        registry: MetricsRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        if days < 0:
            raise ValueError("days must be >= 0")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if jitter_min > jitter_max:
            raise ValueError("jitter_min must not exceed jitter_max")

        self._sessions = session_factory
        self.enabled = enabled
        self.days = days
        self.batch_size = batch_size
        self.jitter_min = jitter_min
        self.jitter_max = jitter_max
        self._clock = clock
        self._rng = rng or random.Random(time.monotonic_ns())
        self._interrupt = threading.Event()

        registry = registry or get_metrics_registry()
        self._deleted = registry.counter(
            "monitor_retention_deleted_total",
            "rows removed by the retention sweeper",
            ["table"],
        )
        self._failures = registry.counter(
            "monitor_retention_failures_total",
            "retention sweeps rolled back",
        )
        self._duration = registry.histogram(
            "monitor_retention_sweep_seconds",
            "duration of retention sweeps",
        )

    @classmethod
    def from_settings(
        cls,
        settings: MonitorSettings,
        session_factory: sessionmaker[Session],
        registry: MetricsRegistry | None = None,
    ) -> RetentionSweeper:
        return cls(
            session_factory,
            enabled=settings.retention_enabled,
            days=settings.retention_days,
            batch_size=settings.retention_batch_size,
            jitter_min=settings.retention_jitter_min_seconds,
            jitter_max=settings.retention_jitter_max_seconds,
            registry=registry,
        )

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def compute_cutoff(self, now: datetime | None = None) -> int:
        return compute_cutoff(self.days, now or self._clock())

    def jitter_delay(self) -> float:
        return self._rng.uniform(self.jitter_min, self.jitter_max)

    def wait_jitter(self) -> float:
        """Sleep for a random jitter delay.

        Spreads sweeps of several monitor instances sharing one store.

        Raises:
            RetentionInterruptedError: :meth:`interrupt` was called.
        """
        delay = self.jitter_delay()
        logger.debug("retention.jitter", delay=round(delay, 3))
        if self._interrupt.wait(delay):
            self._interrupt.clear()
            raise RetentionInterruptedError("retention jitter wait interrupted").with_context(
                delay=delay
            )
        return delay

    def interrupt(self) -> None:
        """Abort a pending jitter wait; the current cycle deletes nothing."""
        self._interrupt.set()

    def clear_interrupt(self) -> None:
        """Drop an interrupt no jitter wait has consumed yet."""
        self._interrupt.clear()

    def select_expired(self, session: Session, cutoff: int) -> list[int]:
        """Keys of at most ``batch_size`` instances started before *cutoff*."""
        return ProcessInstanceStore(session).find_keys_started_before(cutoff, self.batch_size)

    def cascade_delete(self, session: Session, keys: list[int]) -> dict[str, int]:
        """Delete *keys* and every row owned by them. Returns counts per table.

        Dependents go first so no row is left pointing at a missing instance.
        """
        deleted: dict[str, int] = {}
        if not keys:
            return deleted
        for table in PROCESS_INSTANCE_DEPENDENTS:
            deleted[table.__tablename__] = EntityStore(session, table).delete_by_process_instance_keys(keys)
        deleted[ProcessInstanceTable.__tablename__] = ProcessInstanceStore(session).delete_by_keys(keys)
        return deleted

    # ------------------------------------------------------------------ #
    # Cycle
    # ------------------------------------------------------------------ #

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """Select and delete one batch in a single transaction (no jitter).

        Raises:
            RetentionError: the store failed; the batch was rolled back.
        """
        started = time.perf_counter()
        cutoff = self.compute_cutoff(now)
        with LogContext(retention_cutoff=cutoff):
            logger.info("retention.sweep.start", days=self.days, batch_size=self.batch_size)
            try:
                with self._sessions.begin() as session:
                    keys = self.select_expired(session, cutoff)
                    deleted = self.cascade_delete(session, keys)
            except SQLAlchemyError as exc:
                self._failures.inc()
                error = RetentionError(f"retention sweep rolled back: {exc}", cause=exc).with_context(cutoff=cutoff)
                logger.error("retention.sweep.failed", error=error)
                raise error from exc

        result = SweepResult(
            cutoff=cutoff,
            keys=keys,
            deleted=deleted,
            duration_seconds=time.perf_counter() - started,
        )
        for table, count in deleted.items():
            if count:
                self._deleted.labels(table=table).inc(count)
        self._duration.observe(result.duration_seconds)
        logger.info("retention.sweep.done", **result.to_dict())
        return result

    def run_cycle(self, jitter: bool = True) -> SweepResult:
        """One scheduled cycle: jitter wait, then :meth:`sweep`.

        Returns a skipped result without touching the store when disabled.
        """
        if not self.enabled:
            logger.debug("retention.disabled")
            return SweepResult(skipped=True)
        if jitter:
            self.wait_jitter()
        return self.sweep()


__all__ = ["RetentionSweeper", "SweepResult", "compute_cutoff", "epoch_ms"]
