"""Stream consumer: pull, decode, dispatch, acknowledge.

┌──────────────────────────────────────────────────────────────────────────┐
│  StreamConsumer._run_loop()                                               │
│                                                                           │
│   connect ──► while not shutdown:                                         │
│                 entries = client.pull(batch_size, block_ms)               │
│                 for entry in entries:          ◄── one worker, log order  │
│                     record = decode_record(entry.payload)                 │
│                     dispatcher.dispatch(record)                           │
│                     client.ack(entry)          ◄── only after hand-off    │
│                                                                           │
│   TransientError ──► backoff ──► reconnect ──► pending entries replayed   │
└──────────────────────────────────────────────────────────────────────────┘

Undecodable payloads and records the importer or the store rejects are
logged and acknowledged so they cannot block the records behind them. Only
a retryable failure, such as a store outage
(:class:`~monitor_spine.core.errors.StoreUnavailableError`), leaves the
entry unacknowledged; it is delivered again after reconnect.
"""

from __future__ import annotations

import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from monitor_spine.core.errors import RecordDecodeError, TransientError, categorize_error, is_retryable
from monitor_spine.core.logging import LogContext, get_logger
from monitor_spine.core.retry import BackoffPolicy, ExponentialBackoff
from monitor_spine.importers.dispatcher import DispatchOutcome, RecordDispatcher
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry
from monitor_spine.records import decode_record
from monitor_spine.streams.protocol import StreamClient, StreamEntry

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ConsumerStats:
    """Aggregate statistics for a consumer."""

    rounds: int = 0
    received: int = 0
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    unknown_domain: int = 0
    undecodable: int = 0
    reconnects: int = 0
    last_round_at: datetime | None = None
    started_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rounds": self.rounds,
            "received": self.received,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "unknown_domain": self.unknown_domain,
            "undecodable": self.undecodable,
            "reconnects": self.reconnects,
            "last_round_at": self.last_round_at.isoformat() if self.last_round_at else None,
            "uptime_seconds": round((_utcnow() - self.started_at).total_seconds(), 2),
        }


class StreamConsumer:
    """Feeds event-log entries to the dispatcher on a single worker thread.

    Records for one key must be applied in log order, so there is exactly
    one loop per consumer and entries are handled sequentially.

    Example:
        >>> consumer = StreamConsumer(client, dispatcher, batch_size=500, block_ms=2000)
        >>> consumer.start_background()
        >>> ...
        >>> consumer.stop()
    """

    def __init__(
        self,
        client: StreamClient,
        dispatcher: RecordDispatcher,
        *,
        batch_size: int = 500,
        block_ms: int = 2000,
        backoff: BackoffPolicy | None = None,
        registry: MetricsRegistry | None = None,
        name: str = "stream-consumer",
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._client = client
        self._dispatcher = dispatcher
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._backoff = backoff or ExponentialBackoff()
        self._name = name
        self._shutdown = threading.Event()
        self._connected = False
        self._ever_connected = False
        self._thread: threading.Thread | None = None
        self._stats = ConsumerStats()

        registry = registry or get_metrics_registry()
        self._records = registry.counter(
            "monitor_consumer_records_total",
            "stream entries handled by outcome",
            ["outcome"],
        )
        self._reconnects = registry.counter(
            "monitor_consumer_reconnects_total",
            "reconnects after transport or store failures",
        )
        self._last_round = registry.gauge(
            "monitor_consumer_last_round_timestamp_seconds",
            "unix time of the last completed pull round",
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the consume loop (blocking) until :meth:`stop` or SIGINT/SIGTERM."""
        logger.info(
            "consumer.starting",
            consumer=self._name,
            client=self._client.name,
            batch_size=self._batch_size,
            block_ms=self._block_ms,
            domains=self._dispatcher.domains,
        )

        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)

        try:
            with LogContext(stream_client=self._client.name):
                self._run_loop()
        finally:
            self._client.close()
            self._connected = False
            logger.info("consumer.stopped", consumer=self._name, **self._stats.to_dict())

    def start_background(self) -> threading.Thread:
        """Run the consume loop in a daemon thread. Returns the thread."""
        self._shutdown.clear()
        self._thread = threading.Thread(target=self.start, name=f"{self._name}-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = 10.0) -> None:
        """Request shutdown; waits for the background thread when there is one.

        Entries pulled but not yet handled stay unacknowledged.
        """
        logger.info("consumer.stopping", consumer=self._name)
        self._shutdown.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            self._thread = None

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running and self._connected,
            "running": self.is_running,
            "connected": self._connected,
            "client": self._client.name,
            "stats": self._stats.to_dict(),
        }

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def _run_loop(self) -> None:
        attempt = 0
        while not self._shutdown.is_set():
            try:
                if not self._connected:
                    self._connect()
                self.run_once()
                attempt = 0
            except TransientError as exc:
                self._connected = False
                logger.warning(
                    "consumer.transient_failure",
                    consumer=self._name,
                    attempt=attempt,
                    error=exc.to_dict(),
                )
                self._pause(attempt)
                attempt += 1
            except Exception as exc:
                # the entry that triggered it is still pending
                self._connected = False
                logger.exception(
                    "consumer.round_failed",
                    consumer=self._name,
                    attempt=attempt,
                    category=categorize_error(exc).value,
                )
                self._pause(attempt)
                attempt += 1

    def run_once(self) -> int:
        """Pull one batch and handle it. Returns the number of entries pulled.

        Raises:
            TransientError: transport or store failure; remaining entries
                stay unacknowledged.
        """
        entries = self._client.pull(self._batch_size, self._block_ms)
        self._stats.rounds += 1
        self._stats.received += len(entries)

        for entry in entries:
            if self._shutdown.is_set():
                break
            self._handle(entry)
            self._client.ack(entry)

        self._stats.last_round_at = _utcnow()
        self._last_round.set(time.time())
        if entries:
            logger.debug("consumer.round", consumer=self._name, entries=len(entries))
        return len(entries)

    def _handle(self, entry: StreamEntry) -> None:
        try:
            record = decode_record(entry.payload)
        except RecordDecodeError as exc:
            self._stats.undecodable += 1
            self._records.labels(outcome="undecodable").inc()
            logger.error(
                "consumer.undecodable_entry",
                stream=entry.stream,
                entry_id=entry.entry_id,
                error=exc,
            )
            return

        try:
            outcome = self._dispatcher.dispatch(record)
        except Exception as exc:
            if is_retryable(exc):
                raise
            # a record that fails the same way on every replay is dropped
            self._stats.failed += 1
            self._records.labels(outcome=DispatchOutcome.FAILED.value).inc()
            logger.exception(
                "consumer.dispatch_failed",
                stream=entry.stream,
                entry_id=entry.entry_id,
                key=record.key,
                value_type=record.value_type,
                category=categorize_error(exc).value,
            )
            return

        self._records.labels(outcome=outcome.value).inc()
        if outcome is DispatchOutcome.APPLIED:
            self._stats.applied += 1
        elif outcome is DispatchOutcome.SKIPPED:
            self._stats.skipped += 1
        elif outcome is DispatchOutcome.UNKNOWN_DOMAIN:
            self._stats.unknown_domain += 1
        else:
            self._stats.failed += 1

    def _connect(self) -> None:
        if not self._ever_connected:
            self._client.connect()
            self._ever_connected = True
        else:
            self._client.reconnect()
            self._stats.reconnects += 1
            self._reconnects.inc()
            logger.info("consumer.reconnected", consumer=self._name, reconnects=self._stats.reconnects)
        self._connected = True

    def _pause(self, attempt: int) -> None:
        delay = self._backoff.next_delay(attempt)
        logger.info("consumer.backoff", consumer=self._name, delay=round(delay, 3), attempt=attempt)
        self._shutdown.wait(delay)

    def _handle_signal(self, signum: int, frame: Any) -> None:
        logger.info("consumer.signal", consumer=self._name, signal=signal.Signals(signum).name)
        self._shutdown.set()


__all__ = ["ConsumerStats", "StreamConsumer"]
