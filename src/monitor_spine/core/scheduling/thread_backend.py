"""Threading-based scheduler backend.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                               │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   if run_immediately: tick()                            │                │
│   │   while not stop_event.wait(interval):                  │                │
│   │       tick()                                            │                │
│   │                                                         │                │
│   │   tick(): tick_count += 1; last_tick = now()            │                │
│   │           tick_callback()   ◄── failures counted, loop  │                │
│   │                                 continues               │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop(): stop_event.set(); thread.join(timeout)                             │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from monitor_spine.core.errors import MonitorError
from monitor_spine.core.logging import get_logger
from monitor_spine.core.scheduling.protocol import TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Fixed-delay scheduler on a daemon thread.

    Example:
        >>> backend = ThreadSchedulerBackend(name="retention")
        >>> backend.start(sweeper.run_cycle, interval_seconds=3600.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    def __init__(self, name: str = "thread", join_timeout: float = 5.0) -> None:
        self.name = name
        self._join_timeout = join_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._failures = 0
        self._last_tick: datetime | None = None
        self._interval: float = 3600.0
        self._started = False
        self._lock = threading.Lock()

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 3600.0,
        *,
        run_immediately: bool = True,
    ) -> None:
        """Start the loop in a daemon thread.

        Args:
            tick_callback: Called on every tick; exceptions are logged.
            interval_seconds: Delay between the end of one tick and the next.
            run_immediately: Tick once right after start.
        """
        if self._started:
            logger.warning("scheduler.already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _tick() -> None:
            with self._lock:
                self._tick_count += 1
                self._last_tick = datetime.now(UTC)
            try:
                tick_callback()
            except MonitorError as e:
                with self._lock:
                    self._failures += 1
                logger.warning("scheduler.tick_failed", backend=self.name, error=e)
            except Exception:
                with self._lock:
                    self._failures += 1
                logger.exception("scheduler.tick_crashed", backend=self.name)

        def _loop() -> None:
            logger.info("scheduler.started", backend=self.name, interval_seconds=interval_seconds)
            if run_immediately and not self._stop_event.is_set():
                _tick()
            while not self._stop_event.wait(interval_seconds):
                _tick()
            logger.info("scheduler.stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"monitor-{self.name}")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop; waits up to ``join_timeout`` for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("scheduler.stop_timeout", backend=self.name)

        self._started = False

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "failures": self._failures,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
