"""Scheduler backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOL                                                   │
│                                                                               │
│  A backend controls WHEN ticks happen; the tick callback controls WHAT       │
│  happens. The monitor has one periodic job, the retention sweep, driven     │
│  with fixed-delay semantics: the next tick is counted from the end of       │
│  the previous one, so slow sweeps never overlap.                            │
│                                                                               │
│   ┌─────────────────┐       tick()       ┌──────────────────────────┐        │
│   │  Thread Backend │ ─────────────────► │ RetentionSweeper         │        │
│   │  (default)      │                    │   .run_cycle()           │        │
│   └─────────────────┘                    └──────────────────────────┘        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Any]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for scheduler timing backends.

    Implementations:
        - ThreadSchedulerBackend: stdlib threading (default)
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 3600.0,
        *,
        run_immediately: bool = True,
    ) -> None:
        """Start calling *tick_callback* with *interval_seconds* between ticks."""
        ...

    def stop(self) -> None:
        """Stop ticking and wait for the current tick to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return health information (healthy, backend, tick_count, ...)."""
        ...
