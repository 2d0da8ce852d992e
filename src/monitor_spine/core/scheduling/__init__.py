"""Periodic job scheduling.

Exports:
    SchedulerBackend: timing backend protocol
    ThreadSchedulerBackend: daemon-thread backend with fixed-delay ticks
"""

from monitor_spine.core.scheduling.protocol import SchedulerBackend, TickCallback
from monitor_spine.core.scheduling.thread_backend import ThreadSchedulerBackend

__all__ = ["SchedulerBackend", "TickCallback", "ThreadSchedulerBackend"]
