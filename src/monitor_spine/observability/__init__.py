"""Observability package for monitor-spine.

Structured logging lives in :mod:`monitor_spine.core.logging`; this
package holds the in-process metrics registry exported at ``/metrics``.
"""

from .metrics import Counter, Gauge, Histogram, MetricsRegistry, get_metrics_registry

__all__ = ["MetricsRegistry", "Counter", "Gauge", "Histogram", "get_metrics_registry"]
