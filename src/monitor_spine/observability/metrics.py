"""In-process metrics exported in the Prometheus text format.

Importers, the dispatcher, the stream consumer and the retention sweeper
register their series on a :class:`MetricsRegistry`; the ``/metrics``
endpoint renders it with :meth:`MetricsRegistry.export_prometheus`.

Each metric is a family of series keyed by its label values, in the order
the label names were declared:

    monitor_import_failures_total{kind="job"}     3.0
    monitor_import_failures_total{kind="timer"}   1.0

Example:
    >>> registry = get_metrics_registry()
    >>> failures = registry.counter("monitor_import_failures_total", "records not applied", ["kind"])
    >>> failures.labels(kind="job").inc()
"""

import threading
from collections.abc import Sequence
from typing import Any

_SeriesKey = tuple[str, ...]


class _Family:
    """Series of one metric, one per label-value combination."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str = "", labels: Sequence[str] | None = None):
        self.name = name
        self.description = description
        self.label_names: tuple[str, ...] = tuple(labels or ())
        self._lock = threading.Lock()

    def _key(self, values: dict[str, str]) -> _SeriesKey:
        if set(values) != set(self.label_names):
            raise ValueError(f"{self.name} expects labels {list(self.label_names)}, got {sorted(values)}")
        return tuple(str(values[name]) for name in self.label_names)

    def _selector(self, key: _SeriesKey, extra: str = "") -> str:
        pairs = [f'{name}="{value}"' for name, value in zip(self.label_names, key, strict=True)]
        if extra:
            pairs.append(extra)
        return "{" + ",".join(pairs) + "}" if pairs else ""

    def render(self) -> list[str]:
        raise NotImplementedError


class _Series:
    """A family bound to one set of label values."""

    def __init__(self, family: Any, key: _SeriesKey):
        self._family = family
        self._key = key


class CounterSeries(_Series):
    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"{self._family.name}: counters only go up")
        self._family._add(self._key, amount)

    @property
    def value(self) -> float:
        return self._family._read(self._key)


class Counter(_Family):
    """Monotonic count, e.g. records applied per importer kind."""

    metric_type = "counter"

    def __init__(self, name: str, description: str = "", labels: Sequence[str] | None = None):
        super().__init__(name, description, labels)
        self._totals: dict[_SeriesKey, float] = {}

    def labels(self, **values: str) -> CounterSeries:
        return CounterSeries(self, self._key(values))

    def inc(self, amount: float = 1.0) -> None:
        self.labels().inc(amount)

    @property
    def value(self) -> float:
        return self.labels().value

    def _add(self, key: _SeriesKey, amount: float) -> None:
        with self._lock:
            self._totals[key] = self._totals.get(key, 0.0) + amount

    def _read(self, key: _SeriesKey) -> float:
        with self._lock:
            return self._totals.get(key, 0.0)

    def render(self) -> list[str]:
        with self._lock:
            return [f"{self.name}{self._selector(key)} {float(total)}" for key, total in self._totals.items()]


class GaugeSeries(_Series):
    def set(self, value: float) -> None:
        self._family._store(self._key, value)

    @property
    def value(self) -> float:
        return self._family._read(self._key)


class Gauge(_Family):
    """Point-in-time value, e.g. when the consumer last completed a round."""

    metric_type = "gauge"

    def __init__(self, name: str, description: str = "", labels: Sequence[str] | None = None):
        super().__init__(name, description, labels)
        self._current: dict[_SeriesKey, float] = {}

    def labels(self, **values: str) -> GaugeSeries:
        return GaugeSeries(self, self._key(values))

    def set(self, value: float) -> None:
        self.labels().set(value)

    @property
    def value(self) -> float:
        return self.labels().value

    def _store(self, key: _SeriesKey, value: float) -> None:
        with self._lock:
            self._current[key] = float(value)

    def _read(self, key: _SeriesKey) -> float:
        with self._lock:
            return self._current.get(key, 0.0)

    def render(self) -> list[str]:
        with self._lock:
            return [f"{self.name}{self._selector(key)} {value}" for key, value in self._current.items()]


class Histogram(_Family):
    """Cumulative buckets plus sum and count; unlabelled only.

    The default buckets fit retention sweeps, which take from milliseconds
    (nothing expired) to tens of seconds (a full batch on a large store).
    """

    metric_type = "histogram"

    DEFAULT_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0)

    def __init__(self, name: str, description: str = "", buckets: Sequence[float] | None = None):
        super().__init__(name, description)
        bounds = sorted(set(buckets or self.DEFAULT_BUCKETS) - {float("inf")})
        self.bounds: tuple[float, ...] = (*bounds, float("inf"))
        self._counts = [0] * len(self.bounds)
        self.sum = 0.0
        self.count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            self.sum += value
            self.count += 1
            for i, bound in enumerate(self.bounds):
                if value <= bound:
                    self._counts[i] += 1

    def bucket_counts(self) -> dict[float, int]:
        """Cumulative observation count per upper bound."""
        with self._lock:
            return dict(zip(self.bounds, self._counts, strict=True))

    def render(self) -> list[str]:
        lines = []
        for bound, seen in self.bucket_counts().items():
            le = "+Inf" if bound == float("inf") else str(bound)
            lines.append(f'{self.name}_bucket{{le="{le}"}} {seen}')
        if self.count:
            lines.append(f"{self.name}_sum {self.sum}")
            lines.append(f"{self.name}_count {self.count}")
        return lines if self.count else []


class MetricsRegistry:
    """Named metric families, created on first use."""

    def __init__(self) -> None:
        self._families: dict[str, _Family] = {}
        self._lock = threading.Lock()

    def _register(self, kind: type[_Family], name: str, build: Any) -> Any:
        with self._lock:
            family = self._families.get(name)
            if family is None:
                family = self._families[name] = build()
            elif not isinstance(family, kind):
                raise ValueError(f"{name} is already registered as a {family.metric_type}")
            return family

    def counter(self, name: str, description: str = "", labels: Sequence[str] | None = None) -> Counter:
        return self._register(Counter, name, lambda: Counter(name, description, labels))

    def gauge(self, name: str, description: str = "", labels: Sequence[str] | None = None) -> Gauge:
        return self._register(Gauge, name, lambda: Gauge(name, description, labels))

    def histogram(self, name: str, description: str = "", buckets: Sequence[float] | None = None) -> Histogram:
        return self._register(Histogram, name, lambda: Histogram(name, description, buckets))

    def get(self, name: str) -> Any:
        """The family registered as *name*, or ``None``."""
        with self._lock:
            return self._families.get(name)

    def export_prometheus(self) -> str:
        """Render every family that has at least one series."""
        with self._lock:
            families = list(self._families.values())

        lines: list[str] = []
        for family in families:
            series = family.render()
            if not series:
                continue
            if family.description:
                lines.append(f"# HELP {family.name} {family.description}")
            lines.append(f"# TYPE {family.name} {family.metric_type}")
            lines.extend(series)
        return "\n".join(lines) + "\n" if lines else ""


_default_registry = MetricsRegistry()


def get_metrics_registry() -> MetricsRegistry:
    """Process-wide registry used when a component is not given its own."""
    return _default_registry
