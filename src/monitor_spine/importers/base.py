"""Generic idempotent importer.

Every record domain is imported by the same routine: validate the domain
value, look the row up by key, create it from the record's creation-time
fields if it does not exist yet, refresh the fields that follow the latest
record, overwrite ``state`` and ``timestamp``, persist. Per-domain
behaviour is limited to small :class:`Projection` / :class:`ImporterSpec`
declarations in :mod:`monitor_spine.importers.kinds`.

┌──────────────────────────────────────────────────────────────────────────┐
│  EntityImporter.import_record(record)                                     │
│                                                                           │
│   value = spec.value_model.model_validate(record.value)                   │
│   with session_factory.begin() as session:        ◄── one transaction    │
│       for projection in spec.projections:                                 │
│           row = store.get(key) or projection.create(key, record, value)   │
│           projection.refresh(row, record, value)                          │
│           row.state = intent.lower(); row.timestamp = record.timestamp    │
│           store.upsert(row)                                               │
│   counter.inc()                                                           │
└──────────────────────────────────────────────────────────────────────────┘

Replaying a record reassigns identical values, so redelivery is harmless.
Records for one key must be applied in log order; the stream consumer
guarantees that by processing on a single worker.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, StatementError
from sqlalchemy.orm import Session, sessionmaker

from monitor_spine.core.errors import RecordImportError, StoreUnavailableError
from monitor_spine.core.orm.base import MonitorBase
from monitor_spine.core.repositories import EntityStore
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry
from monitor_spine.records import Record, ValueType

V = TypeVar("V", bound=BaseModel)


def record_key(record: Record, value: Any) -> int:
    """Default key extractor: the engine key from the record metadata."""
    return record.key


def always(value: Any) -> bool:
    return True


@dataclass(frozen=True)
class Projection(Generic[V]):
    """How one domain value maps onto one entity table.

    Attributes:
        table: Target mapped class.
        create: Builds a new row from creation-time fields.
        refresh: Updates fields that follow the latest record (optional).
        key_of: Extracts the row key; defaults to ``record.key``.
        applies: Filters which values touch this table at all.
    """

    table: type[MonitorBase]
    create: Callable[[int, Record, V], MonitorBase]
    refresh: Callable[[MonitorBase, Record, V], None] | None = None
    key_of: Callable[[Record, V], int] = record_key
    applies: Callable[[V], bool] = always


@dataclass(frozen=True)
class ImporterSpec(Generic[V]):
    """Per-domain importer configuration."""

    kind: str
    value_type: ValueType
    value_model: type[V]
    projections: tuple[Projection[V], ...]
    description: str = ""

    @property
    def metric_name(self) -> str:
        return f"monitor_importer_{self.kind}_total"


class EntityImporter(Generic[V]):
    """Applies records of one domain to the entity store.

    Example:
        >>> importer = EntityImporter(MESSAGE_SPEC, session_factory)
        >>> importer.import_record(record)
    """

    def __init__(
        self,
        spec: ImporterSpec[V],
        session_factory: sessionmaker[Session],
        registry: MetricsRegistry | None = None,
    ) -> None:
        self.spec = spec
        self._sessions = session_factory
        registry = registry or get_metrics_registry()
        self._counter = registry.counter(
            spec.metric_name,
            spec.description or f"number of processed {spec.kind} records",
        )

    @property
    def kind(self) -> str:
        return self.spec.kind

    @property
    def processed(self) -> float:
        """Records successfully applied since start-up."""
        return self._counter.value

    def parse(self, record: Record) -> V:
        """Validate the domain value of *record*."""
        try:
            return self.spec.value_model.model_validate(record.value)
        except ValidationError as exc:
            raise RecordImportError(
                f"invalid {self.spec.kind} value: {exc.error_count()} validation error(s)",
                cause=exc,
            ).with_context(
                key=record.key,
                value_type=record.value_type,
                intent=record.intent,
                position=record.position,
            )

    def import_record(self, record: Record) -> list[MonitorBase]:
        """Apply *record*; all projections commit together or not at all.

        Raises:
            RecordImportError: the record cannot be applied; nothing committed.
            StoreUnavailableError: the store is unreachable; safe to retry.
        """
        value = self.parse(record)

        try:
            try:
                rows = self._apply(record, value)
            except IntegrityError:
                # Another service instance inserted the same key concurrently;
                # the retry finds the row and applies this record as an update.
                rows = self._apply(record, value)
        except (StatementError, OverflowError, ValueError) as exc:
            # rejected by the database or its driver; a replay fails the same way
            raise RecordImportError(
                f"store rejected {self.spec.kind} record: {type(exc).__name__}", cause=exc
            ).with_context(key=record.key, value_type=record.value_type, position=record.position) from exc

        self._counter.inc()
        return rows

    def _apply(self, record: Record, value: V) -> list[MonitorBase]:
        try:
            with self._sessions.begin() as session:
                return [
                    self._project(session, projection, record, value)
                    for projection in self.spec.projections
                    if projection.applies(value)
                ]
        except DBAPIError as exc:
            if not isinstance(exc, OperationalError) and not exc.connection_invalidated:
                raise
            raise StoreUnavailableError(
                f"entity store unavailable while importing {self.spec.kind}", cause=exc
            ).with_context(key=record.key, value_type=record.value_type, position=record.position)

    def _project(
        self,
        session: Session,
        projection: Projection[V],
        record: Record,
        value: V,
    ) -> MonitorBase:
        store = EntityStore(session, projection.table)
        key = projection.key_of(record, value)

        row = store.get(key)
        if row is None:
            row = projection.create(key, record, value)
        if projection.refresh is not None:
            projection.refresh(row, record, value)

        row.state = record.state
        row.timestamp = record.timestamp
        return store.upsert(row)


__all__ = ["Projection", "ImporterSpec", "EntityImporter", "record_key", "always"]
