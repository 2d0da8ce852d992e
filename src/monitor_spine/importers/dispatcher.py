"""Event filter and dispatcher.

Only records classified as ``EVENT`` describe something that already
happened and are materialized; commands and rejections are dropped
without touching the store. Accepted records are routed by their domain
(``valueType``) to exactly one importer.

Outcomes are reported, not raised, except for store outages: a
:class:`~monitor_spine.core.errors.StoreUnavailableError` propagates so the
consumer leaves the record unacknowledged and retries it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum

from sqlalchemy.orm import Session, sessionmaker

from monitor_spine.core.errors import RecordImportError, UnknownRecordDomainError
from monitor_spine.core.logging import get_logger
from monitor_spine.importers.base import EntityImporter, ImporterSpec
from monitor_spine.importers.kinds import ALL_SPECS
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry
from monitor_spine.records import Record, RecordType

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    UNKNOWN_DOMAIN = "unknown_domain"
    FAILED = "failed"


def is_event(record: Record) -> bool:
    """True when *record* is a fact (event) rather than a command or rejection."""
    return record.record_type == RecordType.EVENT.value


class RecordDispatcher:
    """Routes event records to the importer registered for their domain."""

    def __init__(
        self,
        importers: Iterable[EntityImporter],
        registry: MetricsRegistry | None = None,
    ) -> None:
        self._importers: dict[str, EntityImporter] = {}
        for importer in importers:
            domain = importer.spec.value_type.value
            if domain in self._importers:
                raise ValueError(f"duplicate importer for record domain {domain}")
            self._importers[domain] = importer

        registry = registry or get_metrics_registry()
        self._unknown = registry.counter(
            "monitor_dispatch_unknown_domain_total",
            "records received for a domain without importer",
            ["value_type"],
        )
        self._failures = registry.counter(
            "monitor_import_failures_total",
            "records that could not be applied",
            ["kind"],
        )
        self._skipped = registry.counter(
            "monitor_dispatch_skipped_total",
            "command and rejection records dropped by the event filter",
        )

    @classmethod
    def from_specs(
        cls,
        session_factory: sessionmaker[Session],
        specs: Iterable[ImporterSpec] = ALL_SPECS,
        registry: MetricsRegistry | None = None,
    ) -> RecordDispatcher:
        """Build a dispatcher with one importer per spec (all domains by default)."""
        return cls(
            [EntityImporter(spec, session_factory, registry) for spec in specs],
            registry=registry,
        )

    @property
    def importers(self) -> Mapping[str, EntityImporter]:
        return dict(self._importers)

    @property
    def domains(self) -> list[str]:
        return sorted(self._importers)

    def route(self, value_type: str) -> EntityImporter:
        """Return the importer for *value_type*.

        Raises:
            UnknownRecordDomainError: no importer is registered for the domain.
        """
        try:
            return self._importers[value_type]
        except KeyError:
            raise UnknownRecordDomainError(value_type) from None

    def dispatch(self, record: Record) -> DispatchOutcome:
        """Filter and apply one record."""
        if not is_event(record):
            self._skipped.inc()
            return DispatchOutcome.SKIPPED

        try:
            importer = self.route(record.value_type)
        except UnknownRecordDomainError as exc:
            self._unknown.labels(value_type=record.value_type).inc()
            logger.error(
                "dispatch.unknown_domain",
                value_type=record.value_type,
                intent=record.intent,
                key=record.key,
                position=record.position,
                error=exc.message,
            )
            return DispatchOutcome.UNKNOWN_DOMAIN

        try:
            importer.import_record(record)
        except RecordImportError as exc:
            self._failures.labels(kind=importer.kind).inc()
            logger.error(
                "import.failed",
                kind=importer.kind,
                key=record.key,
                intent=record.intent,
                position=record.position,
                partition_id=record.partition_id,
                error=exc.to_dict(),
            )
            return DispatchOutcome.FAILED

        return DispatchOutcome.APPLIED


__all__ = ["DispatchOutcome", "RecordDispatcher", "is_event"]
