"""
Structured error types for monitor-spine.

Every failure the import pipeline or the retention sweeper can hit is
expressed as a :class:`MonitorError` subclass carrying a category, a
retryable flag and structured context (record key, value type, stream,
position). The consumer loop decides between "back off and retry" and
"log, acknowledge, move on" purely from these types.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        MonitorError                              │
        │  (category, retryable, context, cause)                         │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError          ParseError          ConfigError        │
        │  (retryable=True)        (PARSE)             (CONFIG)           │
        │       │                      │                    │              │
        │  StreamTransportError    RecordDecodeError   InvalidConfigError │
        │  StoreUnavailableError   RecordImportError   UnknownRecord-     │
        │                                              DomainError        │
        │                                                                  │
        │  OrchestrationError                                             │
        │  (ORCHESTRATION)                                                │
        │       │                                                          │
        │  RetentionError                                                 │
        │  RetentionInterruptedError                                      │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` from importers - the consumer cannot
       tell a poison record from a store outage
    ✅ DO: Raise ``RecordImportError`` for bad payloads and let store outages
       surface as ``StoreUnavailableError``

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as ``cause=`` for error chaining

Usage:
    from monitor_spine.core.errors import RecordImportError

    try:
        value = MessageValue.model_validate(record.value)
    except pydantic.ValidationError as e:
        raise RecordImportError("invalid message value", cause=e).with_context(
            key=record.key, value_type=record.value_type
        )

Tags:
    error-handling, exception-hierarchy, retry-logic, monitor-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Attributes:
        NETWORK: Broker unreachable, connection reset
        DATABASE: Store unavailable, transaction failures
        PARSE: Undecodable records, malformed payloads
        CONFIG: Missing/invalid settings, unmapped record domains
        ORCHESTRATION: Scheduler and retention sweep failures
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging.

    Attributes:
        key: Engine-assigned entity key of the offending record
        value_type: Record domain (``MESSAGE``, ``JOB``, ...)
        intent: Lifecycle intent of the offending record
        stream: Stream the record was read from
        entry_id: Stream entry id
        position: Log position of the record within its partition
        metadata: Additional key-value pairs
    """

    key: int | None = None
    value_type: str | None = None
    intent: str | None = None
    stream: str | None = None
    entry_id: str | None = None
    position: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ["key", "value_type", "intent", "stream", "entry_id", "position"]:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MonitorError(Exception):
    """
    Base exception for all monitor-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    call sites rarely need to pass them explicitly.

    Examples:
        >>> error = MonitorError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = RecordImportError("bad payload").with_context(key=100, value_type="MESSAGE")
        >>> error.context.key
        100
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MonitorError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StreamTransportError("xreadgroup failed").with_context(
                stream="zeebe:JOB"
            )
        """
        for name, value in kwargs.items():
            if hasattr(self.context, name) and name != "metadata":
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(MonitorError):
    """
    Temporary error that may succeed on retry.

    The stream consumer never acknowledges a record whose hand-off failed
    with a transient error; it backs off, reconnects and lets the broker
    redeliver.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class StreamTransportError(TransientError):
    """The event log broker is unreachable or the connection was reset."""

    default_category = ErrorCategory.NETWORK


class StoreUnavailableError(TransientError):
    """The entity store could not be reached while applying a record."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# PARSE ERRORS
# =============================================================================


class ParseError(MonitorError):
    """Error parsing record data. Never retryable - the record is bad."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class RecordDecodeError(ParseError):
    """A stream entry could not be decoded into a record envelope."""

    pass


class RecordImportError(ParseError):
    """A single record could not be applied to its entity kind."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MonitorError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class UnknownRecordDomainError(ConfigError):
    """A record arrived for a domain no importer is registered for."""

    def __init__(self, value_type: str):
        self.value_type = value_type
        super().__init__(f"No importer registered for record domain: {value_type}")


# =============================================================================
# RETENTION ERRORS
# =============================================================================


class OrchestrationError(MonitorError):
    """Scheduler or background job error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class RetentionError(OrchestrationError):
    """A retention sweep batch failed and was rolled back.

    Retried implicitly on the next scheduled tick.
    """

    default_retryable = True


class RetentionInterruptedError(OrchestrationError):
    """The jitter wait preceding a sweep was interrupted.

    Fatal to that cycle only; nothing has been deleted yet.
    """

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """True when retrying the same record later can succeed.

    Socket-level failures that escaped a client wrapper count as transient.
    """
    if isinstance(error, MonitorError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Category used when logging a failure the consumer did not expect."""
    if isinstance(error, MonitorError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MonitorError",
    "TransientError",
    "StreamTransportError",
    "StoreUnavailableError",
    "ParseError",
    "RecordDecodeError",
    "RecordImportError",
    "ConfigError",
    "InvalidConfigError",
    "UnknownRecordDomainError",
    "OrchestrationError",
    "RetentionError",
    "RetentionInterruptedError",
    "is_retryable",
    "categorize_error",
]
