"""
Structured error types for the DB QA engine.

Every failure the engine can produce is a ``DbqaError`` carrying a
category, a retry hint, structured context and an optional chained cause.
Each subclass maps to exactly one pipeline stage, so callers can decide
how far a failure propagates without inspecting messages.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          DbqaError                               │
        │        (category, retryable, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │  ConnectionUnavailable   ExecutionError        EvaluationError   │
        │  (CONNECTION, retry)     (EXECUTION)           (EVALUATION)      │
        │                              │                                   │
        │                      ExecutionTimeout                            │
        │                      RunCancelled                                │
        │                                                                  │
        │  AlertRuleError          NotificationDeliveryError               │
        │  (ALERTING)              (NOTIFICATION, retry)                   │
        │  AlertConflictError                                              │
        │  (ALERTING, retry)                                               │
        │                                                                  │
        │  NotFoundError           QueryBusyError       ConfigError        │
        │  (STORAGE)               (SCHEDULING)         (CONFIG)           │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    - ConnectionUnavailable / ExecutionError: recorded as an ``error``
      execution result; the run stops before evaluation.
    - EvaluationError: the result is recorded as ``error`` with the
      evaluation message in its metrics; alerting is skipped.
    - AlertRuleError: only the offending rule is skipped; it is logged and
      recorded in the result metrics.
    - NotificationDeliveryError: recorded as a ``failed`` notification row;
      never rolls back the alert transition.
    - AlertConflictError: the alert row changed between read and write;
      the engine re-reads the alert and applies the rule again.

Tags:
    error-handling, exception-hierarchy, dbqa
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Pipeline stage an error belongs to."""

    CONNECTION = "CONNECTION"
    EXECUTION = "EXECUTION"
    EVALUATION = "EVALUATION"
    ALERTING = "ALERTING"
    NOTIFICATION = "NOTIFICATION"
    SCHEDULING = "SCHEDULING"
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``, which keeps log lines
    short. Anything without a dedicated field goes into ``metadata``.

    Attributes:
        query_id: Quality-check query being processed
        connection_id: Data-source connection involved
        alert_id: Alert being evaluated or notified
        run_id: Identifier of the in-flight run
        channel: Notification channel name
        metadata: Additional key-value pairs
    """

    query_id: str | None = None
    connection_id: str | None = None
    alert_id: str | None = None
    run_id: str | None = None
    channel: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Set identifiers plus metadata, flattened for a log line."""
        ids = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        return {**ids, **self.metadata}


class DbqaError(Exception):
    """
    Base exception for all DB QA engine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = DbqaError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(query_id="q-1").context.query_id
        'q-1'
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

    def with_context(self, **kwargs: Any) -> DbqaError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ExecutionError("Query failed").with_context(
                query_id=query.id,
                connection_id=query.connection_id,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
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
# PIPELINE STAGE ERRORS
# =============================================================================


class ConnectionUnavailable(DbqaError):
    """The connection could not be resolved or opened."""

    default_category = ErrorCategory.CONNECTION
    default_retryable = True


class ExecutionError(DbqaError):
    """The query failed while running against the data source."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False


class ExecutionTimeout(ExecutionError):
    """The query exceeded its execution timeout."""

    default_retryable = True

    def __init__(self, timeout_seconds: float, **kwargs: Any):
        super().__init__(f"Query timed out after {timeout_seconds:g}s", **kwargs)
        self.timeout_seconds = timeout_seconds


class RunCancelled(ExecutionError):
    """The in-flight run was cancelled before it completed."""

    def __init__(self, message: str = "Run cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class EvaluationError(DbqaError):
    """Thresholds or expected result could not be interpreted."""

    default_category = ErrorCategory.EVALUATION
    default_retryable = False


class AlertRuleError(DbqaError):
    """An alert rule's condition is malformed."""

    default_category = ErrorCategory.ALERTING
    default_retryable = False


class AlertConflictError(DbqaError):
    """The alert row changed after it was read; the write was not applied."""

    default_category = ErrorCategory.ALERTING
    default_retryable = True

    def __init__(self, alert_id: str, **kwargs: Any):
        super().__init__(f"Alert {alert_id} was modified concurrently", **kwargs)
        self.alert_id = alert_id


class NotificationDeliveryError(DbqaError):
    """A single channel failed to deliver a notification."""

    default_category = ErrorCategory.NOTIFICATION
    default_retryable = True


# =============================================================================
# ENTRY-POINT ERRORS
# =============================================================================


class NotFoundError(DbqaError):
    """A referenced record does not exist."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, kind: str, record_id: str, **kwargs: Any):
        super().__init__(f"{kind} not found: {record_id}", **kwargs)
        self.kind = kind
        self.record_id = record_id


class QueryBusyError(DbqaError):
    """The query already has a run in flight."""

    default_category = ErrorCategory.SCHEDULING
    default_retryable = True


class ConfigError(DbqaError):
    """Invalid record or settings values."""

    default_category = ErrorCategory.CONFIG


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, DbqaError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DbqaError",
    "ConnectionUnavailable",
    "ExecutionError",
    "ExecutionTimeout",
    "RunCancelled",
    "EvaluationError",
    "AlertRuleError",
    "AlertConflictError",
    "NotificationDeliveryError",
    "NotFoundError",
    "QueryBusyError",
    "ConfigError",
    "is_retryable",
]
