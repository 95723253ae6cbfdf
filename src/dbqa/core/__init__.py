"""Core records, errors, persistence and schedule arithmetic."""

from dbqa.core.enums import (
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ExecutionFrequency,
    ExecutionStatus,
    NotificationStatus,
    QueryCategory,
    RunTrigger,
    Verdict,
)
from dbqa.core.models import (
    Alert,
    AlertNotification,
    AlertRule,
    Connection,
    ExecutionResult,
    Query,
)

__all__ = [
    "AlertSeverity",
    "AlertStatus",
    "ChannelType",
    "ExecutionFrequency",
    "ExecutionStatus",
    "NotificationStatus",
    "QueryCategory",
    "RunTrigger",
    "Verdict",
    "Alert",
    "AlertNotification",
    "AlertRule",
    "Connection",
    "ExecutionResult",
    "Query",
]
