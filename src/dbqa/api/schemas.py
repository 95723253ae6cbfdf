"""
API schemas - response envelopes, RFC 7807 errors and request bodies.

Every endpoint returns either ``{"data": ...}`` (lists add ``page``) or a
:class:`ProblemDetail`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class ProblemDetail(BaseModel):
    """RFC 7807 problem document used for every non-2xx response."""

    type: str = Field(default="about:blank", description="Error type URI")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation")
    instance: str = Field(default="", description="URI of the failing request")
    error_type: str | None = Field(default=None, description="Engine error class name")
    category: str | None = Field(default=None, description="Engine error category")
    retryable: bool = Field(default=False, description="Whether retrying may succeed")


class PageMeta(BaseModel):
    """Pagination metadata for list responses."""

    limit: int
    offset: int
    has_more: bool


class SuccessResponse(BaseModel, Generic[T]):
    data: T


class PagedResponse(BaseModel, Generic[T]):
    data: list[T]
    page: PageMeta


class RunResponse(BaseModel):
    """Outcome of a manual run: the recorded result plus a success flag."""

    success: bool
    result: dict[str, Any]
    alerts: list[dict[str, Any]] = Field(default_factory=list)
    notifications: list[dict[str, Any]] = Field(default_factory=list)


class CancelResponse(BaseModel):
    query_id: str
    cancelled: bool


class SnoozeRequest(BaseModel):
    """Snooze an alert until a time, or for a number of minutes."""

    until: datetime | None = Field(default=None, description="End of the snooze window (UTC)")
    minutes: int | None = Field(default=None, gt=0, description="Snooze length in minutes")

    @model_validator(mode="after")
    def _exactly_one(self) -> SnoozeRequest:
        if (self.until is None) == (self.minutes is None):
            raise ValueError("Provide exactly one of 'until' or 'minutes'")
        return self
