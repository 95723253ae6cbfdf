"""
Alerts router - inspect alerts, snooze and resolve them, read deliveries.

Endpoints:
    GET  /alerts                        List alerts
    GET  /alerts/{id}                   Get one alert
    POST /alerts/{id}/snooze            Snooze until a time / for N minutes
    POST /alerts/{id}/resolve           Resolve by hand
    GET  /alerts/{id}/notifications     Delivery attempts for the alert
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Path, Query

from dbqa.api.deps import Engine, Page, Store
from dbqa.api.schemas import PagedResponse, PageMeta, SnoozeRequest, SuccessResponse
from dbqa.core.enums import AlertSeverity, AlertStatus, NotificationStatus
from dbqa.core.frequency import utcnow

router = APIRouter(prefix="/alerts")


@router.get("", response_model=PagedResponse[dict[str, Any]])
def list_alerts(
    store: Store,
    page: Page,
    query_id: str | None = Query(None),
    rule_id: str | None = Query(None),
    space_id: str | None = Query(None),
    status: AlertStatus | None = Query(None),
    severity: AlertSeverity | None = Query(None),
):
    alerts = store.list_alerts(
        query_id=query_id,
        rule_id=rule_id,
        space_id=space_id,
        status=status,
        severity=severity,
        limit=page.limit + 1,
        offset=page.offset,
    )
    return {
        "data": [a.to_dict() for a in alerts[: page.limit]],
        "page": PageMeta(limit=page.limit, offset=page.offset, has_more=len(alerts) > page.limit),
    }


@router.get("/{alert_id}", response_model=SuccessResponse[dict[str, Any]])
def get_alert(store: Store, alert_id: str = Path(..., description="Alert ID")):
    return {"data": store.require_alert(alert_id).to_dict()}


@router.post("/{alert_id}/snooze", response_model=SuccessResponse[dict[str, Any]])
def snooze_alert(
    engine: Engine,
    body: SnoozeRequest,
    alert_id: str = Path(..., description="Alert ID"),
):
    now = utcnow()
    until = body.until if body.until is not None else now + timedelta(minutes=body.minutes or 0)
    return {"data": engine.snooze(alert_id, until, now).to_dict()}


@router.post("/{alert_id}/resolve", response_model=SuccessResponse[dict[str, Any]])
def resolve_alert(engine: Engine, alert_id: str = Path(..., description="Alert ID")):
    return {"data": engine.resolve(alert_id).to_dict()}


@router.get("/{alert_id}/notifications", response_model=SuccessResponse[list[dict[str, Any]]])
def list_notifications(
    store: Store,
    alert_id: str = Path(..., description="Alert ID"),
    status: NotificationStatus | None = Query(None),
):
    store.require_alert(alert_id)
    return {"data": [n.to_dict() for n in store.list_notifications(alert_id, status=status)]}
