"""
FastAPI dependencies - the container and the services routers use.

Usage in routers::

    from dbqa.api.deps import Scheduler, Store

    @router.get("/queries/{query_id}")
    def get_query(query_id: str, store: Store):
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Query, Request

from dbqa.alerting.engine import AlertEngine
from dbqa.container import DbqaContainer
from dbqa.core.store import QueryStore
from dbqa.scheduling import SchedulerService


def get_container(request: Request) -> DbqaContainer:
    return request.app.state.container


def get_store(container: Annotated[DbqaContainer, Depends(get_container)]) -> QueryStore:
    return container.store


def get_scheduler(container: Annotated[DbqaContainer, Depends(get_container)]) -> SchedulerService:
    return container.scheduler


def get_alert_engine(container: Annotated[DbqaContainer, Depends(get_container)]) -> AlertEngine:
    return container.alert_engine


class Pagination:
    """``limit`` / ``offset`` query parameters."""

    def __init__(
        self,
        limit: int = Query(50, ge=1, le=500, description="Maximum items to return"),
        offset: int = Query(0, ge=0, description="Pagination offset"),
    ) -> None:
        self.limit = limit
        self.offset = offset


Container = Annotated[DbqaContainer, Depends(get_container)]
Store = Annotated[QueryStore, Depends(get_store)]
Scheduler = Annotated[SchedulerService, Depends(get_scheduler)]
Engine = Annotated[AlertEngine, Depends(get_alert_engine)]
Page = Annotated[Pagination, Depends()]
