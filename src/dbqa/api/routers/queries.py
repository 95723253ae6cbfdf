"""
Queries router - inspect queries, run them now, cancel runs, read results.

Endpoints:
    GET  /queries                 List queries (filters + pagination)
    GET  /queries/{id}            Get one query
    POST /queries/{id}/run        Run now; returns the recorded result
    POST /queries/{id}/cancel     Cancel the in-flight run
    GET  /queries/{id}/results    Execution history, newest first
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Path, Query

from dbqa.api.deps import Page, Scheduler, Store
from dbqa.api.schemas import CancelResponse, PagedResponse, PageMeta, RunResponse, SuccessResponse
from dbqa.core.enums import ExecutionFrequency, ExecutionStatus

router = APIRouter(prefix="/queries")


@router.get("", response_model=PagedResponse[dict[str, Any]])
def list_queries(
    store: Store,
    page: Page,
    space_id: str | None = Query(None, description="Filter by space"),
    category: str | None = Query(None, description="Filter by category (long or short form)"),
    connection_id: str | None = Query(None, description="Filter by connection"),
    frequency: ExecutionFrequency | None = Query(None, description="Filter by execution frequency"),
    enabled: bool | None = Query(None, description="Filter by enabled flag"),
    run_status: str | None = Query(
        None,
        pattern="^(success|failure|error|never)$",
        description="Status of the latest run, or 'never'",
    ),
):
    queries = store.list_queries(
        space_id=space_id,
        category=category,
        connection_id=connection_id,
        frequency=frequency,
        enabled=enabled,
        run_status=run_status,
        limit=page.limit + 1,
        offset=page.offset,
    )
    return {
        "data": [q.to_dict() for q in queries[: page.limit]],
        "page": PageMeta(limit=page.limit, offset=page.offset, has_more=len(queries) > page.limit),
    }


@router.get("/{query_id}", response_model=SuccessResponse[dict[str, Any]])
def get_query(store: Store, query_id: str = Path(..., description="Query ID")):
    return {"data": store.require_query(query_id).to_dict()}


@router.post("/{query_id}/run", response_model=SuccessResponse[RunResponse])
def run_query(
    scheduler: Scheduler,
    query_id: str = Path(..., description="Query ID"),
    wait: bool = Query(True, description="Wait for an in-flight run instead of failing with 409"),
):
    """Run a query now.

    The result is recorded whatever happens; a run that errors still
    returns 200 with ``success: false`` and the error on the result.
    """
    report = scheduler.run_query_now(query_id, wait=wait)
    return {
        "data": RunResponse(
            success=report.success,
            result=report.result.to_dict(),
            alerts=[
                {"rule_id": t.rule_id, "action": t.action.value, "alert_id": t.alert.id if t.alert else None}
                for t in report.transitions
            ],
            notifications=[n.to_dict() for n in report.notifications],
        )
    }


@router.post("/{query_id}/cancel", response_model=SuccessResponse[CancelResponse])
def cancel_query(
    store: Store,
    scheduler: Scheduler,
    query_id: str = Path(..., description="Query ID"),
):
    store.require_query(query_id)
    return {"data": CancelResponse(query_id=query_id, cancelled=scheduler.cancel_query(query_id))}


@router.get("/{query_id}/results", response_model=SuccessResponse[list[dict[str, Any]]])
def list_results(
    store: Store,
    query_id: str = Path(..., description="Query ID"),
    limit: int = Query(50, ge=1, le=500),
    status: ExecutionStatus | None = Query(None, description="Filter by result status"),
):
    store.require_query(query_id)
    return {"data": [r.to_dict() for r in store.list_results(query_id, limit=limit, status=status)]}
