"""Health router - store reachability and scheduler status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from dbqa import __version__
from dbqa.api.deps import Container

router = APIRouter()


@router.get("/health")
def health(container: Container) -> dict[str, Any]:
    """Report whether the store answers and how the scheduler is doing.

    The scheduler being stopped does not make the API unhealthy; an API
    process may run without driving ticks.
    """
    store_ok = True
    try:
        with container.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        store_ok = False
        detail = str(e)
    else:
        detail = None

    scheduler = container.scheduler.health().to_dict()
    return {
        "data": {
            "status": "healthy" if store_ok else "unhealthy",
            "version": __version__,
            "store": {"healthy": store_ok, "error": detail},
            "scheduler": scheduler,
        }
    }
