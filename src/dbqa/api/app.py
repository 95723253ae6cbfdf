"""
FastAPI application factory.

``create_app()`` wires the container, routers, error handlers and the
lifespan into one ``FastAPI`` instance. Routers never build services
themselves; they take them from the container on ``app.state``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dbqa import __version__
from dbqa.api.errors import dbqa_error_handler, unhandled_exception_handler
from dbqa.config import DbqaSettings, get_settings
from dbqa.container import DbqaContainer
from dbqa.core.errors import DbqaError
from dbqa.logging import get_logger

logger = get_logger(__name__)


def create_app(
    settings: DbqaSettings | None = None,
    container: DbqaContainer | None = None,
    *,
    start_scheduler: bool = False,
) -> FastAPI:
    """Build and return a configured FastAPI application.

    Parameters
    ----------
    settings:
        Override settings (useful for testing). Defaults to :func:`get_settings`.
    container:
        Pre-built container. When omitted the app builds its own and
        closes it on shutdown.
    start_scheduler:
        Start the tick loop with the app so one process serves both.
    """
    settings = settings or (container.settings if container else get_settings())
    owns_container = container is None
    container = container or DbqaContainer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("api_starting", version=__version__, database=settings.database_url)
        container.store.create_all()
        if start_scheduler:
            container.scheduler.start()
        yield
        if start_scheduler:
            container.scheduler.stop()
        if owns_container:
            container.close()
        logger.info("api_stopped")

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.container = container

    app.add_exception_handler(DbqaError, dbqa_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    from dbqa.api.routers import alerts, health, queries

    prefix = settings.api_prefix
    app.include_router(health.router, prefix=prefix, tags=["health"])
    app.include_router(queries.router, prefix=prefix, tags=["queries"])
    app.include_router(alerts.router, prefix=prefix, tags=["alerts"])
    return app
