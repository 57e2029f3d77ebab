"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI

from ussd_engine.api.routes import router
from ussd_engine.application.container import Container, build_container
from ussd_engine.config.settings import Settings, get_settings
from ussd_engine.infra.external_query_http import HttpExternalQuery
from ussd_engine.observability.logging import configure_logging, get_logger
from ussd_engine.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def _lifespan(container: Container):
    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        interval = container.settings.session_sweep_interval_seconds
        sweeper: asyncio.Task[None] | None = None
        if interval > 0:
            sweeper = asyncio.create_task(container.service.run_sweeper(interval))
            logger.info("Session sweeper started", extra={"interval_seconds": interval})
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
            if isinstance(container.external_query, HttpExternalQuery):
                await container.external_query.close()

    return lifespan


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """Cria a aplicação FastAPI."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name)

    container = container or build_container(settings)

    app = FastAPI(
        title=settings.service_name,
        version=settings.version,
        lifespan=_lifespan(container),
    )
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(router)

    app.state.settings = settings
    app.state.container = container
    return app
