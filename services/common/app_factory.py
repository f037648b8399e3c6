"""Factory for creating FastAPI apps with standardized lifecycle and observability."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.responses import Response

from services.common.health import HealthManager
from services.common.logging import get_logger
from services.common.metrics import render_latest
from services.common.middleware import ObservabilityMiddleware

logger = get_logger(__name__)

Callback = Callable[[FastAPI], Any] | Callable[[FastAPI], Awaitable[Any]]


async def _run_callback(callback: Callback, app: FastAPI) -> None:
    if inspect.iscoroutinefunction(callback):
        await callback(app)
    else:
        callback(app)


def create_service_app(
    service_name: str,
    service_version: str = "1.0.0",
    title: str | None = None,
    *,
    description: str | None = None,
    startup_callback: Callback | None = None,
    shutdown_callback: Callback | None = None,
    health_manager: HealthManager | None = None,
) -> FastAPI:
    """Create a FastAPI app with a standard lifespan, middleware and /metrics.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        title: FastAPI app title (defaults to service_name)
        description: OpenAPI description
        startup_callback: Service-specific startup, sync or async, receives the app
        shutdown_callback: Service-specific shutdown, sync or async, receives the app
        health_manager: When given, a failing startup callback is recorded
            there instead of crashing the process, and readiness reports it.

    Routes (including health endpoints) are registered before the lifespan
    runs, so the service answers /health/ready with 503 while starting.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        try:
            if startup_callback:
                await _run_callback(startup_callback, app)
            logger.info(f"{service_name}.startup_complete")
        except Exception as exc:
            logger.error(f"{service_name}.startup_failed", error=str(exc))
            if health_manager is None:
                raise
            health_manager.record_startup_failure(
                error=exc,
                component="startup_callback",
                is_critical=True,
            )

        yield

        if shutdown_callback:
            try:
                await _run_callback(shutdown_callback, app)
            except Exception as exc:
                logger.error(f"{service_name}.shutdown_failed", error=str(exc))

        logger.info(f"{service_name}.shutdown")

    app = FastAPI(
        title=title or service_name,
        version=service_version,
        description=description or "",
        lifespan=lifespan,
    )
    app.state.service_name = service_name

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_latest()
        return Response(payload, media_type=content_type)

    app.add_middleware(ObservabilityMiddleware)
    return app


__all__ = ["create_service_app"]
