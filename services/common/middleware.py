"""FastAPI middleware for request observability (correlation IDs, logging, timing, metrics)."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from typing import ClassVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from services.common.logging import correlation_context, get_logger
from services.common.metrics import http_metrics

logger = get_logger(__name__)


def _route_label(request: Request) -> str:
    # Templated path keeps metric cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Correlation ID propagation, request/response logging and HTTP metrics."""

    CORRELATION_HEADER = "X-Correlation-ID"
    # Paths to exclude from verbose logging
    EXCLUDED_PATHS: ClassVar[set[str]] = {"/health/live", "/health/ready", "/metrics"}

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(self.CORRELATION_HEADER) or str(
            uuid.uuid4()
        )
        should_log = request.url.path not in self.EXCLUDED_PATHS
        metrics = http_metrics()
        start_time = time.perf_counter()

        with correlation_context(correlation_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                duration = time.perf_counter() - start_time
                route = _route_label(request)
                metrics["http_requests"].labels(
                    method=request.method, route=route, status="error"
                ).inc()
                metrics["http_request_duration"].labels(
                    method=request.method, route=route
                ).observe(duration)
                logger.error(
                    "http.request.error",
                    method=request.method,
                    path=request.url.path,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    duration_ms=round(duration * 1000, 2),
                )
                raise

            duration = time.perf_counter() - start_time
            route = _route_label(request)
            status = "success" if response.status_code < 400 else "error"
            metrics["http_requests"].labels(
                method=request.method, route=route, status=status
            ).inc()
            metrics["http_request_duration"].labels(
                method=request.method, route=route
            ).observe(duration)

            if should_log:
                logger.info(
                    "http.request.complete",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                )

        response.headers[self.CORRELATION_HEADER] = correlation_id
        return response


__all__ = ["ObservabilityMiddleware"]
