"""
Common health endpoints (/health/live, /health/ready).
"""

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from services.common.health import HealthManager, HealthStatus


class HealthEndpoints:
    """Standardized health endpoints for a service."""

    def __init__(
        self,
        service_name: str,
        health_manager: HealthManager,
        custom_components: dict[str, Callable[[], Any]] | None = None,
    ) -> None:
        """
        Args:
            service_name: Name reported in every payload
            health_manager: HealthManager instance for the service
            custom_components: Extra status entries, evaluated per request
        """
        self.service_name = service_name
        self.health_manager = health_manager
        self.custom_components = custom_components or {}
        self.router = APIRouter(tags=["Health"])
        self.router.add_api_route("/health/live", self.health_live, methods=["GET"])
        self.router.add_api_route("/health/ready", self.health_ready, methods=["GET"])

    def get_router(self) -> APIRouter:
        return self.router

    async def health_live(self) -> dict[str, str]:
        """Liveness check - 200 whenever the process is serving."""
        return {"status": "alive", "service": self.service_name}

    async def health_ready(self) -> JSONResponse:
        """Readiness check.

        Returns 503 until startup is complete and every registered
        dependency (eagerly loaded pipelines) is available.
        """
        health_status = await self.health_manager.get_health_status()
        if health_status.ready:
            status_str = "ready"
        elif health_status.status == HealthStatus.DEGRADED:
            status_str = "degraded"
        else:
            status_str = "not_ready"

        components = {}
        for name, component in self.custom_components.items():
            try:
                components[name] = component()
            except Exception as exc:
                components[name] = {"error": str(exc)}

        payload = {
            "status": status_str,
            "service": self.service_name,
            "components": components,
            **health_status.details,
        }
        return JSONResponse(payload, status_code=200 if health_status.ready else 503)


__all__ = ["HealthEndpoints"]
