"""Health check management for service readiness."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from services.common.logging import get_logger


class HealthStatus(Enum):
    """Service health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(slots=True)
class HealthCheck:
    """Health check result."""

    status: HealthStatus
    ready: bool  # Can serve requests
    details: dict[str, Any]


class HealthManager:
    """Tracks startup state and dependency checks for one service."""

    def __init__(self, service_name: str) -> None:
        self._service_name = service_name
        self._dependencies: dict[str, Callable[[], Any]] = {}
        self._startup_complete = False
        self._startup_time = time.time()
        self._startup_failure: dict[str, Any] | None = None
        self._logger = get_logger(__name__, service_name=service_name)

    @property
    def startup_complete(self) -> bool:
        return self._startup_complete

    def register_dependency(self, name: str, check: Callable[[], Any]) -> None:
        """Register a dependency check (sync or async, returning truthy when available)."""
        self._dependencies[name] = check
        self._logger.debug("health.dependency_registered", dependency=name)

    def mark_startup_complete(self) -> None:
        self._startup_complete = True
        self._logger.info(
            "health.startup_complete",
            startup_seconds=round(time.time() - self._startup_time, 3),
        )

    def record_startup_failure(
        self, error: Exception, component: str, *, is_critical: bool = True
    ) -> None:
        self._startup_failure = {
            "component": component,
            "error": str(error),
            "error_type": type(error).__name__,
            "is_critical": is_critical,
            "timestamp": time.time(),
        }
        self._logger.error(
            "health.startup_failure_recorded",
            component=component,
            error=str(error),
            is_critical=is_critical,
        )

    async def _check_dependency(self, check: Callable[[], Any]) -> dict[str, Any]:
        try:
            result = check()
            if asyncio.iscoroutine(result):
                result = await result
            return {"available": bool(result)}
        except Exception as exc:
            return {"available": False, "error": str(exc)}

    async def get_health_status(self) -> HealthCheck:
        dependencies = {
            name: await self._check_dependency(check)
            for name, check in self._dependencies.items()
        }
        all_available = all(dep["available"] for dep in dependencies.values())
        critical_failure = bool(
            self._startup_failure and self._startup_failure["is_critical"]
        )

        if not self._startup_complete or critical_failure:
            status = HealthStatus.UNHEALTHY
        elif not all_available:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        details: dict[str, Any] = {
            "startup_complete": self._startup_complete,
            "dependencies": dependencies,
        }
        if self._startup_failure:
            details["startup_failure"] = self._startup_failure
        return HealthCheck(
            status=status,
            ready=status is HealthStatus.HEALTHY,
            details=details,
        )


__all__ = ["HealthCheck", "HealthManager", "HealthStatus"]
