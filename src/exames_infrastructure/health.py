"""Exames Health Checks - Component health aggregation for the application core."""
from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from pydantic import BaseModel, Field
import structlog

from exames_common.utils import DateTimeUtils

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class HealthCheckable(Protocol):
    """Protocol for components that support health checks."""
    async def check_health(self) -> dict[str, Any]: ...


@dataclass
class ComponentHealth:
    """Health status for a single component."""
    name: str
    status: HealthStatus
    latency_ms: float = 0.0
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status.value,
                "latency_ms": round(self.latency_ms, 2), "message": self.message,
                "details": self.details}


class HealthCheckResult(BaseModel):
    """Aggregated health for the whole service."""
    status: HealthStatus = Field(default=HealthStatus.UNKNOWN)
    service_name: str = Field(default="exames-core")
    checked_at: datetime = Field(default_factory=DateTimeUtils.utc_now)
    components: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY


class HealthMonitor:
    """Runs registered component checks with a timeout each."""

    def __init__(self, service_name: str = "exames-core", timeout_seconds: float = 5.0) -> None:
        self._service_name = service_name
        self._timeout_seconds = timeout_seconds
        self._components: dict[str, HealthCheckable] = {}

    def register(self, name: str, component: HealthCheckable) -> None:
        self._components[name] = component
        logger.debug("health_checker_registered", name=name)

    async def _check_one(self, name: str, component: HealthCheckable) -> ComponentHealth:
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(component.check_health(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY,
                                   latency_ms=(time.perf_counter() - start) * 1000,
                                   message=f"Health check timed out after {self._timeout_seconds}s")
        except Exception as e:
            return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY,
                                   latency_ms=(time.perf_counter() - start) * 1000,
                                   message=f"Health check failed: {e}")
        status_str = result.get("status", "unknown")
        status = (HealthStatus(status_str) if status_str in HealthStatus._value2member_map_
                  else HealthStatus.UNKNOWN)
        return ComponentHealth(name=name, status=status,
                               latency_ms=(time.perf_counter() - start) * 1000,
                               details={k: v for k, v in result.items() if k != "status"})

    async def check_all(self) -> HealthCheckResult:
        """Run all health checks concurrently and aggregate results."""
        results = await asyncio.gather(
            *(self._check_one(name, comp) for name, comp in self._components.items())
        )
        if not results:
            overall = HealthStatus.UNKNOWN
        elif any(r.status == HealthStatus.UNHEALTHY for r in results):
            overall = HealthStatus.UNHEALTHY
        elif all(r.status == HealthStatus.HEALTHY for r in results):
            overall = HealthStatus.HEALTHY
        else:
            overall = HealthStatus.DEGRADED
        if overall == HealthStatus.UNHEALTHY:
            logger.error("health_check_unhealthy",
                         unhealthy=[r.name for r in results if r.status == HealthStatus.UNHEALTHY])
        return HealthCheckResult(status=overall, service_name=self._service_name,
                                 components=[r.to_dict() for r in results])
