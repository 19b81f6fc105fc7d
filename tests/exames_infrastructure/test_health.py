"""
Unit tests for Exames health checks.
"""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from exames_infrastructure.health import HealthMonitor, HealthStatus


class StaticComponent:
    def __init__(self, status: str) -> None:
        self._status = status

    async def check_health(self) -> dict[str, Any]:
        return {"status": self._status, "version": "1"}


class FailingComponent:
    async def check_health(self) -> dict[str, Any]:
        raise ConnectionError("refused")


class SlowComponent:
    async def check_health(self) -> dict[str, Any]:
        await asyncio.sleep(1)
        return {"status": "healthy"}


class TestHealthMonitor:
    """Tests for HealthMonitor aggregation."""

    @pytest.mark.asyncio
    async def test_no_components_is_unknown(self) -> None:
        result = await HealthMonitor().check_all()
        assert result.status == HealthStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_all_healthy(self) -> None:
        monitor = HealthMonitor(service_name="exames-test")
        monitor.register("db", StaticComponent("healthy"))
        monitor.register("bus", StaticComponent("healthy"))
        result = await monitor.check_all()
        assert result.is_healthy
        assert result.service_name == "exames-test"
        assert {c["name"] for c in result.components} == {"db", "bus"}
        assert result.components[0]["details"] == {"version": "1"}

    @pytest.mark.asyncio
    async def test_degraded(self) -> None:
        monitor = HealthMonitor()
        monitor.register("db", StaticComponent("healthy"))
        monitor.register("cache", StaticComponent("degraded"))
        assert (await monitor.check_all()).status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_exception_is_unhealthy(self) -> None:
        monitor = HealthMonitor()
        monitor.register("db", StaticComponent("healthy"))
        monitor.register("broken", FailingComponent())
        result = await monitor.check_all()
        assert result.status == HealthStatus.UNHEALTHY
        broken = next(c for c in result.components if c["name"] == "broken")
        assert "refused" in broken["message"]

    @pytest.mark.asyncio
    async def test_timeout_is_unhealthy(self) -> None:
        monitor = HealthMonitor(timeout_seconds=0.01)
        monitor.register("slow", SlowComponent())
        result = await monitor.check_all()
        assert result.status == HealthStatus.UNHEALTHY
        assert "timed out" in result.components[0]["message"]
