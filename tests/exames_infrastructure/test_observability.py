"""
Unit tests for Exames observability.
"""
from __future__ import annotations

import pytest

from exames_infrastructure.observability import (
    MetricsRegistry,
    ObservabilitySettings,
    configure_logging,
    get_correlation_id,
    measure_performance,
    set_correlation_id,
)


class TestMetricsRegistry:
    """Tests for MetricsRegistry."""

    def test_counter_accumulates(self) -> None:
        metrics = MetricsRegistry()
        metrics.counter("requests_total")
        metrics.counter("requests_total", 2)
        assert metrics.get_counter("requests_total") == 3

    def test_labels_are_separate_series(self) -> None:
        metrics = MetricsRegistry()
        metrics.counter("hits", labels={"status": "ok"})
        metrics.counter("hits", labels={"status": "error"})
        metrics.counter("hits", labels={"status": "ok"})
        assert metrics.get_counter("hits", {"status": "ok"}) == 2
        assert metrics.get_counter("hits", {"status": "error"}) == 1

    def test_label_order_does_not_matter(self) -> None:
        metrics = MetricsRegistry()
        metrics.counter("hits", labels={"a": "1", "b": "2"})
        assert metrics.get_counter("hits", {"b": "2", "a": "1"}) == 1

    def test_missing_counter_is_zero(self) -> None:
        assert MetricsRegistry().get_counter("never_recorded") == 0

    def test_gauge_overwrites(self) -> None:
        metrics = MetricsRegistry()
        metrics.gauge("queue_depth", 5)
        metrics.gauge("queue_depth", 2)
        assert metrics.get_gauge("queue_depth") == 2
        assert metrics.get_gauge("other") is None

    def test_histogram_stats(self) -> None:
        metrics = MetricsRegistry(prefix="test")
        for value in (10.0, 20.0, 30.0):
            metrics.histogram("latency_ms", value)
        assert metrics.get_histogram("latency_ms") == [10.0, 20.0, 30.0]
        stats = metrics.get_all()["histograms"]["test_latency_ms"]
        assert stats["count"] == 3
        assert stats["min"] == 10.0
        assert stats["max"] == 30.0
        assert stats["avg"] == 20.0

    def test_reset(self) -> None:
        metrics = MetricsRegistry()
        metrics.counter("x")
        metrics.histogram("y", 1.0)
        metrics.reset()
        assert metrics.get_all() == {"counters": {}, "gauges": {}, "histograms": {}}


class TestMeasurePerformance:
    """Tests for measure_performance."""

    @pytest.mark.asyncio
    async def test_records_duration(self) -> None:
        metrics = MetricsRegistry()
        async with measure_performance("load_user", metrics=metrics, domain="users"):
            pass
        samples = metrics.get_histogram("operation_duration_ms",
                                        {"operation": "load_user", "domain": "users"})
        assert len(samples) == 1
        assert samples[0] >= 0

    @pytest.mark.asyncio
    async def test_reraises_and_still_records(self) -> None:
        metrics = MetricsRegistry()
        with pytest.raises(ValueError, match="bad"):
            async with measure_performance("save_user", metrics=metrics, domain="users"):
                raise ValueError("bad")
        assert len(metrics.get_histogram("operation_duration_ms",
                                         {"operation": "save_user", "domain": "users"})) == 1


class TestLogging:
    """Tests for logging configuration and correlation ids."""

    def test_correlation_id_round_trip(self) -> None:
        set_correlation_id("req-123")
        assert get_correlation_id() == "req-123"

    def test_correlation_id_generated_when_absent(self) -> None:
        set_correlation_id("")
        generated = get_correlation_id()
        assert len(generated) == 36
        assert get_correlation_id() == generated

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configure_logging(self, log_format: str) -> None:
        configure_logging(ObservabilitySettings(log_format=log_format))

    def test_settings_defaults(self) -> None:
        settings = ObservabilitySettings()
        assert settings.service_name == "exames-core"
        assert settings.metrics_prefix == "exames"
