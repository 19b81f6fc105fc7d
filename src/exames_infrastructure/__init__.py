"""
Exames Infrastructure Library.

Modules:
    observability: structlog configuration, metrics registry, performance measurement
    database: SQLAlchemy async engine, sessions and declarative base
    health: component health aggregation
"""

from .observability import (
    LogContext,
    Metrics,
    MetricsRegistry,
    ObservabilitySettings,
    configure_logging,
    measure_performance,
)

__all__ = [
    "LogContext",
    "Metrics",
    "MetricsRegistry",
    "ObservabilitySettings",
    "configure_logging",
    "measure_performance",
]
