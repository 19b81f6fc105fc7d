"""Exames Observability - Structured logging, metrics, and performance measurement."""
from __future__ import annotations
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Any, Callable, Protocol, TypedDict
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

logger = structlog.get_logger(__name__)

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ObservabilitySettings(BaseSettings):
    """Observability configuration from environment."""
    service_name: str = Field(default="exames-core")
    environment: str = Field(default="development")
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="json")
    metrics_prefix: str = Field(default="exames")
    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore")


class LogContext(TypedDict, total=False):
    """Structured context keys shared by every layer."""
    domain: str
    usecase: str
    layer: str
    user_id: str
    request_id: str
    duration_ms: float


def get_correlation_id() -> str:
    """Get current correlation ID from context, creating one if absent."""
    cid = _correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def bind_log_context(**context: Any) -> structlog.stdlib.BoundLogger:
    """Return a logger carrying LogContext fields."""
    return structlog.get_logger().bind(**context)


def configure_logging(settings: ObservabilitySettings | None = None) -> None:
    """
    Install the structlog pipeline for this process.

    Every record gets level, ISO timestamp, service, environment and the
    current correlation id. `log_format="json"` renders one JSON object per
    line; anything else uses the colored console renderer.
    """
    settings = settings or ObservabilitySettings()
    renderer: list[Any] = (
        [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        if settings.log_format == "json"
        else [structlog.dev.ConsoleRenderer(colors=True)]
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _service_stamp(settings.service_name, settings.environment),
            _stamp_correlation_id,
            *renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.value)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _service_stamp(service_name: str, environment: str) -> Callable[..., Any]:
    def stamp(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("environment", environment)
        return event_dict
    return stamp


def _stamp_correlation_id(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    if cid := _correlation_id.get():
        event_dict.setdefault("correlation_id", cid)
    return event_dict


Labels = dict[str, str]


class Metrics(Protocol):
    """Counter, gauge and histogram sink. The core only talks to this."""

    def counter(self, name: str, value: float = 1.0, labels: Labels | None = None) -> None: ...

    def gauge(self, name: str, value: float, labels: Labels | None = None) -> None: ...

    def histogram(self, name: str, value: float, labels: Labels | None = None) -> None: ...


class MetricsRegistry:
    """
    In-process Metrics backend.

    Series are keyed `<prefix>_<name>{label=value,...}` with labels sorted by
    name, so the same labels in any order land on one series.
    """

    def __init__(self, prefix: str = "exames") -> None:
        self._prefix = prefix
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}

    def series_key(self, name: str, labels: Labels | None = None) -> str:
        base = f"{self._prefix}_{name}" if self._prefix else name
        if not labels:
            return base
        rendered = ",".join(f"{key}={labels[key]}" for key in sorted(labels))
        return f"{base}{{{rendered}}}"

    def counter(self, name: str, value: float = 1.0, labels: Labels | None = None) -> None:
        series = self.series_key(name, labels)
        self._counters[series] = self._counters.get(series, 0) + value

    def gauge(self, name: str, value: float, labels: Labels | None = None) -> None:
        self._gauges[self.series_key(name, labels)] = value

    def histogram(self, name: str, value: float, labels: Labels | None = None) -> None:
        self._histograms.setdefault(self.series_key(name, labels), []).append(value)

    def get_counter(self, name: str, labels: Labels | None = None) -> float:
        return self._counters.get(self.series_key(name, labels), 0)

    def get_gauge(self, name: str, labels: Labels | None = None) -> float | None:
        return self._gauges.get(self.series_key(name, labels))

    def get_histogram(self, name: str, labels: Labels | None = None) -> list[float]:
        return list(self._histograms.get(self.series_key(name, labels), []))

    def get_all(self) -> dict[str, Any]:
        """Snapshot of every series; histograms are summarized."""
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": {series: _summarize(samples)
                           for series, samples in self._histograms.items()},
        }

    def reset(self) -> None:
        for store in (self._counters, self._gauges, self._histograms):
            store.clear()


def _summarize(samples: list[float]) -> dict[str, float]:
    ordered = sorted(samples)
    count = len(ordered)
    if not count:
        return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0}
    total = sum(ordered)
    return {
        "count": count,
        "sum": total,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": total / count,
        "p50": ordered[count // 2],
        "p95": ordered[min(int(count * 0.95), count - 1)],
    }


@asynccontextmanager
async def measure_performance(
    operation: str,
    *,
    metrics: Metrics,
    domain: str = "core",
    **context: Any,
) -> AsyncIterator[None]:
    """
    Time a block of async work.

    Records `operation_duration_ms{operation, domain}` and logs
    `operation_completed` or `operation_failed`. Exceptions are re-raised.
    """
    log = logger.bind(operation=operation, domain=domain, **context)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.histogram("operation_duration_ms", duration_ms,
                          {"operation": operation, "domain": domain})
        log.error("operation_failed", duration_ms=round(duration_ms, 3),
                  error=str(e), error_type=type(e).__name__)
        raise
    duration_ms = (time.perf_counter() - start) * 1000
    metrics.histogram("operation_duration_ms", duration_ms,
                      {"operation": operation, "domain": domain})
    log.debug("operation_completed", duration_ms=round(duration_ms, 3))
