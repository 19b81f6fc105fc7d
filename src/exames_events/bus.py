"""
Exames In-Memory Event Bus.

Single-process publish/subscribe keyed by event type, with a separate
wildcard handler list that receives every event. Handlers for one event run
concurrently; a failing handler never prevents the others from running, and
the publish raises afterwards so callers see the partial failure.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

import structlog

from exames_common.domain import WILDCARD, DomainEvent, EventBus, EventHandler
from exames_common.exceptions import InfrastructureError
from exames_infrastructure.observability import Metrics, MetricsRegistry

logger = structlog.get_logger(__name__)

HandlerFunc = Callable[[DomainEvent], Awaitable[None]]


class EventPublishError(InfrastructureError):
    """One or more handlers failed while an event was being published."""
    code = "EVENT_PUBLISH_ERROR"

    def __init__(self, event: DomainEvent, failures: list[HandlerFailure]) -> None:
        names = ", ".join(f.handler for f in failures)
        super().__init__(
            f"{len(failures)} handler(s) failed for {event.event_type}: {names}",
            "EventBus",
            context={"event_id": event.event_id, "event_type": event.event_type,
                     "handlers": [f.handler for f in failures]},
            cause=failures[0].error,
        )
        self.event = event
        self.failures = failures


@dataclass
class HandlerFailure:
    """A handler exception captured during fan-out."""
    handler: str
    error: BaseException


@dataclass
class FunctionEventHandler:
    """Adapts a plain coroutine function to the EventHandler protocol."""
    func: HandlerFunc
    handler_name: str = field(default="")

    @property
    def name(self) -> str:
        return self.handler_name or getattr(self.func, "__qualname__", repr(self.func))

    async def handle(self, event: DomainEvent) -> None:
        await self.func(event)


class InMemoryEventBus(EventBus):
    """
    Event bus holding its handler registry and event store in memory.

    Construct one per application container (or per test); there is no
    module-level instance.
    """

    def __init__(self, metrics: Metrics | None = None) -> None:
        self._metrics: Metrics = metrics or MetricsRegistry()
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: list[EventHandler] = []
        self._events: list[DomainEvent] = []

    def subscribe(self, event_type: str, handler: Union[EventHandler, HandlerFunc]) -> None:
        resolved = handler if isinstance(handler, EventHandler) else FunctionEventHandler(handler)
        if event_type == WILDCARD:
            self._wildcard_handlers.append(resolved)
        else:
            self._handlers[event_type].append(resolved)
        logger.debug("event_handler_subscribed", event_type=event_type, handler=resolved.name)

    def unsubscribe(self, event_type: str, handler: Union[EventHandler, HandlerFunc]) -> bool:
        handlers = self._wildcard_handlers if event_type == WILDCARD else self._handlers.get(event_type, [])
        for i, registered in enumerate(handlers):
            if registered is handler or (isinstance(registered, FunctionEventHandler)
                                         and registered.func is handler):
                del handlers[i]
                return True
        return False

    async def publish(self, event: DomainEvent) -> None:
        """
        Store the event and fan it out to matching handlers.

        Raises:
            EventPublishError: If any handler failed; all handlers have run.
        """
        start = time.perf_counter()
        self._events.append(event)
        handlers = [*self._handlers.get(event.event_type, []), *self._wildcard_handlers]
        logger.info(
            "domain_event_published",
            event_type=event.event_type,
            event_id=event.event_id,
            aggregate_id=event.aggregate_id,
            handler_count=len(handlers),
        )
        outcomes = await asyncio.gather(
            *(handler.handle(event) for handler in handlers),
            return_exceptions=True,
        )
        failures: list[HandlerFailure] = []
        for handler, outcome in zip(handlers, outcomes):
            status = "success"
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                status = "error"
                failures.append(HandlerFailure(handler=handler.name, error=outcome))
                logger.error(
                    "event_handler_failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    handler=handler.name,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
            self._metrics.counter(
                "domain_events_handled_total",
                labels={"event_type": event.event_type, "handler": handler.name, "status": status},
            )
        self._metrics.histogram(
            "domain_event_publish_duration_ms",
            (time.perf_counter() - start) * 1000,
            {"event_type": event.event_type},
        )
        if failures:
            raise EventPublishError(event, failures)

    def get_events(self, event_type: str | None = None,
                   aggregate_id: str | None = None) -> list[DomainEvent]:
        """Published events in publish order, optionally filtered."""
        return [
            e for e in self._events
            if (event_type is None or e.event_type == event_type)
            and (aggregate_id is None or e.aggregate_id == aggregate_id)
        ]

    def handler_count(self, event_type: str) -> int:
        if event_type == WILDCARD:
            return len(self._wildcard_handlers)
        return len(self._handlers.get(event_type, []))

    def clear(self) -> None:
        """Drop stored events and every subscription."""
        self._events.clear()
        self._handlers.clear()
        self._wildcard_handlers.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "events_stored": len(self._events),
            "event_types": sorted(self._handlers),
            "wildcard_handlers": len(self._wildcard_handlers),
        }

    async def check_health(self) -> dict[str, Any]:
        return {"status": "healthy", **self.stats()}
