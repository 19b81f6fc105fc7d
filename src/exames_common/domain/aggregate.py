"""
Exames Aggregate Root Implementation.

An aggregate root owns:
- Consistency boundaries around a set of invariants
- Domain event queuing until the aggregate is persisted
- In-order draining of the queue after persistence
"""

from __future__ import annotations

import uuid
from abc import ABC
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

import structlog

from ..utils import DateTimeUtils
from .entity import MutableEntity

logger = structlog.get_logger(__name__)


class DomainEvent(BaseModel):
    """
    Immutable record of something that happened to an aggregate.

    Events are queued on the aggregate and broadcast once the aggregate has
    been saved.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = Field(..., description="Dot-namespaced event type")
    aggregate_id: str = Field(..., description="ID of aggregate that raised event")
    aggregate_type: str = Field(default="", description="Type of aggregate")
    occurred_at: datetime = Field(default_factory=DateTimeUtils.utc_now)
    correlation_id: str | None = Field(default=None, description="Correlation ID for tracing")
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a JSON-friendly dictionary."""
        data = self.model_dump(mode="json")
        data["occurred_at"] = DateTimeUtils.to_iso_string(self.occurred_at)
        return data


TId = TypeVar("TId")


class AggregateRoot(MutableEntity[TId], ABC, Generic[TId]):
    """
    Consistency boundary that queues the events its mutations raise.

    Domain events are collected internally in the order they are raised and
    should be drained by the repository after the aggregate is persisted.
    """

    _pending_events: list[DomainEvent] = PrivateAttr(default_factory=list)
    _entity_type: ClassVar[str] = "AggregateRoot"

    def _raise_event(self, event: DomainEvent) -> None:
        """Record a domain event to be dispatched after persistence."""
        self._pending_events.append(event)
        logger.debug(
            "domain_event_raised",
            event_type=event.event_type,
            aggregate_id=str(self.id),
            aggregate_type=self.get_entity_type(),
        )

    def get_uncommitted_events(self) -> list[DomainEvent]:
        """Return a copy of the pending events, oldest first."""
        return list(self._pending_events)

    def mark_events_committed(self) -> None:
        self._pending_events.clear()

    def collect_events(self) -> list[DomainEvent]:
        """Retrieve and clear all pending domain events."""
        events = self.get_uncommitted_events()
        self.mark_events_committed()
        return events

    def has_pending_events(self) -> bool:
        return len(self._pending_events) > 0
