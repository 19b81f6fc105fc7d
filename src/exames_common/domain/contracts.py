"""
Exames Application Contracts.

Abstract seams between the domain core and its collaborators: use cases,
repositories and the domain event bus.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Protocol, TypeVar, runtime_checkable

from ..exceptions import ExamesError
from .aggregate import DomainEvent
from .result import Result

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")
T = TypeVar("T")

WILDCARD = "*"


class UseCase(ABC, Generic[TIn, TOut]):
    """
    Single application operation.

    Expected failures come back as `Result.failure`; implementations must not
    let them escape as exceptions.
    """

    @abstractmethod
    async def execute(self, request: TIn) -> Result[TOut, ExamesError]:
        """Run the use case."""


class Repository(ABC, Generic[T]):
    """
    Base persistence contract for aggregates.

    Implementations translate storage exceptions into typed Exames errors.
    """

    @abstractmethod
    async def find_by_id(self, entity_id: str) -> T | None:
        """
        Load an aggregate.

        Returns:
            The aggregate or None if not found
        """

    @abstractmethod
    async def save(self, entity: T) -> T:
        """
        Persist an aggregate and publish its queued events.

        Returns:
            The saved aggregate
        """

    @abstractmethod
    async def delete(self, entity_id: str) -> None:
        """Remove an aggregate by id."""


@runtime_checkable
class EventHandler(Protocol):
    """Subscriber callback for domain events."""

    @property
    def name(self) -> str: ...

    async def handle(self, event: DomainEvent) -> None: ...


class EventBus(ABC):
    """
    Publish/subscribe contract for domain events.

    Subscribing to `WILDCARD` ("*") delivers every event.
    """

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to every matching handler."""

    @abstractmethod
    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type or the wildcard."""

    @abstractmethod
    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove a handler; returns False if it was not registered."""

    async def publish_all(self, events: list[DomainEvent]) -> None:
        """Publish events one after another, preserving their order."""
        for event in events:
            await self.publish(event)
