"""
Exames Domain Module.

Provides Domain-Driven Design building blocks:
- Entity: Identity-based domain objects
- ValueObject: Immutable value objects
- AggregateRoot: Consistency boundaries with queued events
- Result, UseCase, Repository, EventBus: application contracts
"""

from .aggregate import AggregateRoot, DomainEvent
from .contracts import WILDCARD, EventBus, EventHandler, Repository, UseCase
from .entity import Entity, MutableEntity, generate_id
from .result import Result, ResultAccessError
from .value_object import SingleValueObject, ValueObject

__all__ = [
    # Entity
    "Entity",
    "MutableEntity",
    "generate_id",
    # Value Objects
    "ValueObject",
    "SingleValueObject",
    # Aggregate
    "AggregateRoot",
    "DomainEvent",
    # Contracts
    "Result",
    "ResultAccessError",
    "UseCase",
    "Repository",
    "EventBus",
    "EventHandler",
    "WILDCARD",
]
