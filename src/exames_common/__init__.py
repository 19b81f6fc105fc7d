"""
Exames Common Library.

Provides the shared domain kernel, the error taxonomy and small utilities
used across the Exames application core.

Modules:
    domain: Entity, ValueObject, AggregateRoot, Result and application contracts
    exceptions: Typed error hierarchy and ErrorHandler
    utils: Datetime and validation helpers
"""

from .domain import (
    WILDCARD,
    AggregateRoot,
    DomainEvent,
    Entity,
    EventBus,
    EventHandler,
    MutableEntity,
    Repository,
    Result,
    ResultAccessError,
    SingleValueObject,
    UseCase,
    ValueObject,
    generate_id,
)
from .exceptions import (
    DomainError,
    ErrorHandler,
    ErrorResponse,
    ExamesError,
    InfrastructureError,
    ValidationError,
)

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "EventBus",
    "EventHandler",
    "MutableEntity",
    "Repository",
    "Result",
    "ResultAccessError",
    "SingleValueObject",
    "UseCase",
    "ValueObject",
    "WILDCARD",
    "generate_id",
    "DomainError",
    "ErrorHandler",
    "ErrorResponse",
    "ExamesError",
    "InfrastructureError",
    "ValidationError",
]
