"""
Exames Base Entity Implementation.

Entities carry:
- Opaque identity, immutable after creation
- created_at and updated_at on mutable entities
- Equality based on identity, never on attributes
"""

from __future__ import annotations

import uuid
from abc import ABC
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..utils import DateTimeUtils

TId = TypeVar("TId")


def generate_id() -> str:
    """Generate a new opaque entity identifier."""
    return str(uuid.uuid4())


class Entity(BaseModel, ABC, Generic[TId]):
    """
    Object whose identity outlives its state.

    Two entities are equal when they have the same type and id, whatever
    their attribute values.
    """

    id: TId = Field(..., description="Unique entity identifier")

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    _entity_type: ClassVar[str] = "Entity"

    @classmethod
    def get_entity_type(cls) -> str:
        """Return the entity type name."""
        return getattr(cls, "_entity_type", cls.__name__)

    def get_id(self) -> TId:
        return self.id

    def equals(self, other: Any) -> bool:
        """Identity comparison, the only notion of entity equality."""
        if other is None or not isinstance(other, Entity):
            return False
        if not isinstance(other, type(self)):
            return False
        return self.id == other.id

    def __eq__(self, other: object) -> bool:
        return self.equals(other)

    def __hash__(self) -> int:
        return hash((type(self).__name__, str(self.id)))

    def __repr__(self) -> str:
        return f"{self.get_entity_type()}(id={self.id})"


class MutableEntity(Entity[TId], ABC, Generic[TId]):
    """
    Base class for entities whose state changes over time.

    `updated_at` moves only through `touch()`, which concrete entities call
    from state-changing methods.
    """

    created_at: datetime = Field(default_factory=DateTimeUtils.utc_now)
    updated_at: datetime = Field(default_factory=DateTimeUtils.utc_now)

    def touch(self) -> None:
        """Advance the update timestamp."""
        self.updated_at = DateTimeUtils.utc_now()
