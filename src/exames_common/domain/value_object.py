"""
Exames Value Object Implementation.

Value objects are compared by their attribute values, not identity.
They are immutable after creation and self-validating: construction is the
only validation point, so an invalid instance never exists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict


class ValueObject(BaseModel, ABC):
    """
    Base class for all value objects.

    Each concrete value object lists the fields that define it in
    `_equality_components`; equality and hashing compare those components
    one by one.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        use_enum_values=False,
    )

    @abstractmethod
    def _equality_components(self) -> tuple[Any, ...]:
        """Ordered fields that define this value."""

    def equals(self, other: Any) -> bool:
        if other is None or type(other) is not type(self):
            return False
        return self._equality_components() == other._equality_components()

    def __eq__(self, other: object) -> bool:
        return self.equals(other)

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._equality_components()))


T = TypeVar("T")


class SingleValueObject(ValueObject, Generic[T]):
    """Value object wrapping a single primitive value."""

    value: T

    def _equality_components(self) -> tuple[Any, ...]:
        return (self.value,)

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.value!r})"
