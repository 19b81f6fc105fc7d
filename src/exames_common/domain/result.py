"""
Exames Result Type.

Explicit success/failure return value used at every use-case boundary in
place of exceptions for expected failures.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)

_MISSING: Any = object()


class ResultAccessError(RuntimeError):
    """Raised when the wrong slot of a Result is read. A programming error."""


class Result(Generic[T, E]):
    """
    Two-state union holding either a value or an error, never both.

    Use the `success` and `failure` constructors; the success slot never
    holds None.
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: Any = _MISSING, error: Any = _MISSING) -> None:
        if (value is _MISSING) == (error is _MISSING):
            raise ResultAccessError("Result must hold exactly one of value or error")
        self._value = value
        self._error = error

    @classmethod
    def success(cls, value: T) -> Result[T, Any]:
        if value is None:
            raise ResultAccessError("Successful result cannot hold None")
        return cls(value=value)

    @classmethod
    def failure(cls, error: E) -> Result[Any, E]:
        if error is None:
            raise ResultAccessError("Failed result requires an error")
        return cls(error=error)

    def is_success(self) -> bool:
        return self._error is _MISSING

    def is_failure(self) -> bool:
        return not self.is_success()

    def get_value(self) -> T:
        if self.is_failure():
            raise ResultAccessError("Cannot get value from failed result")
        return self._value

    def get_error(self) -> E:
        if self.is_success():
            raise ResultAccessError("Cannot get error from successful result")
        return self._error

    def __repr__(self) -> str:
        if self.is_success():
            return f"Result.success({self._value!r})"
        return f"Result.failure({self._error!r})"
