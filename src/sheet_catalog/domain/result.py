"""Result type returned by catalog operations.

Expected failures (validation, missing records, refused mutations, backend
trouble) come back as a Failure carrying a CatalogError instead of being
raised, so callers branch on ``is_success()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, cast

T = TypeVar('T')  # Success type
E = TypeVar('E', bound=Exception)  # Error type


class Result(ABC, Generic[T, E]):
    """Either a Success with a value or a Failure with an error."""

    @abstractmethod
    def is_success(self) -> bool:
        ...

    @abstractmethod
    def is_failure(self) -> bool:
        ...

    @abstractmethod
    def value(self) -> T:
        """The success value; raises ValueError on a Failure."""
        ...

    @abstractmethod
    def error(self) -> E:
        """The error; raises ValueError on a Success."""
        ...

    @abstractmethod
    def map(self, fn: Callable[[T], Any]) -> Result[Any, E]:
        """Transform the success value, leaving a Failure untouched."""
        ...

    def or_else(self, default: T) -> T:
        return self.value() if self.is_success() else default


@dataclass(frozen=True, slots=True)
class Success(Result[T, E]):
    _value: T

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def value(self) -> T:
        return self._value

    def error(self) -> E:
        raise ValueError("Cannot get error from Success result")

    def map(self, fn: Callable[[T], Any]) -> Result[Any, E]:
        try:
            return Success(fn(self._value))
        except Exception as e:
            return Failure(cast(E, e))


@dataclass(frozen=True, slots=True)
class Failure(Result[T, E]):
    _error: E

    def __repr__(self) -> str:
        return f"Failure({self._error!r})"

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def value(self) -> T:
        raise ValueError(f"Cannot get value from Failure result: {self._error}")

    def error(self) -> E:
        return self._error

    def map(self, fn: Callable[[T], Any]) -> Result[Any, E]:
        return self


# Error taxonomy for catalog operations
class CatalogError(Exception):
    """Base class for expected catalog operation failures."""
    pass


class ValidationError(CatalogError):
    """Raised when an operation's preconditions are not met."""
    pass


class NotFoundError(CatalogError):
    """Raised when a record does not exist."""
    pass


class UnauthenticatedError(CatalogError):
    """Raised when an operation needs a session and none is active."""
    pass


class PermissionDeniedError(CatalogError):
    """Raised when the backend silently refused a mutation."""
    pass


class AccountNotFoundError(CatalogError):
    """Raised when granting admin to an email with no profile."""
    pass


class ProtectedAccountError(CatalogError):
    """Raised when trying to revoke the root admin."""
    pass


class TransportError(CatalogError):
    """Raised when a backend call fails at the network or store level."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class CompensationError(CatalogError):
    """Raised when a rollback step failed after the primary step failed."""
    pass
