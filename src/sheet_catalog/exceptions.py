"""Custom exceptions for the sheet catalog."""

from typing import Optional


class SheetCatalogError(Exception):
    """Base exception for sheet catalog errors."""
    pass


class ConfigurationError(SheetCatalogError):
    """Raised when there's an error in configuration."""
    pass


class BackendError(SheetCatalogError):
    """Raised by backend adapters when a store, storage or auth call fails.

    ``code`` carries the backend's error code where one is known, e.g. the
    Postgres SQLSTATE ``23505`` for a unique violation.
    """

    UNIQUE_VIOLATION = "23505"

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status

    @property
    def is_unique_violation(self) -> bool:
        return self.code == self.UNIQUE_VIOLATION
