"""
Domain layer for the sheet catalog.

Entities, value objects, backend ports and the Result type used by every
catalog operation.
"""

from .entities import AuthUser, Song, UserProfile
from .value_objects import (
    ALL_CATEGORIES,
    AdminGrant,
    Category,
    Identity,
    Instrument,
    NewVariant,
    Session,
    Variant,
)
from .ports import AuthEvent, BlobStore, IdentityProvider, RelationalStore, Tables
from .result import (
    AccountNotFoundError,
    CatalogError,
    CompensationError,
    Failure,
    NotFoundError,
    PermissionDeniedError,
    ProtectedAccountError,
    Result,
    Success,
    TransportError,
    UnauthenticatedError,
    ValidationError,
)

__all__ = [
    # Entities
    "Song",
    "UserProfile",
    "AuthUser",
    # Value objects
    "Variant",
    "NewVariant",
    "AdminGrant",
    "Identity",
    "Session",
    "Category",
    "Instrument",
    "ALL_CATEGORIES",
    # Ports
    "RelationalStore",
    "BlobStore",
    "IdentityProvider",
    "AuthEvent",
    "Tables",
    # Result pattern
    "Result",
    "Success",
    "Failure",
    "CatalogError",
    "ValidationError",
    "NotFoundError",
    "UnauthenticatedError",
    "PermissionDeniedError",
    "AccountNotFoundError",
    "ProtectedAccountError",
    "TransportError",
    "CompensationError",
]
