"""Sheet Music Catalog

Browse, search, favorite and administer music sheet PDFs stored in a hosted
backend.
"""

__version__ = "0.1.0"

from .application import (
    CatalogRepository,
    Debouncer,
    DeletionReconciler,
    DeletionResult,
    SessionResolver,
    storage_object_name,
)
from .domain import (
    ALL_CATEGORIES,
    AdminGrant,
    AuthUser,
    Category,
    Instrument,
    NewVariant,
    Session,
    Song,
    UserProfile,
    Variant,
)
from .events import EventBus
from .models.config import CatalogConfig, load_config

__all__ = [
    # Core components
    "CatalogRepository",
    "DeletionReconciler",
    "SessionResolver",
    "Debouncer",
    "EventBus",

    # Types and enums
    "DeletionResult",
    "Song",
    "Variant",
    "NewVariant",
    "AdminGrant",
    "UserProfile",
    "AuthUser",
    "Session",
    "Category",
    "Instrument",
    "ALL_CATEGORIES",
    "CatalogConfig",

    # Utilities
    "storage_object_name",
    "load_config",
]
