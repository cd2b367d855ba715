"""
Event System - Domain Events

Catalog mutations and session changes are announced on an EventBus so
listing surfaces can patch their snapshots without polling.
"""

from .event_bus import EventBus, DomainEvent
from .domain_events import (
    SongCreated,
    SongDeleted,
    VariantUpserted,
    FavoriteToggled,
    AdminGranted,
    AdminRevoked,
    SessionResolved,
    SessionCleared,
)

__all__ = [
    # Core event system
    "EventBus",
    "DomainEvent",
    # Domain events
    "SongCreated",
    "SongDeleted",
    "VariantUpserted",
    "FavoriteToggled",
    "AdminGranted",
    "AdminRevoked",
    "SessionResolved",
    "SessionCleared",
]
