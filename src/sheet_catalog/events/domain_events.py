"""
Domain Events - Specific event implementations.

Events published by the catalog after mutations and by the session
resolver when the signed-in user changes or is refined.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.entities import AuthUser
from .event_bus import DomainEvent


@dataclass(kw_only=True)
class SongCreated(DomainEvent):
    """Event fired when a song and its variants are added to the catalog."""
    song_id: str
    name: str
    keys: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.song_id
        super().__post_init__()


@dataclass(kw_only=True)
class SongDeleted(DomainEvent):
    """Event fired when a song was removed by the deletion reconciler."""
    song_id: str
    removed_files: List[str] = field(default_factory=list)
    storage_warning: Optional[str] = None

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.song_id
        super().__post_init__()


@dataclass(kw_only=True)
class VariantUpserted(DomainEvent):
    """Event fired when a key variant is added or replaced."""
    song_id: str
    key: str
    pdf_url: str
    replaced_url: Optional[str] = None

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.song_id
        super().__post_init__()


@dataclass(kw_only=True)
class FavoriteToggled(DomainEvent):
    """Event fired when a user favorites or un-favorites a song."""
    user_id: str
    song_id: str
    is_favorite: bool


@dataclass(kw_only=True)
class AdminGranted(DomainEvent):
    """Event fired when an email is authorized as admin."""
    email: str


@dataclass(kw_only=True)
class AdminRevoked(DomainEvent):
    """Event fired when an admin grant is removed."""
    email: str


@dataclass(kw_only=True)
class SessionResolved(DomainEvent):
    """Event fired when the signed-in user is known or has been refined.

    ``user.confirmed`` is False for the optimistic first value and True once
    the profile and admin grant have been checked against the backend.
    """
    user: AuthUser


@dataclass(kw_only=True)
class SessionCleared(DomainEvent):
    """Event fired when there is no longer a signed-in user."""
    previous_user_id: Optional[str] = None
