"""Catalog entities.

Songs are the aggregate root of the catalog: variants and favorites only
exist relative to a song. Profiles and auth users describe the people
browsing and administering it.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from .value_objects import (
    Category,
    Instrument,
    Variant,
    email_local_part,
    parse_timestamp,
)


@dataclass(kw_only=True)
class Song:
    """
    A catalog entry for one piece of music.

    A Song is only meaningfully usable with at least one Variant, although
    the backend does not enforce it. ``is_favorite`` is an annotation
    relative to whoever listed the catalog, not stored state.
    """

    id: str
    name: str
    categories: FrozenSet[Category] = field(default_factory=frozenset)
    instrument: Instrument = Instrument.PIANO
    created_at: Optional[datetime] = None
    search_count: int = 0
    variants: List[Variant] = field(default_factory=list)
    is_favorite: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any], variants: Optional[List[Variant]] = None) -> "Song":
        """Build a Song from a ``songs`` row and its variant rows."""
        return cls(
            id=str(row["id"]),
            name=row["name"],
            categories=frozenset(Category(c) for c in row.get("categories") or []),
            instrument=Instrument(row["instrument"]),
            created_at=parse_timestamp(row.get("created_at")),
            search_count=row.get("search_count") or 0,
            variants=list(variants or []),
        )

    def has_category(self, category: Category) -> bool:
        return category in self.categories

    @property
    def keys(self) -> List[str]:
        return [v.key for v in self.variants]

    def with_favorite(self, is_favorite: bool) -> "Song":
        return replace(self, is_favorite=is_favorite)


@dataclass(kw_only=True)
class UserProfile:
    """Denormalized mirror of an authenticated identity."""

    id: str
    email: str
    username: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(row["id"]),
            email=row["email"],
            username=row.get("username") or email_local_part(row["email"]),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(frozen=True, kw_only=True)
class AuthUser:
    """Session view of the signed-in user.

    Immutable: a refined view is published as a new instance rather than
    mutating one a caller already holds.
    """

    id: str
    email: str
    username: str
    is_admin: bool = False
    confirmed: bool = False
