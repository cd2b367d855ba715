"""
Domain value objects for the sheet catalog.

Value objects are immutable and defined by their attributes rather than identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Category(Enum):
    """Liturgical category a song is filed under."""
    CHRISTMAS = "Christmas"
    EASTER = "Easter"
    WORSHIP = "Worship"
    OTHERS = "Others"


class Instrument(Enum):
    """Instrumentation a score is written for."""
    PIANO = "Piano"
    BAND = "Band"


# Category filter sentinel meaning "do not filter"
ALL_CATEGORIES = "All"


@dataclass(frozen=True, slots=True)
class Variant:
    """A single musical-key rendition (PDF) of a song."""

    song_id: str
    key: str
    pdf_url: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Variant":
        return cls(song_id=str(row["song_id"]), key=row["key"], pdf_url=row["pdf_url"])


@dataclass(frozen=True, slots=True)
class NewVariant:
    """A variant not yet attached to a song."""

    key: str
    pdf_url: str


@dataclass(frozen=True, slots=True)
class AdminGrant:
    """An email authorized for administrative capability."""

    email: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AdminGrant":
        return cls(
            email=row["email"],
            id=str(row["id"]) if row.get("id") is not None else None,
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(frozen=True, slots=True)
class Identity:
    """The identity attached to an auth session."""

    id: str
    email: str
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True, slots=True)
class Session:
    """An opaque authenticated session issued by the identity provider."""

    access_token: str
    user: Identity
    refresh_token: Optional[str] = None


def email_local_part(email: str) -> str:
    """Return the part of an email address before the ``@``."""
    return email.split("@", 1)[0]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a backend timestamp (ISO-8601 string or datetime)."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
