"""Backend port interfaces.

These define the contracts the catalog needs from the hosted backend: a
relational store, a blob store and an identity provider. Implementations
raise BackendError on failure; the catalog converts those into Results.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .value_objects import Identity, Session

Row = Dict[str, Any]

# Equality filters; a list or tuple value means "column in values".
Filters = Mapping[str, Any]


class Tables:
    """Names of the record collections the catalog uses."""
    SONGS = "songs"
    VARIANTS = "song_variants"
    FAVORITES = "user_favorites"
    ADMINS = "admins"
    PROFILES = "profiles"


class RelationalStore(ABC):
    """Row store with filtered select, insert, update, delete and upsert."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows matching all filters."""
        pass

    @abstractmethod
    async def insert(self, table: str, rows: Sequence[Row]) -> List[Row]:
        """Insert rows and return them as stored (with generated columns)."""
        pass

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Filters) -> List[Row]:
        """Update matching rows and return them."""
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> int:
        """Delete matching rows and return how many were actually removed."""
        pass

    @abstractmethod
    async def upsert(self, table: str, rows: Sequence[Row], on_conflict: Sequence[str]) -> List[Row]:
        """Insert rows, overwriting existing rows that collide on ``on_conflict``."""
        pass

    @abstractmethod
    async def rpc(self, name: str, params: Optional[Row] = None) -> Any:
        """Call a stored procedure."""
        pass


class BlobStore(ABC):
    """Object storage keyed by name under a single bucket."""

    bucket: str

    @abstractmethod
    async def upload(self, name: str, data: bytes, content_type: str = "application/pdf") -> None:
        """Upload an object."""
        pass

    @abstractmethod
    def public_url(self, name: str) -> str:
        """Public URL for an object name."""
        pass

    @abstractmethod
    async def remove(self, names: Sequence[str]) -> None:
        """Remove a batch of objects."""
        pass


class AuthEvent(Enum):
    """Session change notifications emitted by the identity provider."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


AuthListener = Callable[[AuthEvent, Optional[Session]], Any]


class IdentityProvider(ABC):
    """Credential and session provider."""

    @abstractmethod
    async def sign_up(self, email: str, password: str, username: Optional[str] = None) -> Optional[Session]:
        """Register an account; returns a session when sign-up signs in directly."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""
        pass

    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        """Return the current session, if any."""
        pass

    @abstractmethod
    async def get_user(self, session: Session) -> Identity:
        """Fetch the identity behind an active session."""
        pass

    @abstractmethod
    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Register a session change listener; returns an unsubscribe callable."""
        pass
