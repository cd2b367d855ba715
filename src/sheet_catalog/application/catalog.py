"""
Catalog Repository.

Single point of mediation between the application and the hosted backend
for songs, variants, favorites, admin grants and profiles. Every operation
returns a Result; expected failures never escape as exceptions.

The signed-in session is passed to operations that need it instead of
being held here, so one repository can serve several simulated users.
"""

import asyncio
import logging
import secrets
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar, Union

from ..domain.entities import AuthUser, Song, UserProfile
from ..domain.ports import BlobStore, RelationalStore, Tables
from ..domain.result import (
    AccountNotFoundError,
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
from ..domain.value_objects import (
    AdminGrant,
    Category,
    Identity,
    Instrument,
    NewVariant,
    Session,
    Variant,
    email_local_part,
)
from ..events.domain_events import AdminGranted, AdminRevoked, FavoriteToggled, SongCreated, VariantUpserted
from ..events.event_bus import DomainEvent, EventBus
from ..exceptions import BackendError
from .deletion import DeletionReconciler, DeletionResult, storage_object_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TOP_SONGS_LIMIT = 10


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CatalogRepository:
    """
    Reads and writes the catalog against the backend ports.

    Args:
        store: Relational store holding songs, variants, favorites, admins and profiles
        blobs: Blob store holding the sheet PDFs
        root_admin_email: The always-privileged, never-revocable admin
        event_bus: Optional bus that receives an event after each mutation
    """

    def __init__(
        self,
        store: RelationalStore,
        blobs: BlobStore,
        root_admin_email: str,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.blobs = blobs
        self.root_admin_email = normalize_email(root_admin_email)
        self.event_bus = event_bus
        self.reconciler = DeletionReconciler(store, blobs, event_bus)
        self._toggle_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._toggle_waiters: Dict[Tuple[str, str], int] = defaultdict(int)

    async def _attempt(self, action: str, fn: Callable[[], Awaitable[T]]) -> Result[T, TransportError]:
        try:
            return Success(await fn())
        except BackendError as e:
            logger.debug("%s failed: %s", action, e)
            return Failure(TransportError(f"{action} failed: {e}", cause=e))

    async def _publish(self, event: DomainEvent) -> None:
        if self.event_bus:
            await self.event_bus.publish(event)

    # Reads

    async def _variants_by_song(self, song_ids: Optional[Sequence[str]] = None) -> Dict[str, List[Variant]]:
        filters = {"song_id": list(song_ids)} if song_ids is not None else None
        rows = await self.store.select(Tables.VARIANTS, filters, order="key")
        grouped: Dict[str, List[Variant]] = defaultdict(list)
        for row in rows:
            variant = Variant.from_row(row)
            grouped[variant.song_id].append(variant)
        return grouped

    async def _favorite_ids(self, session: Optional[Session]) -> Set[str]:
        """Song ids the session's user has favorited; empty on lookup failure."""
        if session is None:
            return set()
        try:
            rows = await self.store.select(Tables.FAVORITES, {"user_id": session.user.id})
        except BackendError as e:
            logger.warning("Favorites lookup failed, showing songs as not favorited: %s", e)
            return set()
        return {str(r["song_id"]) for r in rows}

    def _build_songs(self, rows: Iterable[Dict[str, Any]], variants: Dict[str, List[Variant]],
                     favorites: Set[str]) -> List[Song]:
        songs = []
        for row in rows:
            song = Song.from_row(row, variants.get(str(row["id"]), []))
            songs.append(song.with_favorite(song.id in favorites))
        return songs

    async def list_songs(self, session: Optional[Session] = None) -> Result[List[Song], TransportError]:
        """All songs, newest first, with variants and the session's favorite flags."""
        try:
            rows = await self.store.select(Tables.SONGS, order="created_at", descending=True)
            variants = await self._variants_by_song()
        except BackendError as e:
            logger.error("Listing songs failed: %s", e)
            return Failure(TransportError(f"Listing songs failed: {e}", cause=e))

        favorites = await self._favorite_ids(session)
        return Success(self._build_songs(rows, variants, favorites))

    async def get_song(self, song_id: str, session: Optional[Session] = None) -> Result[Song, Exception]:
        """A single song shaped like a list entry."""
        try:
            rows = await self.store.select(Tables.SONGS, {"id": song_id})
            if not rows:
                return Failure(NotFoundError(f"Song not found: {song_id}"))
            variants = await self._variants_by_song([song_id])
        except BackendError as e:
            return Failure(TransportError(f"Fetching song {song_id} failed: {e}", cause=e))

        favorites = await self._favorite_ids(session)
        return Success(self._build_songs(rows, variants, favorites)[0])

    async def top_songs(self, limit: int = DEFAULT_TOP_SONGS_LIMIT) -> Result[List[Song], TransportError]:
        """Most searched songs, excluding ones nobody has searched for."""
        try:
            rows = await self.store.select(Tables.SONGS, order="search_count", descending=True, limit=limit)
            rows = [r for r in rows if (r.get("search_count") or 0) > 0]
            variants = await self._variants_by_song([str(r["id"]) for r in rows]) if rows else {}
        except BackendError as e:
            return Failure(TransportError(f"Fetching top songs failed: {e}", cause=e))
        return Success(self._build_songs(rows, variants, set()))

    # Songs and variants

    async def create_song(
        self,
        name: str,
        categories: Iterable[Union[Category, str]],
        instrument: Union[Instrument, str],
        variants: Sequence[NewVariant],
    ) -> Result[Song, Exception]:
        """
        Insert a song together with its variants.

        A song needs at least one variant. When the variant insert fails the
        song row is deleted again; if that rollback fails too the error is a
        CompensationError naming the orphaned song. Files the caller already
        uploaded for the variants are left for the caller to remove.
        """
        if not name or not name.strip():
            return Failure(ValidationError("Song name is required"))
        if not variants:
            return Failure(ValidationError("A song needs at least one variant"))
        keys = [v.key.strip() for v in variants]
        if any(not k for k in keys):
            return Failure(ValidationError("Variant key is required"))
        if len(set(keys)) != len(keys):
            return Failure(ValidationError("Variant keys must be unique"))
        try:
            category_set = frozenset(c if isinstance(c, Category) else Category(c) for c in categories)
            instrument = instrument if isinstance(instrument, Instrument) else Instrument(instrument)
        except ValueError as e:
            return Failure(ValidationError(str(e)))

        song_insert = await self._attempt("Inserting song", lambda: self.store.insert(Tables.SONGS, [{
            "name": name.strip(),
            "categories": sorted(c.value for c in category_set),
            "instrument": instrument.value,
        }]))
        if song_insert.is_failure():
            return song_insert
        song_row = song_insert.value()[0]
        song_id = str(song_row["id"])

        variant_rows = [
            {"song_id": song_id, "key": key, "pdf_url": v.pdf_url}
            for key, v in zip(keys, variants)
        ]
        try:
            inserted = await self.store.insert(Tables.VARIANTS, variant_rows)
        except BackendError as e:
            return await self._rollback_song(song_id, e)

        song = Song.from_row(song_row, [Variant.from_row(r) for r in inserted])
        logger.info("Created song %s (%s) with keys %s", song.id, song.name, ", ".join(song.keys))
        await self._publish(SongCreated(song_id=song.id, name=song.name, keys=song.keys))
        return Success(song)

    async def _rollback_song(self, song_id: str, cause: BackendError) -> Result[Song, Exception]:
        try:
            removed = await self.store.delete(Tables.SONGS, {"id": song_id})
        except BackendError as e:
            logger.error("Rollback of song %s failed, row is orphaned: %s", song_id, e)
            return Failure(CompensationError(
                f"Inserting variants failed ({cause}) and song {song_id} could not be rolled back: {e}"
            ))
        if removed == 0:
            logger.error("Rollback of song %s removed no rows, row may be orphaned", song_id)
            return Failure(CompensationError(
                f"Inserting variants failed ({cause}) and song {song_id} could not be rolled back"
            ))
        return Failure(TransportError(f"Inserting variants failed: {cause}", cause=cause))

    async def add_variant(self, song_id: str, key: str, pdf_url: str) -> Result[Variant, Exception]:
        """
        Add or replace the variant for ``key``.

        When the key already has a different file, that file is removed from
        storage before the upsert so it is not orphaned.
        """
        key = key.strip()
        if not key:
            return Failure(ValidationError("Variant key is required"))
        if not pdf_url:
            return Failure(ValidationError("Variant file URL is required"))

        try:
            if not await self.store.select(Tables.SONGS, {"id": song_id}):
                return Failure(NotFoundError(f"Song not found: {song_id}"))
            existing = await self.store.select(Tables.VARIANTS, {"song_id": song_id, "key": key})
        except BackendError as e:
            return Failure(TransportError(f"Looking up variant {key} failed: {e}", cause=e))

        replaced_url = None
        if existing and existing[0]["pdf_url"] != pdf_url:
            replaced_url = existing[0]["pdf_url"]
            old_name = storage_object_name(replaced_url, self.blobs.bucket)
            # Same object behind a different URL form is kept
            if old_name and old_name != storage_object_name(pdf_url, self.blobs.bucket):
                try:
                    await self.blobs.remove([old_name])
                except BackendError as e:
                    logger.warning("Could not remove replaced file %s: %s", old_name, e)

        upsert = await self._attempt("Saving variant", lambda: self.store.upsert(
            Tables.VARIANTS,
            [{"song_id": song_id, "key": key, "pdf_url": pdf_url}],
            on_conflict=("song_id", "key"),
        ))
        if upsert.is_failure():
            return upsert

        variant = Variant(song_id=song_id, key=key, pdf_url=pdf_url)
        logger.info("Saved key %s for song %s", key, song_id)
        await self._publish(VariantUpserted(song_id=song_id, key=key, pdf_url=pdf_url, replaced_url=replaced_url))
        return Success(variant)

    async def increment_search(self, song_id: str) -> Result[Optional[int], Exception]:
        """Count a search hit, via RPC or a read-modify-write fallback."""
        try:
            count = await self.store.rpc("increment_search_count", {"song_id": song_id})
        except BackendError as e:
            logger.debug("increment_search_count RPC unavailable, falling back: %s", e)
        else:
            # The search is counted; only a plain integer is reported back
            return Success(count if isinstance(count, int) else None)

        try:
            rows = await self.store.select(Tables.SONGS, {"id": song_id})
            if not rows:
                return Failure(NotFoundError(f"Song not found: {song_id}"))
            count = (rows[0].get("search_count") or 0) + 1
            await self.store.update(Tables.SONGS, {"search_count": count}, {"id": song_id})
        except BackendError as e:
            return Failure(TransportError(f"Recording search failed: {e}", cause=e))
        return Success(count)

    async def delete_song(self, song_id: str) -> DeletionResult:
        """Remove a song and its dependents; see DeletionReconciler."""
        return await self.reconciler.delete_song(song_id)

    # Sheet files

    async def upload_sheet(self, filename: str, data: bytes,
                           content_type: str = "application/pdf") -> Result[str, Exception]:
        """Upload a sheet under a fresh unique name and return its public URL."""
        if not data:
            return Failure(ValidationError("Sheet file is empty"))
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "pdf"
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(5)}.{extension}"
        upload = await self._attempt("Uploading sheet", lambda: self.blobs.upload(name, data, content_type))
        return upload.map(lambda _: self.blobs.public_url(name))

    async def remove_sheet(self, pdf_url: str) -> Result[str, Exception]:
        """Remove an uploaded sheet by URL, e.g. after a failed create_song."""
        name = storage_object_name(pdf_url, self.blobs.bucket)
        if name is None:
            return Failure(ValidationError(f"Cannot derive a file name from {pdf_url!r}"))
        removal = await self._attempt("Removing sheet", lambda: self.blobs.remove([name]))
        return removal.map(lambda _: name)

    # Favorites

    async def toggle_favorite(self, song_id: str, session: Optional[Session]) -> Result[bool, Exception]:
        """
        Flip the session user's favorite on a song; returns the new state.

        Read-then-write. Toggles for one (user, song) pair are serialized
        here and the backend's unique constraint rejects any duplicate that
        slips past.
        """
        if session is None:
            return Failure(UnauthenticatedError("Sign in to save favorites"))
        user_id = session.user.id
        lock_key = (user_id, song_id)

        lock = self._toggle_locks.setdefault(lock_key, asyncio.Lock())
        self._toggle_waiters[lock_key] += 1
        try:
            async with lock:
                result = await self._flip_favorite(user_id, song_id)
        finally:
            self._toggle_waiters[lock_key] -= 1
            if not self._toggle_waiters[lock_key]:
                del self._toggle_waiters[lock_key]
                del self._toggle_locks[lock_key]

        if result.is_success():
            await self._publish(FavoriteToggled(user_id=user_id, song_id=song_id, is_favorite=result.value()))
        return result

    async def _flip_favorite(self, user_id: str, song_id: str) -> Result[bool, Exception]:
        pair = {"user_id": user_id, "song_id": song_id}
        try:
            if await self.store.select(Tables.FAVORITES, pair):
                if await self.store.delete(Tables.FAVORITES, pair) == 0:
                    return Failure(PermissionDeniedError(f"Favorite on {song_id} could not be removed"))
                return Success(False)
            try:
                await self.store.insert(Tables.FAVORITES, [pair])
            except BackendError as e:
                if not e.is_unique_violation:
                    raise
                logger.debug("Favorite %s already exists for %s", song_id, user_id)
            return Success(True)
        except BackendError as e:
            return Failure(TransportError(f"Updating favorite failed: {e}", cause=e))

    # Admins and profiles

    def is_root_admin(self, email: str) -> bool:
        return normalize_email(email) == self.root_admin_email

    async def is_admin(self, email: str) -> Result[bool, TransportError]:
        """Root admin, or an email holding an admin grant."""
        if self.is_root_admin(email):
            return Success(True)
        lookup = await self._attempt("Checking admin grant",
                                     lambda: self.store.select(Tables.ADMINS, {"email": normalize_email(email)}))
        return lookup.map(bool)

    async def list_admins(self) -> Result[List[AdminGrant], TransportError]:
        rows = await self._attempt("Listing admins", lambda: self.store.select(Tables.ADMINS, order="created_at"))
        return rows.map(lambda rs: [AdminGrant.from_row(r) for r in rs])

    async def grant_admin(self, email: str) -> Result[AdminGrant, Exception]:
        """Authorize a registered account as admin. Granting twice is harmless."""
        email = normalize_email(email)
        if not email:
            return Failure(ValidationError("Email is required"))

        try:
            profiles = await self.store.select(Tables.PROFILES, {"email": email})
            if not profiles:
                return Failure(AccountNotFoundError(f"No registered account for {email}"))
            try:
                rows = await self.store.insert(Tables.ADMINS, [{"email": email}])
            except BackendError as e:
                if not e.is_unique_violation:
                    raise
                rows = await self.store.select(Tables.ADMINS, {"email": email})
                return Success(AdminGrant.from_row(rows[0]) if rows else AdminGrant(email=email))
        except BackendError as e:
            return Failure(TransportError(f"Granting admin to {email} failed: {e}", cause=e))

        logger.info("Granted admin to %s", email)
        await self._publish(AdminGranted(email=email))
        return Success(AdminGrant.from_row(rows[0]))

    async def revoke_admin(self, email: str) -> Result[bool, Exception]:
        """Remove an admin grant; returns whether one existed. The root admin is untouchable."""
        email = normalize_email(email)
        if email == self.root_admin_email:
            return Failure(ProtectedAccountError(f"{email} is the root admin and cannot be revoked"))

        removed = await self._attempt("Revoking admin",
                                      lambda: self.store.delete(Tables.ADMINS, {"email": email}))
        if removed.is_failure():
            return removed

        if removed.value():
            logger.info("Revoked admin from %s", email)
            await self._publish(AdminRevoked(email=email))
        return Success(removed.value() > 0)

    async def ensure_profile(self, identity: Identity) -> Result[UserProfile, TransportError]:
        """Return the identity's profile, creating it if it is missing."""
        try:
            rows = await self.store.select(Tables.PROFILES, {"id": identity.id})
            if rows:
                return Success(UserProfile.from_row(rows[0]))
            username = identity.metadata.get("username") or email_local_part(identity.email)
            rows = await self.store.upsert(
                Tables.PROFILES,
                [{"id": identity.id, "email": normalize_email(identity.email), "username": username}],
                on_conflict=("id",),
            )
        except BackendError as e:
            return Failure(TransportError(f"Ensuring profile for {identity.email} failed: {e}", cause=e))
        logger.info("Created missing profile for %s", identity.email)
        return Success(UserProfile.from_row(rows[0]))

    def optimistic_user(self, session: Session) -> AuthUser:
        """AuthUser built from the session alone, without any backend call."""
        identity = session.user
        return AuthUser(
            id=identity.id,
            email=identity.email,
            username=identity.metadata.get("username") or email_local_part(identity.email),
            is_admin=self.is_root_admin(identity.email),
            confirmed=False,
        )

    async def resolve_session(self, session: Optional[Session]) -> Optional[AuthUser]:
        """
        Fully resolved AuthUser for a session, or None without one.

        Heals a missing profile and checks the admin grant. Lookup failures
        keep the optimistic values and leave ``confirmed`` False.
        """
        if session is None:
            return None
        user = self.optimistic_user(session)

        profile = await self.ensure_profile(session.user)
        if profile.is_failure():
            logger.warning("%s", profile.error())
        admin = await self.is_admin(session.user.email)
        if admin.is_failure():
            logger.warning("%s", admin.error())

        return AuthUser(
            id=user.id,
            email=user.email,
            username=profile.value().username if profile.is_success() else user.username,
            is_admin=admin.or_else(user.is_admin),
            confirmed=profile.is_success() and admin.is_success(),
        )
