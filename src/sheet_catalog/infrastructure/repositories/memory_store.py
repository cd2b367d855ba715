"""
In-memory backend implementations.

Process-local stand-ins for the hosted relational store, blob store and
identity provider, for testing and development. They honor the same unique
constraints as the hosted schema and can be told to fail specific calls.
"""

import asyncio
import copy
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from ...domain.ports import (
    AuthEvent,
    AuthListener,
    BlobStore,
    Filters,
    IdentityProvider,
    RelationalStore,
    Row,
    Tables,
)
from ...domain.value_objects import Identity, Session
from ...exceptions import BackendError

logger = logging.getLogger(__name__)


# Unique keys per table, mirroring the hosted schema
UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    Tables.SONGS: [("id",)],
    Tables.VARIANTS: [("id",), ("song_id", "key")],
    Tables.FAVORITES: [("id",), ("user_id", "song_id")],
    Tables.ADMINS: [("id",), ("email",)],
    Tables.PROFILES: [("id",)],
}

# Foreign keys declared ON DELETE CASCADE: parent table -> [(child table, column)]
CASCADES: Dict[str, List[Tuple[str, str]]] = {
    Tables.SONGS: [(Tables.VARIANTS, "song_id"), (Tables.FAVORITES, "song_id")],
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        if isinstance(expected, (list, tuple, set, frozenset)):
            if row.get(column) not in expected:
                return False
        elif row.get(column) != expected:
            return False
    return True


class _FailureInjection:
    """Mixin letting tests make named operations raise BackendError."""

    def __init__(self):
        self._failures: Dict[Tuple[str, Optional[str]], BackendError] = {}

    def fail(self, operation: str, target: Optional[str] = None, message: str = "injected failure",
             code: Optional[str] = None) -> None:
        """Make every ``operation`` on ``target`` (or any target if None) raise."""
        self._failures[(operation, target)] = BackendError(message, code=code)

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check_failure(self, operation: str, target: Optional[str] = None) -> None:
        error = self._failures.get((operation, target)) or self._failures.get((operation, None))
        if error is not None:
            raise error


class InMemoryRelationalStore(_FailureInjection, RelationalStore):
    """In-memory implementation of RelationalStore.

    ``deny_deletes`` names tables where deletes silently affect zero rows,
    the way a row-level security policy behaves for an unauthorized caller.
    """

    def __init__(self, unique_keys: Optional[Dict[str, List[Tuple[str, ...]]]] = None):
        super().__init__()
        self._tables: Dict[str, List[Row]] = {}
        self._unique_keys = unique_keys if unique_keys is not None else UNIQUE_KEYS
        self.deny_deletes: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []

    def rows(self, table: str) -> List[Row]:
        """Direct snapshot of a table, for assertions."""
        return copy.deepcopy(self._tables.get(table, []))

    def _prepare(self, table: str, row: Row) -> Row:
        prepared = dict(row)
        prepared.setdefault("id", str(uuid4()))
        prepared.setdefault("created_at", _now_iso())
        if table == Tables.SONGS:
            prepared.setdefault("search_count", 0)
        return prepared

    def _violates(self, table: str, candidate: Row, existing: Sequence[Row]) -> Optional[Tuple[str, ...]]:
        for key in self._unique_keys.get(table, []):
            values = tuple(candidate.get(column) for column in key)
            for row in existing:
                if row is not candidate and tuple(row.get(column) for column in key) == values:
                    return key
        return None

    async def select(self, table, filters=None, *, order=None, descending=False, limit=None):
        self.calls.append(("select", table))
        self._check_failure("select", table)
        rows = [copy.deepcopy(r) for r in self._tables.get(table, []) if _matches(r, filters)]
        if order:
            rows.sort(key=lambda r: (r.get(order) is None, r.get(order)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table, rows):
        self.calls.append(("insert", table))
        self._check_failure("insert", table)
        existing = self._tables.setdefault(table, [])
        prepared = [self._prepare(table, row) for row in rows]
        staged = list(existing)
        for row in prepared:
            key = self._violates(table, row, staged)
            if key is not None:
                raise BackendError(
                    f"duplicate key value violates unique constraint on {table}({', '.join(key)})",
                    code=BackendError.UNIQUE_VIOLATION,
                    status=409,
                )
            staged.append(row)
        existing.extend(prepared)
        return copy.deepcopy(prepared)

    async def update(self, table, values, filters):
        self.calls.append(("update", table))
        self._check_failure("update", table)
        updated = []
        for row in self._tables.get(table, []):
            if _matches(row, filters):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        self.calls.append(("delete", table))
        self._check_failure("delete", table)
        if table in self.deny_deletes:
            return 0
        rows = self._tables.get(table, [])
        kept = [r for r in rows if not _matches(r, filters)]
        removed_ids = [r.get("id") for r in rows if _matches(r, filters)]
        self._tables[table] = kept
        for child, column in CASCADES.get(table, []):
            self._tables[child] = [
                r for r in self._tables.get(child, []) if r.get(column) not in removed_ids
            ]
        return len(removed_ids)

    async def upsert(self, table, rows, on_conflict):
        self.calls.append(("upsert", table))
        self._check_failure("upsert", table)
        existing = self._tables.setdefault(table, [])
        result = []
        for row in rows:
            conflict = {column: row.get(column) for column in on_conflict}
            match = next((r for r in existing if _matches(r, conflict)), None)
            if match is not None:
                match.update(row)
                result.append(copy.deepcopy(match))
            else:
                prepared = self._prepare(table, row)
                if self._violates(table, prepared, existing) is not None:
                    raise BackendError(
                        f"duplicate key value violates unique constraint on {table}",
                        code=BackendError.UNIQUE_VIOLATION,
                        status=409,
                    )
                existing.append(prepared)
                result.append(copy.deepcopy(prepared))
        return result

    async def rpc(self, name, params=None):
        self.calls.append(("rpc", name))
        self._check_failure("rpc", name)
        params = params or {}
        if name == "increment_search_count":
            for row in self._tables.get(Tables.SONGS, []):
                if row.get("id") == params.get("song_id"):
                    row["search_count"] = (row.get("search_count") or 0) + 1
                    return row["search_count"]
            return None
        raise BackendError(f"Could not find the function public.{name}", code="PGRST202", status=404)


class InMemoryBlobStore(_FailureInjection, BlobStore):
    """In-memory implementation of BlobStore."""

    def __init__(self, bucket: str = "music-sheets", base_url: str = "https://storage.local"):
        super().__init__()
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.removed: List[str] = []

    async def upload(self, name, data, content_type="application/pdf"):
        self._check_failure("upload", name)
        if name in self.objects:
            raise BackendError(f"The resource already exists: {name}", code="Duplicate", status=409)
        self.objects[name] = (bytes(data), content_type)

    def public_url(self, name):
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{name}"

    async def remove(self, names):
        self._check_failure("remove")
        for name in names:
            # Unknown names are ignored, like the hosted storage API
            if self.objects.pop(name, None) is not None:
                self.removed.append(name)

    def exists(self, name: str) -> bool:
        return name in self.objects


class InMemoryIdentityProvider(_FailureInjection, IdentityProvider):
    """In-memory implementation of IdentityProvider with one active session."""

    def __init__(self):
        super().__init__()
        self._accounts: Dict[str, Tuple[str, Identity]] = {}
        self._session: Optional[Session] = None
        self._listeners: List[AuthListener] = []

    async def sign_up(self, email, password, username=None):
        self._check_failure("sign_up")
        if email in self._accounts:
            raise BackendError("User already registered", code="user_already_exists", status=422)
        metadata = {"username": username} if username else {}
        identity = Identity(id=str(uuid4()), email=email, metadata=metadata)
        self._accounts[email] = (password, identity)
        return await self._start_session(identity)

    async def sign_in(self, email, password):
        self._check_failure("sign_in")
        account = self._accounts.get(email)
        if account is None or account[0] != password:
            raise BackendError("Invalid login credentials", code="invalid_credentials", status=400)
        return await self._start_session(account[1])

    async def sign_out(self):
        self._check_failure("sign_out")
        self._session = None
        await self._emit(AuthEvent.SIGNED_OUT, None)

    async def get_session(self):
        return self._session

    async def get_user(self, session):
        self._check_failure("get_user")
        if self._session is None or session.access_token != self._session.access_token:
            raise BackendError("Invalid or expired session", code="bad_jwt", status=401)
        return session.user

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _start_session(self, identity: Identity) -> Session:
        self._session = Session(access_token=f"token-{uuid4().hex}", user=identity,
                                refresh_token=f"refresh-{int(time.time())}")
        await self._emit(AuthEvent.SIGNED_IN, self._session)
        return self._session

    async def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            result = listener(event, session)
            if asyncio.iscoroutine(result):
                await result
