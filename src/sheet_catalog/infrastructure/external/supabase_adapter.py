"""
Supabase Adapter - Anti-Corruption Layer for the hosted backend.

Talks to the PostgREST, Storage and GoTrue HTTP APIs with aiohttp and
exposes them through the domain's RelationalStore, BlobStore and
IdentityProvider ports. Every non-2xx response becomes a BackendError.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import aiohttp

from ...domain.ports import (
    AuthEvent,
    AuthListener,
    BlobStore,
    Filters,
    IdentityProvider,
    RelationalStore,
)
from ...domain.value_objects import Identity, Session
from ...exceptions import BackendError
from ...models.config import BackendConfig

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Shared HTTP client for one Supabase project.

    Owns a single aiohttp session, created on first use. Requests carry the
    anon key, plus the signed-in user's access token once one is set so that
    row-level security applies to that user.
    """

    def __init__(self, url: str, anon_key: str, timeout: int = 10):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.access_token: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Sequence[Tuple[str, str]]] = None,
        json_body: Any = None,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[int, Mapping[str, str], Any]:
        """Send a request and return (status, headers, decoded body)."""
        url = f"{self.url}{path}"
        logger.debug("%s %s params=%s", method, path, params)
        try:
            async with self._http().request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=self._headers(headers),
            ) as response:
                text = await response.text()
                body = _decode(text)
                if response.status >= 400:
                    raise _backend_error(response.status, body)
                return response.status, dict(response.headers), body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"{method} {path} failed: {e}") from e


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _backend_error(status: int, body: Any) -> BackendError:
    if isinstance(body, dict):
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or f"HTTP {status}"
        )
        code = body.get("code") or body.get("error_code") or body.get("statusCode")
        return BackendError(str(message), code=str(code) if code is not None else None, status=status)
    return BackendError(str(body or f"HTTP {status}"), status=status)


def _filter_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        quoted = ",".join(json.dumps(str(v)) for v in value)
        return f"in.({quoted})"
    if value is None:
        return "is.null"
    return f"eq.{value}"


def _filter_params(filters: Optional[Filters]) -> List[Tuple[str, str]]:
    return [(column, _filter_value(value)) for column, value in (filters or {}).items()]


def _content_range_total(headers: Mapping[str, str]) -> Optional[int]:
    """Parse the total out of a PostgREST ``Content-Range: 0-2/3`` header."""
    value = headers.get("Content-Range") or headers.get("content-range")
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class SupabaseRelationalStore(RelationalStore):
    """RelationalStore backed by PostgREST."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    def _path(self, table: str) -> str:
        return f"/rest/v1/{table}"

    async def select(self, table, filters=None, *, order=None, descending=False, limit=None):
        params = [("select", "*")] + _filter_params(filters)
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        _, _, body = await self.client.request("GET", self._path(table), params=params)
        return body or []

    async def insert(self, table, rows):
        _, _, body = await self.client.request(
            "POST",
            self._path(table),
            json_body=list(rows),
            headers={"Prefer": "return=representation"},
        )
        return body or []

    async def update(self, table, values, filters):
        _, _, body = await self.client.request(
            "PATCH",
            self._path(table),
            params=_filter_params(filters),
            json_body=values,
            headers={"Prefer": "return=representation"},
        )
        return body or []

    async def delete(self, table, filters):
        _, headers, body = await self.client.request(
            "DELETE",
            self._path(table),
            params=_filter_params(filters),
            headers={"Prefer": "return=representation,count=exact"},
        )
        total = _content_range_total(headers)
        if total is not None:
            return total
        return len(body) if isinstance(body, list) else 0

    async def upsert(self, table, rows, on_conflict):
        _, _, body = await self.client.request(
            "POST",
            self._path(table),
            params=[("on_conflict", ",".join(on_conflict))],
            json_body=list(rows),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return body or []

    async def rpc(self, name, params=None):
        _, _, body = await self.client.request(
            "POST", f"/rest/v1/rpc/{name}", json_body=params or {}
        )
        return body


class SupabaseBlobStore(BlobStore):
    """BlobStore backed by Supabase Storage."""

    def __init__(self, client: SupabaseClient, bucket: str = "music-sheets"):
        self.client = client
        self.bucket = bucket

    async def upload(self, name, data, content_type="application/pdf"):
        await self.client.request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{quote(name)}",
            data=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )

    def public_url(self, name):
        return f"{self.client.url}/storage/v1/object/public/{self.bucket}/{quote(name)}"

    async def remove(self, names):
        await self.client.request(
            "DELETE",
            f"/storage/v1/object/{self.bucket}",
            json_body={"prefixes": list(names)},
        )


def _identity_from_user(user: Dict[str, Any]) -> Identity:
    return Identity(
        id=str(user["id"]),
        email=user.get("email") or "",
        metadata=dict(user.get("user_metadata") or {}),
    )


class SupabaseIdentityProvider(IdentityProvider):
    """IdentityProvider backed by Supabase Auth (GoTrue)."""

    def __init__(self, client: SupabaseClient):
        self.client = client
        self._session: Optional[Session] = None
        self._listeners: List[AuthListener] = []

    async def sign_up(self, email, password, username=None):
        payload: Dict[str, Any] = {"email": email, "password": password}
        if username:
            payload["data"] = {"username": username}
        _, _, body = await self.client.request("POST", "/auth/v1/signup", json_body=payload)
        # With email confirmation enabled there is no session yet
        if isinstance(body, dict) and body.get("access_token"):
            return await self._start_session(body)
        return None

    async def sign_in(self, email, password):
        _, _, body = await self.client.request(
            "POST",
            "/auth/v1/token",
            params=[("grant_type", "password")],
            json_body={"email": email, "password": password},
        )
        return await self._start_session(body)

    async def sign_out(self):
        if self._session is not None:
            try:
                await self.client.request("POST", "/auth/v1/logout")
            finally:
                self._session = None
                self.client.access_token = None
        await self._emit(AuthEvent.SIGNED_OUT, None)

    async def get_session(self):
        return self._session

    async def get_user(self, session):
        _, _, body = await self.client.request(
            "GET",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {session.access_token}"},
        )
        return _identity_from_user(body)

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _start_session(self, body: Dict[str, Any]) -> Session:
        if not isinstance(body, dict) or "access_token" not in body or "user" not in body:
            raise BackendError("Malformed auth response")
        session = Session(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user=_identity_from_user(body["user"]),
        )
        self._session = session
        self.client.access_token = session.access_token
        await self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, session)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Auth listener failed for %s", event.value)


@dataclass
class SupabaseBackend:
    """The three backend ports wired to one Supabase project."""
    client: SupabaseClient
    store: SupabaseRelationalStore
    blobs: SupabaseBlobStore
    auth: SupabaseIdentityProvider

    async def close(self) -> None:
        await self.client.close()


def create_supabase_backend(config: BackendConfig) -> SupabaseBackend:
    """Build the Supabase adapters from configuration.

    Raises:
        ConfigurationError: if the project URL or anon key is missing.
    """
    config.require_credentials()
    client = SupabaseClient(config.url, config.anon_key, timeout=config.timeout)
    return SupabaseBackend(
        client=client,
        store=SupabaseRelationalStore(client),
        blobs=SupabaseBlobStore(client, bucket=config.bucket),
        auth=SupabaseIdentityProvider(client),
    )
