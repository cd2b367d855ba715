"""
Session resolution for the signed-in user.

Resolution happens in two phases. ``resolve`` returns an optimistic
AuthUser built from the session alone, then a background task heals the
profile, checks the admin grant and publishes the confirmed AuthUser as a
SessionResolved event. Observers follow the events instead of holding an
object that changes underneath them.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..domain.entities import AuthUser
from ..domain.ports import AuthEvent, IdentityProvider
from ..domain.result import Failure, Result, Success, TransportError, ValidationError
from ..domain.value_objects import Session
from ..events.domain_events import SessionCleared, SessionResolved
from ..events.event_bus import EventBus
from ..exceptions import BackendError
from .catalog import CatalogRepository

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3

# Backend auth messages mapped to what a user should read
_FRIENDLY_AUTH_ERRORS = {
    "Invalid login credentials": "Information provided is not correct. Please check your email or password.",
    "Email not confirmed": "Account found, but email is not confirmed. Please check your inbox for the link.",
}


def _friendly_auth_message(error: Exception) -> str:
    message = str(error)
    for fragment, friendly in _FRIENDLY_AUTH_ERRORS.items():
        if fragment in message:
            return friendly
    return message or "An unexpected error occurred. Please try again."


class SessionResolver:
    """
    Owns the current AuthUser for one client.

    Args:
        catalog: Repository used for the profile and admin lookups
        event_bus: Bus receiving SessionResolved / SessionCleared events
        identity: Provider to sign in through and listen to, if any
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        event_bus: EventBus,
        identity: Optional[IdentityProvider] = None,
    ):
        self.catalog = catalog
        self.event_bus = event_bus
        self.identity = identity
        self.current: Optional[AuthUser] = None
        self.session: Optional[Session] = None
        self._refinement: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def resolve(self, session: Optional[Session]) -> Optional[AuthUser]:
        """Phase 1: adopt a session and return the optimistic AuthUser."""
        self._cancel_refinement()

        if session is None:
            previous = self.current
            self.current = None
            self.session = None
            await self.event_bus.publish(SessionCleared(previous_user_id=previous.id if previous else None))
            return None

        self.session = session
        self.current = self.catalog.optimistic_user(session)
        await self.event_bus.publish(SessionResolved(user=self.current, aggregate_id=self.current.id))
        self._refinement = asyncio.create_task(self._refine(session))
        self._refinement.add_done_callback(self._log_refinement_failure)
        return self.current

    @staticmethod
    def _log_refinement_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session refinement failed, keeping optimistic user", exc_info=task.exception())

    async def _refine(self, session: Session) -> None:
        """Phase 2: confirm profile and admin status, then publish."""
        user = await self.catalog.resolve_session(session)
        if self.session is not session or user is None:
            return
        self.current = user
        await self.event_bus.publish(SessionResolved(user=user, aggregate_id=user.id))

    def _cancel_refinement(self) -> None:
        if self._refinement is not None and not self._refinement.done():
            self._refinement.cancel()
        self._refinement = None

    async def wait_until_resolved(self) -> Optional[AuthUser]:
        """Wait for the background refinement, if one is running."""
        task = self._refinement
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self.current

    async def handle_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        """React to a session change notification from the identity provider."""
        if event is AuthEvent.SIGNED_OUT or session is None:
            await self.resolve(None)
        else:
            await self.resolve(session)

    async def start(self) -> Optional[AuthUser]:
        """Listen to the identity provider and adopt its current session."""
        if self.identity is None:
            raise RuntimeError("SessionResolver has no identity provider")
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.on_auth_state_change(self.handle_auth_event)
        session = await self.identity.get_session()
        return await self.resolve(session) if session else None

    def close(self) -> None:
        """Stop listening and drop any pending refinement."""
        self._cancel_refinement()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def sign_in(self, email: str, password: str) -> Result[AuthUser, Exception]:
        if self.identity is None:
            raise RuntimeError("SessionResolver has no identity provider")
        try:
            session = await self.identity.sign_in(email.strip(), password)
        except BackendError as e:
            return Failure(TransportError(_friendly_auth_message(e), cause=e))
        if self.session is not session:
            await self.resolve(session)
        return Success(self.current)

    async def sign_up(self, email: str, password: str, username: str) -> Result[Optional[AuthUser], Exception]:
        """Register an account. Succeeds with None when email confirmation is pending."""
        if self.identity is None:
            raise RuntimeError("SessionResolver has no identity provider")
        if len(username.strip()) < MIN_USERNAME_LENGTH:
            return Failure(ValidationError(
                f"Username must be at least {MIN_USERNAME_LENGTH} characters long."
            ))
        try:
            session = await self.identity.sign_up(email.strip(), password, username.strip())
        except BackendError as e:
            return Failure(TransportError(_friendly_auth_message(e), cause=e))
        if session is None:
            return Success(None)
        if self.session is not session:
            await self.resolve(session)
        return Success(self.current)

    async def sign_out(self) -> Result[None, Exception]:
        if self.identity is None:
            raise RuntimeError("SessionResolver has no identity provider")
        try:
            await self.identity.sign_out()
        except BackendError as e:
            logger.warning("Sign out failed on the backend: %s", e)
            await self.resolve(None)
            return Failure(TransportError(str(e), cause=e))
        if self.current is not None:
            await self.resolve(None)
        return Success(None)
