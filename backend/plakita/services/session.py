"""
Plakita Backend — Session Context
===================================

What:  Per-request holder of "who is signed in", with an auth-event feed.
Why:   Route handlers and services get the actor from an explicit object
       handed to them by dependency injection, never from a global.
How:   `get_session_context` creates one SessionContext per request:
       init() on entry (restores the session from the bearer token and emits
       INITIAL_SESSION), teardown() on exit (drops listeners and the session).
Who:   Every route that needs the actor; `require_admin` for /api/admin/*.

Event flow:
    init()                 → INITIAL_SESSION
    sign_in()/sign_up()    → SIGNED_IN     (only when a session was issued)
    refresh()              → TOKEN_REFRESHED
    sign_out()             → SIGNED_OUT

    The profile-sync listener upserts the `users` row on SIGNED_IN and
    TOKEN_REFRESHED. A failed sync is logged and does not fail the sign-in.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.database import get_db_session
from plakita.exceptions import (
    AuthenticationRequiredError,
    PermissionDeniedError,
    PlakitaError,
)
from plakita.services.auth_client import (
    AuthClient,
    AuthenticatedUser,
    AuthSession,
    get_auth_client,
)
from plakita.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


Listener = Callable[[AuthEvent, Optional[AuthSession]], Awaitable[None]]

PROFILE_SYNC_EVENTS = (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SessionContext:
    """
    Session state for one request.

    Usage:
        ctx = SessionContext(db, auth_client, access_token=token)
        await ctx.init()
        try:
            ...
        finally:
            await ctx.teardown()
    """

    def __init__(
        self,
        db: AsyncSession,
        auth: AuthClient,
        access_token: Optional[str] = None,
        users: Optional[UserService] = None,
    ):
        self.db = db
        self.auth = auth
        self.users = users or user_service
        self._access_token = access_token
        self._session: Optional[AuthSession] = None
        self._listeners: List[Listener] = []
        self._initialized = False

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def init(self) -> None:
        """
        Restores the session from the access token, if one was sent.

        Raises AuthenticationRequiredError for an expired or forged token; a
        request without a token is simply anonymous.
        """
        if self._initialized:
            return
        if self._access_token:
            user = self.auth.verify_access_token(self._access_token)
            self._session = AuthSession(user=user, access_token=self._access_token)
        self.subscribe(self._sync_profile)
        self._initialized = True
        await self._emit(AuthEvent.INITIAL_SESSION)

    async def teardown(self) -> None:
        self._listeners.clear()
        self._session = None
        self._initialized = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers `listener(event, session)`; returns its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        return self._session.user if self._session else None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    # ── Operations ────────────────────────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> AuthSession:
        session = await self.auth.sign_in(email.strip().lower(), password)
        self._session = session
        logger.info("User %s signed in", session.user.id)
        await self._emit(AuthEvent.SIGNED_IN)
        return session

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str = "",
        phone: str = "",
    ) -> AuthSession:
        """
        Creates the account. When the service requires email confirmation no
        tokens come back, and the context stays anonymous.
        """
        profile = {}
        if full_name.strip():
            profile["full_name"] = full_name.strip()
        if phone.strip():
            profile["phone"] = phone.strip()

        session = await self.auth.sign_up(email.strip().lower(), password, profile)
        logger.info("User %s registered", session.user.id)
        if session.access_token:
            self._session = session
            await self._emit(AuthEvent.SIGNED_IN)
        return session

    async def refresh(self, refresh_token: str) -> AuthSession:
        session = await self.auth.refresh(refresh_token)
        self._session = session
        await self._emit(AuthEvent.TOKEN_REFRESHED)
        return session

    async def sign_out(self) -> None:
        if self._session is None or not self._session.access_token:
            raise AuthenticationRequiredError("You are not signed in")
        await self.auth.sign_out(self._session.access_token)
        logger.info("User %s signed out", self._session.user.id)
        self._session = None
        await self._emit(AuthEvent.SIGNED_OUT)

    # ── Events ────────────────────────────────────────────────────────────

    async def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            await listener(event, self._session)

    async def _sync_profile(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        if event not in PROFILE_SYNC_EVENTS or session is None:
            return
        try:
            await self.users.sync_profile(self.db, session.user)
        except PlakitaError as e:
            logger.warning("Profile sync failed for user %s: %s", session.user.id, e.message)


# ══════════════════════════════════════════════════════════════════════════
# FastAPI Dependencies
# ══════════════════════════════════════════════════════════════════════════

async def get_session_context(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    auth: AuthClient = Depends(get_auth_client),
) -> AsyncIterator[SessionContext]:
    context = SessionContext(db, auth, access_token=bearer_token(request))
    await context.init()
    try:
        yield context
    finally:
        await context.teardown()


async def get_current_actor(
    context: SessionContext = Depends(get_session_context),
) -> Optional[AuthenticatedUser]:
    """The signed-in user, or None for anonymous requests."""
    return context.user


async def require_actor(
    actor: Optional[AuthenticatedUser] = Depends(get_current_actor),
) -> AuthenticatedUser:
    if actor is None:
        raise AuthenticationRequiredError("Sign in to continue")
    return actor


async def require_admin(
    actor: AuthenticatedUser = Depends(require_actor),
) -> AuthenticatedUser:
    if not actor.is_admin:
        logger.warning("Non-admin user %s tried to reach an admin endpoint", actor.id)
        raise PermissionDeniedError(message="Administrator access required")
    return actor
