"""
Plakita Backend — Auth Service Client
=======================================

What:  Thin async client for the hosted auth service's REST API, plus local
       verification of the access tokens it issues.
Why:   Accounts, passwords and sessions live in the hosted service; this
       backend only needs sign-in/sign-up/sign-out/refresh and a way to turn a
       bearer token into a user without a network call per request.
How:   httpx.AsyncClient against `{AUTH_URL}/auth/v1`, `apikey` header on
       every call; a failed call is surfaced once. Tokens are HS256 JWTs
       verified with PyJWT.
Who:   Used by SessionContext (services/session.py).

Error mapping:
    400/401 from the service   → AuthenticationRequiredError (bad credentials)
    403 from the service       → PermissionDeniedError
    422 from the service       → ValidationError (e.g. weak password on sign-up)
    other HTTP errors / network → TransportError (message passed through)
    expired or forged token    → AuthenticationRequiredError
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import jwt

from plakita.config import settings
from plakita.exceptions import (
    AuthenticationRequiredError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    """
    The signed-in account as seen by this backend.

    is_admin comes from `app_metadata`, which only the service role can write,
    so it cannot be granted by the user editing their own metadata.
    """
    id: uuid.UUID
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    app_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name") or None

    @property
    def phone(self) -> Optional[str]:
        return self.user_metadata.get("phone") or None

    @property
    def avatar_url(self) -> Optional[str]:
        return self.user_metadata.get("avatar_url") or None

    @property
    def is_admin(self) -> bool:
        role = self.app_metadata.get("role")
        roles = self.app_metadata.get("roles") or []
        return role == settings.admin_role or settings.admin_role in roles

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthenticatedUser":
        """Builds a user from a REST user object (`id`) or token claims (`sub`)."""
        raw_id = payload.get("id") or payload.get("sub")
        if not raw_id:
            raise AuthenticationRequiredError("The session does not identify a user")
        try:
            user_id = uuid.UUID(str(raw_id))
        except ValueError as e:
            raise AuthenticationRequiredError("The session does not identify a user") from e
        return cls(
            id=user_id,
            email=payload.get("email") or None,
            user_metadata=dict(payload.get("user_metadata") or {}),
            app_metadata=dict(payload.get("app_metadata") or {}),
        )


@dataclass
class AuthSession:
    """A session issued by the auth service (tokens may be absent after sign-up)."""
    user: AuthenticatedUser
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "AuthSession":
        user_payload = data.get("user") or (data if "id" in data else None)
        if not user_payload:
            raise TransportError("The auth service returned no user")
        return cls(
            user=AuthenticatedUser.from_payload(user_payload),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
        )


class AuthClient:
    """
    REST client for the hosted auth service.

    A fresh httpx.AsyncClient is opened per call: auth traffic is a handful of
    requests per user session, not worth a long-lived pool tied to app startup.
    `transport` lets tests plug in httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.auth_url).rstrip("/") + "/auth/v1"
        self.api_key = api_key if api_key is not None else settings.auth_api_key
        self.timeout = timeout or settings.auth_timeout
        self._transport = transport

    # ── HTTP ──────────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apikey": self.api_key, "Content-Type": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            async with self._client() as client:
                response = await client.request(
                    method, path, json=json, params=params, headers=headers
                )
        except httpx.HTTPError as e:
            logger.error("Auth service %s %s failed: %s", method, path, str(e))
            raise TransportError(
                message=f"The sign-in service could not be reached: {e}",
                context={"endpoint": path},
            ) from e

        if response.status_code >= 400:
            raise self._error_for(response, path)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            for key in ("error_description", "msg", "message", "error"):
                if body.get(key):
                    return str(body[key])
        return response.reason_phrase

    def _error_for(self, response: httpx.Response, path: str) -> Exception:
        message = self._error_message(response)
        status = response.status_code
        if status in (400, 401):
            logger.info("Auth service rejected %s (%d): %s", path, status, message)
            return AuthenticationRequiredError(message=message)
        if status == 403:
            logger.warning("Auth service refused %s: %s", path, message)
            return PermissionDeniedError()
        if status == 422:
            return ValidationError(message=message)
        logger.error("Auth service error on %s (%d): %s", path, status, message)
        return TransportError(
            message=f"The sign-in service failed: {message}",
            context={"endpoint": path, "status": status},
        )

    # ── Operations ────────────────────────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._request(
            "POST", "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_response(data)

    async def sign_up(
        self, email: str, password: str, profile: Optional[Dict[str, Any]] = None
    ) -> AuthSession:
        """profile is stored as the account's user_metadata (full_name, phone)."""
        data = await self._request(
            "POST", "/signup",
            json={"email": email, "password": password, "data": profile or {}},
        )
        return AuthSession.from_response(data)

    async def refresh(self, refresh_token: str) -> AuthSession:
        data = await self._request(
            "POST", "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.from_response(data)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/logout", token=access_token)

    # ── Tokens ────────────────────────────────────────────────────────────

    def verify_access_token(self, token: str) -> AuthenticatedUser:
        """Verifies signature, expiry and audience locally and returns the user."""
        try:
            claims = jwt.decode(
                token,
                settings.auth_jwt_secret,
                algorithms=["HS256"],
                audience=settings.auth_jwt_audience,
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationRequiredError("Your session has expired. Sign in again.") from e
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected access token: %s", str(e))
            raise AuthenticationRequiredError("Invalid session token") from e
        return AuthenticatedUser.from_payload(claims)


# ── Singleton Instance ────────────────────────────────────────────────────
auth_client = AuthClient()


def get_auth_client() -> AuthClient:
    """FastAPI dependency; overridden in tests."""
    return auth_client
