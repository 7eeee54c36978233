"""
Plakita Backend — Auth Client & Session Context Tests
=======================================================

How:   AuthClient talks to an httpx.MockTransport; SessionContext gets an
       AuthClient whose network methods are AsyncMocks and a mocked
       UserService, so only the event flow is under test.

What we test:
    ✅ REST calls: paths, headers, payloads, error mapping
    ✅ Local token verification (valid, expired, forged, garbage)
    ✅ Admin flag only from app_metadata
    ✅ Session lifecycle, events, and profile sync on the right events
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from plakita.exceptions import (
    AuthenticationRequiredError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)
from plakita.services.auth_client import AuthClient, AuthenticatedUser, AuthSession
from plakita.services.session import AuthEvent, SessionContext


def user_payload(user: AuthenticatedUser) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "user_metadata": user.user_metadata,
        "app_metadata": user.app_metadata,
    }


def client_with(handler) -> AuthClient:
    return AuthClient(
        base_url="http://auth.test",
        api_key="anon-key",
        transport=httpx.MockTransport(handler),
    )


# ══════════════════════════════════════════════════════════════════════════
# AuthClient
# ══════════════════════════════════════════════════════════════════════════

class TestAuthClientRest:

    @pytest.mark.asyncio
    async def test_sign_in(self, owner):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["grant"] = request.url.params.get("grant_type")
            seen["apikey"] = request.headers.get("apikey")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "access_token": "access",
                "refresh_token": "refresh",
                "expires_in": 3600,
                "user": user_payload(owner),
            })

        session = await client_with(handler).sign_in("maria@example.com", "secret")

        assert seen == {
            "path": "/auth/v1/token",
            "grant": "password",
            "apikey": "anon-key",
            "body": {"email": "maria@example.com", "password": "secret"},
        }
        assert session.user.id == owner.id
        assert session.user.full_name == "Maria Lopez"
        assert session.access_token == "access"
        assert session.expires_in == 3600

    @pytest.mark.asyncio
    async def test_bad_credentials(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            await client_with(handler).sign_in("maria@example.com", "wrong")

        assert exc_info.value.message == "Invalid login credentials"

    @pytest.mark.asyncio
    async def test_forbidden_is_permission_denied(self):
        def handler(request):
            return httpx.Response(403, json={"msg": "User is banned by policy ban_abuse"})

        with pytest.raises(PermissionDeniedError) as exc_info:
            await client_with(handler).sign_in("maria@example.com", "secret")

        assert exc_info.value.status_code == 403
        assert "ban_abuse" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_sign_up_sends_profile(self, owner):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=user_payload(owner))

        session = await client_with(handler).sign_up(
            "maria@example.com", "secret1", {"full_name": "Maria Lopez"}
        )

        assert seen["path"] == "/auth/v1/signup"
        assert seen["body"]["data"] == {"full_name": "Maria Lopez"}
        assert session.access_token is None
        assert session.user.id == owner.id

    @pytest.mark.asyncio
    async def test_weak_password(self):
        def handler(request):
            return httpx.Response(422, json={"msg": "Password should be at least 6 characters"})

        with pytest.raises(ValidationError) as exc_info:
            await client_with(handler).sign_up("maria@example.com", "123", {})

        assert "at least 6" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_server_error_passes_message_through(self):
        def handler(request):
            return httpx.Response(500, json={"message": "database is down"})

        with pytest.raises(TransportError) as exc_info:
            await client_with(handler).refresh("refresh")

        assert "database is down" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_failure_is_surfaced_once(self):
        attempts = []

        def handler(request):
            attempts.append(request.url.path)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            await client_with(handler).sign_in("maria@example.com", "secret")

        assert "connection refused" in exc_info.value.message
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_sign_out_sends_bearer(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            return httpx.Response(204)

        await client_with(handler).sign_out("access-token")

        assert seen == {"auth": "Bearer access-token", "path": "/auth/v1/logout"}


class TestTokenVerification:

    def test_valid_token(self, owner, make_token):
        user = AuthClient().verify_access_token(make_token(owner))

        assert user.id == owner.id
        assert user.email == owner.email
        assert user.is_admin is False

    def test_admin_role_claim(self, admin, make_token):
        assert AuthClient().verify_access_token(make_token(admin)).is_admin is True

    def test_role_in_user_metadata_is_ignored(self, make_token):
        from uuid import uuid4

        sneaky = AuthenticatedUser(id=uuid4(), email="x@example.com", user_metadata={"role": "admin"})
        assert AuthClient().verify_access_token(make_token(sneaky)).is_admin is False

    def test_expired_token(self, owner, make_token):
        with pytest.raises(AuthenticationRequiredError) as exc_info:
            AuthClient().verify_access_token(make_token(owner, expires_in=-60))
        assert "expired" in exc_info.value.message

    def test_forged_token(self, owner, make_token):
        token = make_token(owner, secret="someone-elses-secret-of-32-bytes!!")
        with pytest.raises(AuthenticationRequiredError) as exc_info:
            AuthClient().verify_access_token(token)
        assert exc_info.value.message == "Invalid session token"

    def test_garbage_token(self):
        with pytest.raises(AuthenticationRequiredError):
            AuthClient().verify_access_token("not.a.jwt")


# ══════════════════════════════════════════════════════════════════════════
# SessionContext
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def users():
    service = MagicMock()
    service.sync_profile = AsyncMock()
    return service


@pytest.fixture
def auth():
    client = AuthClient()
    client.sign_in = AsyncMock()
    client.sign_up = AsyncMock()
    client.sign_out = AsyncMock()
    client.refresh = AsyncMock()
    return client


def recorder():
    events = []

    async def listener(event, session):
        events.append((event, session.user.id if session else None))

    return events, listener


class TestSessionContext:

    @pytest.mark.asyncio
    async def test_anonymous_init(self, mock_db_session, auth, users):
        context = SessionContext(mock_db_session, auth, users=users)
        events, listener = recorder()
        context.subscribe(listener)

        await context.init()

        assert context.user is None
        assert context.is_admin is False
        assert events == [(AuthEvent.INITIAL_SESSION, None)]
        users.sync_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_init_restores_session_from_token(self, mock_db_session, auth, users, owner, make_token):
        context = SessionContext(mock_db_session, auth, access_token=make_token(owner), users=users)

        await context.init()

        assert context.user.id == owner.id
        users.sync_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_init_with_expired_token(self, mock_db_session, auth, users, owner, make_token):
        context = SessionContext(
            mock_db_session, auth, access_token=make_token(owner, expires_in=-60), users=users
        )

        with pytest.raises(AuthenticationRequiredError):
            await context.init()

    @pytest.mark.asyncio
    async def test_sign_in_emits_and_syncs_profile(self, mock_db_session, auth, users, owner):
        auth.sign_in.return_value = AuthSession(user=owner, access_token="access")
        context = SessionContext(mock_db_session, auth, users=users)
        await context.init()
        events, listener = recorder()
        context.subscribe(listener)

        session = await context.sign_in(" Maria@Example.com ", "secret")

        assert session.user.id == owner.id
        assert context.user.id == owner.id
        assert events == [(AuthEvent.SIGNED_IN, owner.id)]
        auth.sign_in.assert_awaited_once_with("maria@example.com", "secret")
        users.sync_profile.assert_awaited_once_with(mock_db_session, owner)

    @pytest.mark.asyncio
    async def test_profile_sync_failure_does_not_fail_sign_in(self, mock_db_session, auth, users, owner):
        auth.sign_in.return_value = AuthSession(user=owner, access_token="access")
        users.sync_profile.side_effect = TransportError("users table unavailable")
        context = SessionContext(mock_db_session, auth, users=users)
        await context.init()

        session = await context.sign_in("maria@example.com", "secret")

        assert session.user.id == owner.id

    @pytest.mark.asyncio
    async def test_sign_up_without_session_stays_anonymous(self, mock_db_session, auth, users, owner):
        auth.sign_up.return_value = AuthSession(user=owner)
        context = SessionContext(mock_db_session, auth, users=users)
        await context.init()

        await context.sign_up("maria@example.com", "secret1", full_name=" Maria Lopez ", phone="")

        assert context.user is None
        auth.sign_up.assert_awaited_once_with(
            "maria@example.com", "secret1", {"full_name": "Maria Lopez"}
        )
        users.sync_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_syncs_profile(self, mock_db_session, auth, users, owner):
        auth.refresh.return_value = AuthSession(user=owner, access_token="new", refresh_token="r2")
        context = SessionContext(mock_db_session, auth, users=users)
        await context.init()
        events, listener = recorder()
        context.subscribe(listener)

        await context.refresh("r1")

        assert events == [(AuthEvent.TOKEN_REFRESHED, owner.id)]
        users.sync_profile.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sign_out(self, mock_db_session, auth, users, owner, make_token):
        token = make_token(owner)
        context = SessionContext(mock_db_session, auth, access_token=token, users=users)
        await context.init()
        events, listener = recorder()
        context.subscribe(listener)

        await context.sign_out()

        assert context.user is None
        assert events == [(AuthEvent.SIGNED_OUT, None)]
        auth.sign_out.assert_awaited_once_with(token)

    @pytest.mark.asyncio
    async def test_sign_out_when_anonymous(self, mock_db_session, auth, users):
        context = SessionContext(mock_db_session, auth, users=users)
        await context.init()

        with pytest.raises(AuthenticationRequiredError):
            await context.sign_out()
        auth.sign_out.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsubscribe_and_teardown(self, mock_db_session, auth, users, owner, make_token):
        auth.refresh.return_value = AuthSession(user=owner, access_token="new")
        context = SessionContext(mock_db_session, auth, access_token=make_token(owner), users=users)
        await context.init()
        events, listener = recorder()
        unsubscribe = context.subscribe(listener)

        unsubscribe()
        await context.refresh("r1")
        await context.teardown()

        assert events == []
        assert context.user is None


# ══════════════════════════════════════════════════════════════════════════
# UserService
# ══════════════════════════════════════════════════════════════════════════

class TestProfileSync:

    @pytest.mark.asyncio
    async def test_upserts_profile_in_savepoint(self, mock_db_session, owner):
        from plakita.services.user_service import UserService

        mock_db_session.merge.side_effect = lambda row: row

        row = await UserService().sync_profile(mock_db_session, owner)

        assert row.id == owner.id
        assert row.full_name == "Maria Lopez"
        assert row.phone == "+54 11 5555-1234"
        mock_db_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_name_falls_back_to_email(self, mock_db_session, stranger):
        from plakita.services.user_service import UserService

        mock_db_session.merge.side_effect = lambda row: row

        row = await UserService().sync_profile(mock_db_session, stranger)

        assert row.full_name == "juan@example.com"

    @pytest.mark.asyncio
    async def test_store_failure_is_translated(self, mock_db_session, owner):
        from sqlalchemy.exc import OperationalError

        from plakita.services.user_service import UserService

        mock_db_session.merge.side_effect = OperationalError("INSERT", {}, Exception("read-only"))

        with pytest.raises(TransportError):
            await UserService().sync_profile(mock_db_session, owner)
