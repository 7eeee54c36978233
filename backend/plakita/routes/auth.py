"""
Plakita Backend — Auth Routes
===============================

What:  Sign-in, sign-up, sign-out, token refresh and "who am I".
How:   Each handler drives the request's SessionContext; the context emits
       the auth events that keep the `users` profile row in sync.

Sign-up resume:
    The activation page sends unregistered visitors to
    /register?redirect=%2Factivate-tag%2F<CODE>. The register call echoes that
    path back as `resume_to` so the UI can return to the tag afterwards.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from plakita.schemas.auth import (
    AuthUserResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
)
from plakita.schemas.common import ApiResponse, ok
from plakita.services.auth_client import AuthenticatedUser, AuthSession
from plakita.services.session import SessionContext, get_session_context, require_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def user_response(user: AuthenticatedUser) -> AuthUserResponse:
    return AuthUserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        user_metadata=user.user_metadata,
        is_admin=user.is_admin,
    )


def session_response(session: AuthSession, resume_to: Optional[str] = None) -> SessionResponse:
    return SessionResponse(
        user=user_response(session.user),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        resume_to=resume_to,
    )


@router.post("/login", response_model=ApiResponse[SessionResponse], summary="Sign in")
async def login(
    body: LoginRequest,
    context: SessionContext = Depends(get_session_context),
):
    session = await context.sign_in(body.email, body.password)
    return ok(session_response(session))


@router.post(
    "/register",
    response_model=ApiResponse[SessionResponse],
    status_code=201,
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    context: SessionContext = Depends(get_session_context),
):
    session = await context.sign_up(
        body.email, body.password, full_name=body.full_name, phone=body.phone
    )
    return ok(session_response(session, resume_to=body.redirect))


@router.post("/logout", response_model=ApiResponse[dict], summary="Sign out")
async def logout(context: SessionContext = Depends(get_session_context)):
    await context.sign_out()
    return ok({"signed_out": True})


@router.post("/refresh", response_model=ApiResponse[SessionResponse], summary="Refresh tokens")
async def refresh(
    body: RefreshRequest,
    context: SessionContext = Depends(get_session_context),
):
    session = await context.refresh(body.refresh_token)
    return ok(session_response(session))


@router.get("/session", response_model=ApiResponse[AuthUserResponse], summary="Current user")
async def current_session(actor: AuthenticatedUser = Depends(require_actor)):
    return ok(user_response(actor))
