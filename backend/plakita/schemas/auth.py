"""
Plakita Backend — Auth Schemas
================================

What:  Request/response contracts for /api/auth/*.
"""

import uuid
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=200)


class RegisterRequest(BaseModel):
    """
    redirect is the path the user was trying to reach (e.g. /activate-tag/PLK-ABC123);
    it is echoed back as resume_to so the UI can continue after sign-up.
    """
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=200)
    full_name: str = Field(default="", max_length=200)
    phone: str = Field(default="", max_length=30)
    redirect: Optional[str] = Field(default=None, max_length=500)

    @field_validator("redirect")
    @classmethod
    def validate_relative_redirect(cls, v: Optional[str]) -> Optional[str]:
        """Only same-site paths are accepted; absolute URLs would be an open redirect."""
        if v is None or v == "":
            return None
        # Browsers read a backslash as "/" and drop tabs and newlines, so "/\evil.com" means "//evil.com"
        if any(ch.isspace() or ord(ch) < 32 for ch in v):
            raise ValueError("redirect must not contain whitespace or control characters")
        normalized = v.replace("\\", "/")
        parts = urlsplit(normalized)
        if not normalized.startswith("/") or normalized.startswith("//") or parts.scheme or parts.netloc:
            raise ValueError("redirect must be a path starting with '/'")
        return v


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class AuthUserResponse(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    is_admin: bool = False


class SessionResponse(BaseModel):
    """
    access_token/refresh_token are None when sign-up needs email confirmation
    before a session is issued.
    """
    user: Optional[AuthUserResponse] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    resume_to: Optional[str] = None
