"""
Plakita Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for every failure the API can surface.
Why:   Each exception maps to one HTTP status and one machine-readable error code,
       so the global handlers can build the `{success, data, error}` envelope
       without any try/except in the routes.
How:   Each exception carries a user-facing `message`, a short notification
       `title`, and a `context` dict returned to the client as `details`.
Who:   Raised by services and dependencies; caught by handlers in main.py.

Exception Hierarchy:
    PlakitaError (base)
    ├── ValidationError              → 400 (field-scoped, client can fix)
    ├── AuthenticationRequiredError  → 401
    ├── PermissionDeniedError        → 403 (store access-control rejection)
    ├── NotFoundError                → 404 (with suggestions where feasible)
    │   └── TagNotFoundError         → 404 (near-miss codes, empty-store flag)
    ├── NotActivatedError            → 404 (pet exists, tag not activated yet)
    ├── ConflictError                → 409 (uniqueness / already claimed)
    ├── PartialClaimError            → 409 (pet written, tag write failed)
    ├── DataIntegrityError           → 500 (duplicate rows for a unique code)
    ├── TransportError               → 502 (store or auth service failure)
    └── RateLimitExceededError       → 429
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class PlakitaError(Exception):
    """
    Base exception for all Plakita application errors.

    Attributes:
        message:  Descriptive body shown to the user
        title:    Short notification title
        context:  Structured details returned alongside the message
    """

    status_code = 500
    code = "server_error"
    default_title = "Something went wrong"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        title: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.title = title or self.default_title
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PlakitaError):
    """
    Raised when client input fails validation.

    `errors` is the field → message map produced by the form validators.
    A single-field failure may pass `field` instead.

    Example response:
        {
            "success": false,
            "data": null,
            "error": {
                "code": "validation_error",
                "title": "Check the form",
                "message": "Some fields need attention",
                "details": {"errors": {"name": "Name must be at least 2 characters"}}
            }
        }
    """

    status_code = 400
    code = "validation_error"
    default_title = "Check the form"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if errors:
            ctx["errors"] = dict(errors)
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = dict(errors or {})


class AuthenticationRequiredError(PlakitaError):
    """No valid session, or the auth service rejected the credentials."""

    status_code = 401
    code = "authentication_required"
    default_title = "Sign in required"

    def __init__(
        self,
        message: str = "You need to sign in to continue",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(PlakitaError):
    """
    Raised when the store's access policies or the auth service reject an
    operation, or when an ownership-scoped write matches no row.

    The message is deliberately generic: policy names and row filters stay in
    the server log.
    """

    status_code = 403
    code = "permission_denied"
    default_title = "Insufficient permission"

    def __init__(
        self,
        message: str = "You don't have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PlakitaError):
    """
    Raised when a requested row does not exist.

    `suggestions` lists near-miss values (similar codes or emails) the client
    can offer instead.
    """

    status_code = 404
    code = "not_found"
    default_title = "Not found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        ctx["suggestions"] = list(suggestions or [])
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id
        self.suggestions = list(suggestions or [])


class TagNotFoundError(NotFoundError):
    """
    Raised when the lookup cascade finds no tag for a code.

    Two messages are distinguished: the store holds no tags at all, or the code
    is simply not among the existing ones.
    """

    default_title = "Tag not found"

    def __init__(
        self,
        code: str,
        suggestions: Optional[List[str]] = None,
        store_empty: bool = False,
        available_codes: Optional[List[str]] = None,
    ):
        if store_empty:
            message = "No tags have been registered yet. Contact the administrator."
        elif suggestions:
            message = f"Tag '{code}' was not found. Did you mean one of: {', '.join(suggestions)}?"
        else:
            message = f"Tag '{code}' was not found among the existing codes."
        super().__init__(
            resource="tag",
            resource_id=code,
            suggestions=suggestions,
            message=message,
            context={
                "store_empty": store_empty,
                "available_codes": list(available_codes or []),
            },
        )
        self.code_value = code
        self.store_empty = store_empty
        self.available_codes = list(available_codes or [])


class NotActivatedError(PlakitaError):
    """The pet exists, but its tag has not been activated yet."""

    status_code = 404
    code = "not_activated"
    default_title = "Not activated yet"

    def __init__(
        self,
        message: str = "This pet's tag has not been activated yet",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConflictError(PlakitaError):
    """Uniqueness violation on a tag code, or a tag already claimed by someone else."""

    status_code = 409
    code = "conflict"
    default_title = "Conflict"

    def __init__(
        self,
        message: str = "This resource already exists",
        title: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, title=title, context=context)


class PartialClaimError(PlakitaError):
    """
    The pet was written but the tag update that completes the claim failed.

    Not compensated: the client resubmits with `pet_id`, which updates the
    same pet and retries the tag write.
    """

    status_code = 409
    code = "partial_claim"
    default_title = "Activation incomplete"

    def __init__(
        self,
        pet_id: str,
        cause: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["pet_id"] = pet_id
        ctx["cause"] = cause
        super().__init__(
            message=(
                "Your pet was saved but the tag could not be activated. "
                "Submit the form again to finish the activation."
            ),
            context=ctx,
        )
        self.pet_id = pet_id
        self.cause = cause


class DataIntegrityError(PlakitaError):
    """Stored data breaks an invariant (e.g. two rows share a unique code)."""

    status_code = 500
    code = "data_integrity_error"
    default_title = "Data problem"

    def __init__(
        self,
        message: str = "Stored data is inconsistent",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TransportError(PlakitaError):
    """
    The store or the auth service failed for a reason we cannot classify.

    The underlying message is passed through as a last resort.
    """

    status_code = 502
    code = "transport_error"
    default_title = "Connection problem"

    def __init__(
        self,
        message: str = "The remote service could not be reached",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(PlakitaError):
    """Raised when a client exceeds the per-IP request rate limit."""

    status_code = 429
    code = "rate_limit_exceeded"
    default_title = "Slow down"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before trying again."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


# ══════════════════════════════════════════════════════════════════════════
# Store Error Translation
# ══════════════════════════════════════════════════════════════════════════

# PostgreSQL SQLSTATE codes
INSUFFICIENT_PRIVILEGE = "42501"
UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    """Extracts the SQLSTATE from whichever attribute the DBAPI driver exposes."""
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def translate_store_error(exc: SQLAlchemyError, action: str) -> PlakitaError:
    """
    Converts a SQLAlchemy failure into the matching application exception.

    - SQLSTATE 42501 (row-level security rejection) → PermissionDeniedError
    - SQLSTATE 23505 or a unique IntegrityError      → ConflictError
    - anything else                                  → TransportError (message passed through)

    The caller raises the result `from exc` so the driver traceback stays in logs.
    """
    state = _sqlstate(exc) if isinstance(exc, DBAPIError) else None
    detail = str(getattr(exc, "orig", None) or exc)

    if state == INSUFFICIENT_PRIVILEGE:
        logger.warning("Store rejected %s: insufficient privilege (%s)", action, detail)
        return PermissionDeniedError(context={"action": action})

    if state == UNIQUE_VIOLATION or (
        isinstance(exc, IntegrityError) and "unique" in detail.lower()
    ):
        logger.info("Store rejected %s: duplicate key (%s)", action, detail)
        return ConflictError(
            message="This tag code already exists. Generate a new code.",
            title="Duplicate code",
            context={"action": action},
        )

    logger.error("Store failure during %s: %s", action, detail)
    return TransportError(
        message=f"Could not complete {action}: {detail}",
        context={"action": action, "error_type": type(exc).__name__},
    )
