"""
Plakita Backend — Shared Response Envelope
============================================

What:  The `{success, data, error}` shape every endpoint returns.
Why:   Callers branch on one boolean instead of on status codes and ad-hoc
       bodies; the UI never has to catch anything to render a notification.
How:   Routes wrap results with `ok(...)`; the exception handlers in main.py
       build the failure variant from `PlakitaError` attributes.
"""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ErrorBody(BaseModel):
    """
    What:  Error half of the envelope.

    Fields:
        code: Machine-readable error code (e.g. "validation_error", "not_found")
        title: Short notification title
        message: Descriptive body for the notification
        details: Structured context (field errors, suggestions, retry_after...)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "code": "not_found",
            "title": "Tag not found",
            "message": "Tag 'PLK-ABC12' was not found. Did you mean one of: PLK-ABC123?",
            "details": {"suggestions": ["PLK-ABC123"], "store_empty": false},
            "request_id": "a1b2c3d4"
        }
    """
    code: str = Field(description="Machine-readable error code")
    title: str = Field(description="Short notification title")
    message: str = Field(description="Human-readable error description")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope returned by every /api endpoint."""
    success: bool = Field(default=True)
    data: Optional[DataT] = Field(default=None)
    error: Optional[ErrorBody] = Field(default=None)


def ok(data: Any = None) -> ApiResponse:
    """Wraps a successful result in the envelope."""
    return ApiResponse(success=True, data=data, error=None)


def failure(error: ErrorBody) -> ApiResponse:
    return ApiResponse(success=False, data=None, error=error)


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Store connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
