"""
Plakita Backend — FastAPI Application Factory
===============================================

What:  Builds the FastAPI app: middleware, exception handlers, routers.
Who:   uvicorn (`uvicorn plakita.main:app`) and the test suite.

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware:  Request ID → Logging → Rate Limit → GZip    │
    │               → CORS                                      │
    │                                                           │
    │  Routers:     /api/auth      /api/tags     /api/pets      │
    │               /api/public    /api/dashboard               │
    │               /api/admin     /health                      │
    │                                                           │
    │  Handlers:    PlakitaError           → exc.status_code    │
    │               RequestValidationError → 400                │
    │               Exception              → 500                │
    │               all of them in the {success,data,error}     │
    │               envelope                                    │
    └───────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from plakita import __version__
from plakita.config import settings
from plakita.database import dispose_engine
from plakita.exceptions import PlakitaError, RateLimitExceededError
from plakita.middleware.logging import RequestLoggingMiddleware
from plakita.middleware.rate_limit import RateLimitMiddleware
from plakita.middleware.request_id import RequestIDMiddleware, request_id_var
from plakita.routes import admin, auth, dashboard, health, pets, tags
from plakita.schemas.common import ErrorBody, failure

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Root logger to stdout at settings.log_level; quiets chatty libraries."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Plakita Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health still reports, and auth calls fail loudly
        logger.error("Configuration error: %s", str(e))

    logger.info("Public links point at %s", settings.public_base_url)
    logger.info(
        "Claims commit %s",
        "in one transaction" if settings.claim_atomic else "in two steps",
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Plakita Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request_id_var.get("") or None


def error_response(
    request: Request,
    status_code: int,
    code: str,
    title: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = failure(
        ErrorBody(
            code=code,
            title=title,
            message=message,
            details=details or {},
            request_id=_request_id(request),
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Every failure leaves the API as the envelope:

        {"success": false, "data": null,
         "error": {"code", "title", "message", "details", "request_id"}}

    PlakitaError subclasses carry their own status_code/code/title, so one
    handler covers the whole hierarchy. 5xx errors are logged as errors with
    their context; the unexpected-exception handler also logs the stack.
    """

    @app.exception_handler(PlakitaError)
    async def handle_plakita_error(request: Request, exc: PlakitaError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, exc.code, exc.message)

        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            title=exc.title,
            message=exc.message,
            details=exc.context,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed body/query (wrong types, missing fields) before any handler runs."""
        errors = {}
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            errors[".".join(location) or "request"] = error.get("msg", "Invalid value")
        return error_response(
            request,
            status_code=400,
            code="validation_error",
            title="Check your input",
            message="The request contains invalid fields",
            details={"errors": errors},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True
        )
        return error_response(
            request,
            status_code=500,
            code="server_error",
            title="Something went wrong",
            message="An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Plakita API",
        description=(
            "Pet identification tags: look up a scanned QR/NFC code, claim and "
            "activate it for a pet, show the finder a public profile, and give "
            "administrators inventory and integrity tooling."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: Request ID → Logging → Rate Limit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tags.router)
    app.include_router(pets.router)
    app.include_router(dashboard.router)
    app.include_router(admin.router)

    return app


app = create_app()
