"""
Plakita Backend — Request Logging Middleware
==============================================

What:  One access-log line per request: method, path, status, duration, ID.
How:   Severity follows the outcome so alerting can key on it:
           5xx                    → ERROR
           4xx, or slower than 2s → WARNING
           everything else        → INFO
       Structured fields ride along in `extra`.

Never logged: request bodies (pet and owner contact details), query strings
(scanned codes) and the Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from plakita.middleware.request_id import request_id_var

logger = logging.getLogger("plakita.access")

# Probed every few seconds by the orchestrator
QUIET_PATHS = frozenset({"/health"})

SLOW_REQUEST_MS = 2000.0


def level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400 or duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round(elapsed_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        }
        logger.log(
            level_for(response.status_code, elapsed_ms),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms [%(request_id)s] from %(client_ip)s",
            fields,
            extra=fields,
        )
        return response
