"""
Plakita Backend — Rate Limiting Middleware
============================================

What:  Per-IP sliding window limit on the anonymous, scan-facing endpoints.
Why:   Tag lookup and public profiles are reachable without an account; a
       scraper walking tag codes should not be able to enumerate the store.
How:   In-memory list of request timestamps per (IP, path prefix).
Who:   Only paths under settings.rate_limit_path_prefixes; everything else
       passes straight through.

Single-process only: counters live in this worker's memory.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from plakita.config import settings
from plakita.exceptions import RateLimitExceededError
from plakita.middleware.request_id import request_id_var
from plakita.schemas.common import ErrorBody, failure

logger = logging.getLogger(__name__)

CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._seen = 0

    @staticmethod
    def _limited_prefix(path: str) -> Optional[str]:
        for prefix in settings.rate_limit_path_prefixes:
            if path.startswith(prefix):
                return prefix
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        prefix = self._limited_prefix(request.url.path)
        if prefix is None:
            return await call_next(request)

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        key = (client_ip, prefix)
        now = time.time()
        window_start = now - settings.rate_limit_window

        self._requests[key] = [ts for ts in self._requests[key] if ts > window_start]

        if len(self._requests[key]) >= settings.rate_limit_requests:
            oldest = self._requests[key][0]
            retry_after = int(oldest + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for %s on %s: %d requests in %ds",
                client_ip, prefix, len(self._requests[key]), settings.rate_limit_window,
            )
            return self._rejection(RateLimitExceededError(retry_after=retry_after))

        self._requests[key].append(now)

        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    @staticmethod
    def _rejection(exc: RateLimitExceededError) -> JSONResponse:
        # Exception handlers do not see errors raised in middleware,
        # so the envelope is built here
        body = failure(
            ErrorBody(
                code=exc.code,
                title=exc.title,
                message=exc.message,
                details=exc.context,
                request_id=request_id_var.get("") or None,
            )
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json"),
            headers={"Retry-After": str(exc.retry_after)},
        )

    def _cleanup_inactive(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Dropped %d idle rate-limit buckets", len(inactive))
