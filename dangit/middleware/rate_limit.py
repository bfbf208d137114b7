"""
DANGIT Backend — Rate Limiting Middleware
===========================================

What:  In-memory sliding-window limiter.
How:   Requests are keyed by client IP. The Authorization header is not
       consulted: the limiter runs before the credential is verified, so any
       key derived from it would be chosen by the caller. Each key keeps the
       timestamps inside the window; a full window answers 429 with
       Retry-After.

Single-process only: every uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from dangit.exceptions import RateLimitExceededError
from dangit.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Sweep idle keys every this many recorded requests
CLEANUP_EVERY = 1000


def client_key(request: Request) -> str:
    # Behind a proxy this is the proxy's address; configure uvicorn's
    # --proxy-headers so request.client reflects X-Forwarded-For
    host = getattr(request.client, "host", None) if request.client else None
    return host or "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/api/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, max_requests: int = 300, window_seconds: int = 3600):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._recorded = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key(request)
        now = time.time()
        window_start = now - self.window_seconds

        recent = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = recent

        if len(recent) >= self.max_requests:
            retry_after = int(recent[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                key,
                len(recent),
                self.window_seconds,
            )
            error = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": error.message,
                    "details": {"retry_after": retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)
        self._recorded += 1
        if self._recorded % CLEANUP_EVERY == 0:
            self._cleanup(window_start)

        return await call_next(request)

    def _cleanup(self, window_start: float) -> None:
        idle = [k for k, stamps in self._requests.items() if not stamps or stamps[-1] < window_start]
        for k in idle:
            del self._requests[k]
        if idle:
            logger.debug("Dropped %d idle rate-limit keys", len(idle))
