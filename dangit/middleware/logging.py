"""
DANGIT Backend — Access Log Middleware
========================================

What:  One log line per request on the `dangit.access` logger:

    POST /api/process-content 200 2841.3ms [9f1c2a7b] j***@example.com from 10.0.0.4

Level follows the status: 5xx ERROR, 4xx WARNING, everything else INFO.
The owner is only known after get_current_owner ran, which stores it on
request.state; unauthenticated requests log "-". Bodies, credentials and
unmasked emails are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from dangit.middleware.request_id import request_id_var
from dangit.services.identity import mask_email

logger = logging.getLogger("dangit.access")

QUIET_PATHS = {"/health", "/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        # Health probes run every few seconds
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        owner = getattr(request.state, "owner", None)
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        logger.log(
            level,
            "%s %s %d %.1fms [%s] %s from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            mask_email(owner) if owner else "-",
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
