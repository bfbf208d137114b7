"""
DANGIT Backend — Health Check Route
=====================================

What:  Liveness endpoint for load balancers and the web client's status badge.
How:   Pings the database (SELECT 1) and the model provider (list_models).

Always HTTP 200. A capture still succeeds with the model down (fallback
metadata), so only the `status` field drops to DEGRADED; taking the
instance out of rotation would lose saves that could have worked.
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from dangit import __version__
from dangit.dependencies import AppContext, get_context
from dangit.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(tags=["Health"])

_start_time = time.time()

FEATURES = [
    "Secure Auth",
    "Enhanced AI Analysis",
    "Image Storage",
    "Link Previews",
    "View Tracking",
    "Feature Voting",
]


async def _llm_status(context: AppContext) -> str:
    # An open breaker answers without calling the provider
    breaker = getattr(context.llm, "circuit_breaker", None)
    if breaker is not None and breaker.state == breaker.OPEN:
        return "circuit_open"
    try:
        return "available" if await context.llm.health_check() else "unavailable"
    except Exception as e:
        logger.warning("Health check: model provider unreachable: %s", e)
        return "unavailable"


@router.get("/health", response_model=HealthResponse, summary="Service health check")
@router.get("/api/health", response_model=HealthResponse, include_in_schema=False)
async def health_check(context: AppContext = Depends(get_context)) -> HealthResponse:
    database = "connected" if await context.database.ping() else "disconnected"
    llm = await _llm_status(context)
    # DEGRADED still answers 200
    status = "OK" if database == "connected" and llm == "available" else "DEGRADED"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        features=FEATURES,
        database=database,
        llm=llm,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
