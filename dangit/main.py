"""
DANGIT Backend — FastAPI Application Factory
==============================================

What:  Builds the FastAPI app: middleware, exception handlers, routers and
       the lifespan that owns the AppContext.
Who:   uvicorn (`uvicorn dangit.main:app`) and the test suite
       (`create_app(context=...)`).

Application Architecture:
    ┌───────────────────────────────────────────────────────────────┐
    │  Middleware: RequestID → Logging → RateLimit → GZip → CORS    │
    │                                                               │
    │  Routers:  health · analysis · content · items · feedback     │
    │                                                               │
    │  Exception handlers:                                          │
    │    400 Validation │ 401 Auth │ 403 Forbidden │ 404 NotFound   │
    │    409 Duplicate  │ 429 RateLimit │ 500 Persistence/Storage   │
    │    503 LLM / CircuitBreaker │ 500 anything else               │
    └───────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation (warn only) → AppContext
              (unless one was injected) → create tables on SQLite
    Shutdown: close the httpx client and dispose the engine
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

from dangit import __version__
from dangit.config import settings
from dangit.dependencies import AppContext
from dangit.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    DangitError,
    DuplicateError,
    FileStorageError,
    ForbiddenError,
    LLMServiceError,
    NotFoundError,
    PersistenceError,
    RateLimitExceededError,
    ValidationError,
)
from dangit.middleware.logging import RequestLoggingMiddleware
from dangit.middleware.rate_limit import RateLimitMiddleware
from dangit.middleware.request_id import RequestIDMiddleware, request_id_var
from dangit.routes import analysis, content, feedback, health, items

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Root logger to stdout, one format for every module."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("DANGIT backend %s starting", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health stays reachable and captures fall back
        logger.error("%s", e)

    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = AppContext.from_settings(settings)
        if settings.is_sqlite:
            await app.state.context.database.create_all()
            logger.info("SQLite schema created")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("DANGIT backend shutting down")
    if owns_context:
        await app.state.context.aclose()


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    *,
    code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if code:
        body["code"] = code
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map each exception type to its status code and body.

    5xx bodies never carry exception context; it is logged with the request id.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
            for err in exc.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid request"}
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        return _error_response(400, "validation_error", message, details={"errors": errors})

    @app.exception_handler(AuthenticationError)
    async def handle_auth_error(request: Request, exc: AuthenticationError):
        return _error_response(
            401,
            "unauthorized",
            exc.message,
            code=exc.code,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        return _error_response(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(DuplicateError)
    async def handle_duplicate(request: Request, exc: DuplicateError):
        return _error_response(409, "duplicate", exc.message, details=exc.context)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            details={"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            details={"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(LLMServiceError)
    async def handle_llm_error(request: Request, exc: LLMServiceError):
        logger.error("[%s] LLM service error: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(503, "llm_service_error", exc.message, headers=headers)

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error(
            "[%s] Persistence error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", PersistenceError().message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(DangitError)
    async def handle_app_error(request: Request, exc: DangitError):
        # Pipeline errors (MalformedResponse, InvalidExtraction, FetchFailure)
        # are absorbed in the services; reaching here is a bug
        logger.error("[%s] Unhandled %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        return _error_response(500, "internal_server_error", "An unexpected error occurred.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Assemble the application.

    Args:
        context: Pre-built collaborators. When given it is installed
                 immediately and the lifespan neither builds nor closes one;
                 tests rely on this because ASGITransport skips the lifespan.
    """
    app = FastAPI(
        title="DANGIT API",
        description=(
            "Save screenshots, links and notes; DANGIT titles, categorizes "
            "and summarizes them with AI."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(analysis.router)
    app.include_router(content.router)
    app.include_router(items.router)
    app.include_router(feedback.router)

    return app


app = create_app()
