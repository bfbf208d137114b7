"""
DANGIT Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every failure the service knows about.
How:   Each exception carries a user-facing message and an optional context dict.
       Global handlers registered in main.py translate them into JSON responses.

Exception Hierarchy:
    DangitError (base)
    ├── ValidationError            → 400 Bad Request
    ├── AuthenticationError        → 401 Unauthorized
    │   ├── NoCredentialError      (code NO_AUTH_TOKEN)
    │   └── InvalidCredentialError (code INVALID_TOKEN / AUTH_ERROR)
    ├── ForbiddenError             → 403 Forbidden
    ├── NotFoundError              → 404 Not Found
    │   └── NotFoundOrDeniedError  (owned rows: missing and foreign look the same)
    ├── DuplicateError             → 409 Conflict
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── PersistenceError           → 500 (generic message, details logged)
    ├── FileStorageError           → 500
    ├── LLMServiceError            → 503
    ├── CircuitBreakerOpenError    → 503
    ├── MalformedResponseError     ┐
    ├── InvalidExtractionError     ├ absorbed inside the pipeline,
    └── FetchFailureError          ┘ replaced with fallback content

The pipeline errors never reach a client: the extractor and resolver trade
them for deterministic fallback records so a capture action always saves.
"""

from typing import Any, Dict, Optional


class DangitError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for 5xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DangitError):
    """
    Raised when client input fails a business rule.

    Examples: malformed item id, oversized note, rating outside 1-5.
    FastAPI's own schema validation errors are mapped to the same 400 shape.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(DangitError):
    """Base for 401 responses. `code` is the machine-readable reason."""

    code = "AUTH_ERROR"

    def __init__(
        self,
        message: str = "Authentication failed. Please sign in again.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        if code:
            self.code = code


class NoCredentialError(AuthenticationError):
    """The request carried no bearer credential."""

    code = "NO_AUTH_TOKEN"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Authentication required. Please provide a valid token.",
            context=context,
        )


class InvalidCredentialError(AuthenticationError):
    """The identity provider rejected the credential (invalid, expired, revoked)."""

    code = "INVALID_TOKEN"

    def __init__(
        self,
        message: str = "Invalid or expired authentication token. Please sign in again.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class ForbiddenError(DangitError):
    """Authenticated, but not allowed (e.g. reading feedback without admin rights)."""

    def __init__(
        self,
        message: str = "You do not have permission to access this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(DangitError):
    """Raised when a requested resource does not exist."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class NotFoundOrDeniedError(NotFoundError):
    """
    Ownership-scoped lookup miss.

    The message is identical whether the row is missing or belongs to another
    owner, so the response never confirms that someone else's item exists.
    """

    def __init__(self, resource: str = "item", context: Optional[Dict[str, Any]] = None):
        super().__init__(resource=resource, context=context)
        self.message = "Item not found or access denied"
        self.args = (self.message,)


class DuplicateError(DangitError):
    """A uniqueness rule was violated (duplicate feature suggestion)."""

    def __init__(
        self,
        message: str = "A similar entry already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(DangitError):
    """
    Raised when the record store rejects a read or write.

    The client only ever sees the generic message; the context (statement
    type, driver error class) is logged server-side.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(DangitError):
    """Could not read or write a blob on the storage volume."""

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(DangitError):
    """The model provider failed after all retries."""

    def __init__(
        self,
        message: str = "AI analysis service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(DangitError):
    """Too many consecutive model failures; calls are short-circuited."""

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class MalformedResponseError(DangitError):
    """Model output was empty or contained no parseable JSON object."""

    def __init__(
        self,
        message: str = "Could not parse AI response as JSON",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidExtractionError(DangitError):
    """Model output parsed, but a required field (title, category, summary) is missing."""

    def __init__(
        self,
        message: str = "Invalid AI response format",
        missing: Optional[list] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if missing:
            ctx["missing"] = missing
        super().__init__(message=message, context=ctx)


class FetchFailureError(DangitError):
    """An outbound fetch failed (transport error, timeout or non-2xx status)."""

    def __init__(
        self,
        message: str = "Could not fetch the requested URL",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class RateLimitExceededError(DangitError):
    """Client exceeded the sliding-window request limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
