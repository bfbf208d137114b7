"""
Shared response models: the error envelope and the health payload.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body for every non-2xx response.

    Example:
        {
            "error": "unauthorized",
            "code": "NO_AUTH_TOKEN",
            "message": "Authentication required. Please provide a valid token.",
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error category")
    code: Optional[str] = Field(default=None, description="Machine-readable reason (auth errors)")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Liveness payload. Always served with HTTP 200; dependency problems show
    up in `database` / `llm` rather than in the status code.
    """
    status: str = Field(description="OK or DEGRADED")
    timestamp: datetime
    version: str
    features: List[str]
    database: str = Field(description="connected | disconnected")
    llm: str = Field(description="available | unavailable | circuit_open")
    uptime_seconds: float
