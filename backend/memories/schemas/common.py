"""
Memories Backend: Shared Response Schemas
==========================================

What:  The error body every failing endpoint returns, and the health report.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error body.

    Example:
        {
            "error": "validation_error",
            "message": "color 'blue' must be #RRGGBB or #RRGGBBAA",
            "details": {"field": "color"},
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="File storage: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
