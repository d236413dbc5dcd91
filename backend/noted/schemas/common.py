"""
Noted.AI Backend: Shared Schema Building Blocks
===============================================

What:  Base model with camelCase JSON aliases plus envelope schemas used by
       several routers (errors, plain messages, health).
Why:   The web client speaks camelCase (`firstName`, `isFallback`,
       `totalPages`); Python code keeps snake_case attributes. One base class
       applies the alias generator everywhere.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts either naming on input, serializes camelCase (FastAPI uses by_alias)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class ErrorResponse(CamelModel):
    """
    Error body produced by the global exception handlers.

    Example:
        {
            "error": "User already exists with this email",
            "code": "validation_error",
            "details": {"field": "email"},
            "requestId": "1a2b3c4d"
        }
    """
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    status: str = Field(description="OK when the database answers, otherwise degraded")
    timestamp: datetime = Field(description="Server time (UTC)")
    version: str = Field(description="Application version")
    database: str = Field(description="connected or disconnected")
    ai: str = Field(description="available, fallback or circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
