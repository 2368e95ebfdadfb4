"""
Common Pydantic schemas shared across the application.

Contains the response envelope, health check, error and pagination schemas.
"""

from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field


# =============================================================================
# Generic Type for Envelope Payloads
# =============================================================================

T = TypeVar("T")


# =============================================================================
# Health Check Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """
    Health check response schema.

    Used by monitoring systems to verify service health.
    """

    status: str = Field(
        ...,
        description="Overall health status (healthy, degraded, unhealthy)"
    )
    version: str = Field(
        ...,
        description="Application version"
    )
    timestamp: datetime = Field(
        ...,
        description="Current server timestamp"
    )
    database: str = Field(
        ...,
        description="Database connection status"
    )
    environment: str = Field(
        ...,
        description="Runtime environment (development, production)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "timestamp": "2026-01-15T10:30:00Z",
                "database": "connected",
                "environment": "development"
            }
        }
    }


# =============================================================================
# Envelope Schemas
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail for a single validation error."""

    field: Optional[str] = Field(
        default=None,
        description="Field that caused the error"
    )
    message: str = Field(
        ...,
        description="Error message"
    )


class ErrorBody(BaseModel):
    message: str
    code: Optional[str] = None
    details: Optional[Any] = None


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class Envelope(BaseModel, Generic[T]):
    """
    Uniform response body.

    Successful responses carry ``data`` (and optionally ``meta``); errors
    carry ``error`` with ``data`` and ``meta`` null.
    """

    data: Optional[T] = None
    meta: Optional[dict[str, Any]] = None
    error: Optional[ErrorBody] = None
    statusCode: int = 200


class ErrorResponse(BaseModel):
    data: None = None
    meta: None = None
    error: ErrorBody
    statusCode: int

    model_config = {
        "json_schema_extra": {
            "example": {
                "data": None,
                "meta": None,
                "error": {"message": "Patient not found", "code": "PATIENT_NOT_FOUND"},
                "statusCode": 404,
            }
        }
    }


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# Pagination
# =============================================================================

def page_params(default_limit: int = 20) -> Callable[..., tuple[int, int]]:
    """
    Dependency factory for ``page`` / ``limit`` query parameters.

    Usage:
        pagination: tuple[int, int] = Depends(page_params(10))
    """
    def _params(
        page: int = Query(1, ge=1, description="Page number (1-indexed)"),
        limit: int = Query(default_limit, ge=1, le=100, description="Items per page"),
    ) -> tuple[int, int]:
        return page, limit

    return _params
