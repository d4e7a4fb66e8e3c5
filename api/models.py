"""
Response envelopes for the FastAPI application.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from catalog.models import FieldError


class SuccessResponse(BaseModel):
    """Envelope for successful responses."""
    success: bool = Field(True, description="Always true for successful calls")
    message: Optional[str] = Field(None, description="Human-readable outcome")
    data: Optional[Any] = Field(None, description="Response payload")


class BookListResponse(SuccessResponse):
    """Envelope for book listings."""
    count: int = Field(..., description="Number of books returned")


class ErrorResponse(BaseModel):
    """Envelope for failed responses."""
    success: bool = Field(False, description="Always false for failed calls")
    error: str = Field(..., description="Error message")
    details: Optional[List[FieldError]] = Field(None, description="Field-level violations")
    detail: Optional[str] = Field(None, description="Additional error details (debug only)")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
