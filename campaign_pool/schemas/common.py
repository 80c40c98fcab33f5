"""
Common schemas used across multiple endpoints.
"""
from pydantic import BaseModel

from campaign_pool.core.exceptions import ErrorKind


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str
    kind: ErrorKind

    class Config:
        json_schema_extra = {"example": {"detail": "Campaign not found", "kind": "not_found"}}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = "1.0.0"
