"""
Pydantic schemas for request/response models.
"""

from app.schemas.requests import ClipRequest
from app.schemas.responses import (
    ClipResponse,
    HealthResponse,
    JobErrorResponse,
    JobStatusResponse,
    JobSubmitResponse,
    ReadinessResponse,
    RootResponse,
)

__all__ = [
    "ClipRequest",
    "ClipResponse",
    "JobSubmitResponse",
    "JobStatusResponse",
    "JobErrorResponse",
    "RootResponse",
    "HealthResponse",
    "ReadinessResponse",
]
