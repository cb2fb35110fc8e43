"""
Response schemas for the clip API.

Field names follow the camelCase JSON the web client already consumes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ClipResponse(BaseModel):
    """Successful synchronous clip response."""

    download_url: str = Field(..., alias="downloadUrl", description="Absolute URL of the clipped file")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "downloadUrl": "http://localhost:9000/download/clipped_1718000000000-1a2b3c4d.mp4",
            }
        }


class JobErrorResponse(BaseModel):
    """Client-safe failure details (no tool output)."""

    kind: str = Field(..., description="Error kind, e.g. 'download_failed'")
    message: str = Field(..., description="Generic error message")


class JobSubmitResponse(BaseModel):
    """Response after queueing a clip job."""

    job_id: str = Field(..., alias="jobId")
    status: str

    class Config:
        populate_by_name = True


class JobStatusResponse(BaseModel):
    """Current state of a clip job."""

    job_id: str = Field(..., alias="jobId")
    status: str = Field(..., description="pending, downloading, trimming, succeeded or failed")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    error: Optional[JobErrorResponse] = None
    created_at: datetime = Field(..., alias="createdAt")
    finished_at: Optional[datetime] = Field(default=None, alias="finishedAt")

    class Config:
        populate_by_name = True


class RootResponse(BaseModel):
    """Service banner returned by GET /."""

    status: str
    endpoints: str
    timestamp: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(..., description="Whether the service is ready to accept requests")
    tools: dict[str, bool] = Field(..., description="External tool availability")
    dispatcher_running: bool
    capacity: int = Field(..., description="Concurrent job slots")
    running: int = Field(..., description="Jobs currently running")
    queued: int = Field(..., description="Jobs waiting for a slot")
