"""
Clip API Router - Submit clip jobs and read their results.

Two ways to use it:
1. POST /clip waits for the job and returns the download URL directly.
2. POST /jobs returns a job id at once; poll GET /jobs/{job_id}.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from app.dependencies import get_dispatcher, get_publisher
from app.schemas.requests import ClipRequest
from app.schemas.responses import (
    ClipResponse,
    JobErrorResponse,
    JobStatusResponse,
    JobSubmitResponse,
)
from app.services.artifact_publisher import ArtifactPublisher
from app.services.clip_job_runner import JobResult, JobStatus
from app.services.job_dispatcher import ClipJobDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _to_status_response(result: JobResult, publisher: ArtifactPublisher) -> JobStatusResponse:
    download_url = None
    if result.status == JobStatus.SUCCEEDED:
        download_url = publisher.publish(result)

    error = None
    if result.error is not None:
        error = JobErrorResponse(kind=result.error.kind.value, message=result.error.message)

    return JobStatusResponse(
        job_id=result.job_id,
        status=result.status.value,
        download_url=download_url,
        error=error,
        created_at=result.created_at,
        finished_at=result.finished_at,
    )


@router.post("/clip", response_model=ClipResponse)
async def clip_video(
    body: ClipRequest,
    dispatcher: ClipJobDispatcher = Depends(get_dispatcher),
    publisher: ArtifactPublisher = Depends(get_publisher),
) -> ClipResponse:
    """
    Download a post's video, trim it, and return a download link.

    The request waits for the job. If the client goes away the job still
    runs to completion and its artifact stays reachable until it expires.
    """
    handle = dispatcher.submit(body.tweet_url, body.start, body.end)
    result = await handle.wait()

    if result.status == JobStatus.FAILED:
        raise result.error.to_exception()

    download_url = publisher.publish(result)
    logger.info(f"Job {result.job_id} ready: {download_url}")
    return ClipResponse(download_url=download_url)


@router.options("/clip", status_code=status.HTTP_200_OK)
async def clip_preflight() -> Response:
    """CORS preflight for clients that do not send an Origin header."""
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("/jobs", response_model=JobSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    body: ClipRequest,
    dispatcher: ClipJobDispatcher = Depends(get_dispatcher),
) -> JobSubmitResponse:
    """
    Queue a clip job without waiting for it.

    Use GET /jobs/{job_id} to check status.
    """
    handle = dispatcher.submit(body.tweet_url, body.start, body.end)
    return JobSubmitResponse(job_id=handle.job_id, status=JobStatus.PENDING.value)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    dispatcher: ClipJobDispatcher = Depends(get_dispatcher),
    publisher: ArtifactPublisher = Depends(get_publisher),
) -> JobStatusResponse:
    """
    Get the status of a clip job.

    downloadUrl is present only once the job has succeeded.
    """
    return _to_status_response(dispatcher.status(job_id), publisher)


@router.get("/jobs", response_model=list[JobStatusResponse])
async def list_jobs(
    status_filter: Optional[JobStatus] = None,
    limit: int = 20,
    dispatcher: ClipJobDispatcher = Depends(get_dispatcher),
    publisher: ArtifactPublisher = Depends(get_publisher),
) -> list[JobStatusResponse]:
    """
    List recent clip jobs.

    Args:
        status_filter: Filter by status (pending, downloading, trimming, succeeded, failed)
        limit: Maximum number of jobs to return
    """
    return [
        _to_status_response(result, publisher)
        for result in dispatcher.list_jobs(status=status_filter, limit=limit)
    ]
