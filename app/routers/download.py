"""
Download Router - Serves published clips as attachments.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from app.dependencies import get_publisher
from app.services.artifact_publisher import ArtifactPublisher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/download/{filename}")
async def download_clip(
    filename: str,
    publisher: ArtifactPublisher = Depends(get_publisher),
) -> FileResponse:
    """
    Serve a clipped file.

    Only artifacts of succeeded jobs are served; anything else is a 404.
    The artifact is pinned against retention until the response is sent.
    """
    path = publisher.acquire(filename)
    logger.info(f"Serving file: {path}")
    return FileResponse(
        path,
        media_type="video/mp4",
        filename=filename,
        background=BackgroundTask(publisher.release, filename),
    )
