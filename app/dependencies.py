"""
FastAPI dependencies resolving the services built in the lifespan.
"""

from fastapi import HTTPException, Request, status

from app.services.artifact_publisher import ArtifactPublisher
from app.services.job_dispatcher import ClipJobDispatcher


async def get_dispatcher(request: Request) -> ClipJobDispatcher:
    """Get the job dispatcher from app state (initialized at startup)."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job dispatcher not initialized",
        )
    return dispatcher


async def get_publisher(request: Request) -> ArtifactPublisher:
    """Get the artifact publisher from app state (initialized at startup)."""
    publisher = getattr(request.app.state, "publisher", None)
    if publisher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Artifact publisher not initialized",
        )
    return publisher
