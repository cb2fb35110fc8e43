"""
Health check endpoints for the clip service.
"""

from fastapi import APIRouter, Request

from app.config import APP_VERSION
from app.schemas.responses import HealthResponse, ReadinessResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Ready when both external tools are on PATH and the worker pool is up.
    """
    settings = request.app.state.settings
    tool_runner = getattr(request.app.state, "tool_runner", None)
    dispatcher = getattr(request.app.state, "dispatcher", None)

    tools = {
        settings.ytdlp_path: tool_runner is not None and tool_runner.is_available(settings.ytdlp_path),
        settings.ffmpeg_path: tool_runner is not None and tool_runner.is_available(settings.ffmpeg_path),
    }
    dispatcher_running = dispatcher is not None and dispatcher.is_running
    stats = dispatcher.stats() if dispatcher is not None else None

    return ReadinessResponse(
        ready=all(tools.values()) and dispatcher_running,
        tools=tools,
        dispatcher_running=dispatcher_running,
        capacity=stats.capacity if stats else 0,
        running=stats.running if stats else 0,
        queued=stats.queued if stats else 0,
    )
