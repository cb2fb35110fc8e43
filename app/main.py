"""
FastAPI application entry point for Clip Relay.

Clip Relay turns a social-media post URL into a trimmed video clip:
1. Fetch the post's video with yt-dlp
2. Trim it to the requested range with ffmpeg (stream copy, no re-encode)
3. Serve the result under /download/ until it expires
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import Headers
from yt_dlp.version import __version__ as YTDLP_VERSION

from app.config import APP_VERSION, Settings, get_settings
from app.routers import clip, download, health
from app.schemas.responses import RootResponse
from app.services.artifact_publisher import ArtifactPublisher
from app.services.errors import ClipJobError, ErrorKind
from app.services.job_dispatcher import ClipJobDispatcher
from app.services.tool_runner import ExternalToolRunner

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.DIRECTORY_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.DOWNLOAD_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.TRIM_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class PreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose preflight answers carry no body."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=response.status_code, headers=headers)


def _verify_external_tools(settings: Settings, tool_runner: ExternalToolRunner) -> None:
    """Verify that required external tools are available."""
    tools = {
        settings.ytdlp_path: f"yt-dlp {YTDLP_VERSION} for video downloads",
        settings.ffmpeg_path: "FFmpeg for clip trimming",
    }

    for tool, description in tools.items():
        if tool_runner.is_available(tool):
            logger.info(f"✓ {description} available")
        else:
            logger.warning(f"✗ {description} NOT FOUND - clip jobs will fail")


def create_app(
    settings: Optional[Settings] = None,
    tool_runner: Optional[ExternalToolRunner] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings override (defaults to environment settings)
        tool_runner: External tool runner override (used by tests)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Lifespan context manager for startup and shutdown events.
        Starts the worker pool and retention sweeper, then drains them.
        """
        logging.getLogger().setLevel(settings.log_level.upper())
        logger.info("Starting Clip Relay...")

        try:
            os.makedirs(settings.download_directory, exist_ok=True)
            logger.info(f"Download directory: {settings.download_directory}")
        except OSError as e:
            # Jobs retry the create and fail with directory_error
            logger.error(f"Failed to create download directory {settings.download_directory}: {e}")

        runner = tool_runner or ExternalToolRunner()
        _verify_external_tools(settings, runner)

        publisher = ArtifactPublisher(settings)
        publisher.adopt_existing()
        publisher.sweep()
        publisher.sweep_orphans()

        dispatcher = ClipJobDispatcher(settings, runner, publisher)
        await dispatcher.start()
        logger.info(f"Max concurrent jobs: {dispatcher.capacity}")

        retention_task = asyncio.create_task(
            publisher.run_retention_loop(on_expired=dispatcher.forget),
            name="artifact-retention",
        )

        # Store in app state for dependency injection
        app.state.settings = settings
        app.state.tool_runner = runner
        app.state.publisher = publisher
        app.state.dispatcher = dispatcher

        logger.info(f"Clip Relay ready on port {settings.port}, links use {settings.base_url}")

        yield

        logger.info("Shutting down Clip Relay...")
        retention_task.cancel()
        try:
            await retention_task
        except asyncio.CancelledError:
            pass
        await dispatcher.stop()
        app.state.dispatcher = None
        app.state.publisher = None
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Clip Relay",
        description="""
Clip Relay - fetch a post's video, trim it, and serve the clip.

## Usage

- Synchronous: `POST /clip` with `{"tweetUrl", "start"?, "end"?}` returns `{"downloadUrl"}`
- Asynchronous: `POST /jobs`, then poll `GET /jobs/{job_id}`
- Download: `GET /download/{filename}`
        """,
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        # Requested headers are echoed back on preflight
        allow_headers=["*"],
    )

    @app.exception_handler(ClipJobError)
    async def clip_job_error_handler(request: Request, exc: ClipJobError) -> JSONResponse:
        status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}: {exc.message}")
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Error decoding input for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "error decoding input"},
        )

    app.include_router(health.router, tags=["Health"])
    app.include_router(clip.router, tags=["Clips"])
    app.include_router(download.router, tags=["Downloads"])

    @app.get("/", response_model=RootResponse)
    async def root():
        """Root endpoint with basic info."""
        return RootResponse(
            status="Clip Relay is running",
            endpoints="Available: /clip (POST), /jobs (POST), /jobs/{job_id} (GET), /download/* (GET)",
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
