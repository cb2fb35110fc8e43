"""
Services for the clip relay.

Includes:
- Request validation (job descriptors)
- External tool invocation (yt-dlp, ffmpeg)
- Job running, dispatching and artifact publishing
"""

from app.services.artifact_publisher import ArtifactPublisher
from app.services.clip_job_runner import ClipJobRunner, JobResult, JobStatus
from app.services.errors import ClipJobError, ErrorKind
from app.services.job_descriptor import JobDescriptor, build_job_descriptor
from app.services.job_dispatcher import ClipJobDispatcher, JobHandle
from app.services.tool_runner import ExternalToolError, ExternalToolRunner, ExternalToolTimeout

__all__ = [
    # Jobs
    "JobDescriptor",
    "build_job_descriptor",
    "ClipJobRunner",
    "JobResult",
    "JobStatus",
    "ClipJobDispatcher",
    "JobHandle",
    "ArtifactPublisher",
    # Errors
    "ClipJobError",
    "ErrorKind",
    # External tools
    "ExternalToolRunner",
    "ExternalToolError",
    "ExternalToolTimeout",
]
