"""
Error taxonomy for clip jobs.

Every failure a client can observe is a ClipJobError with an ErrorKind.
The HTTP layer maps kinds to status codes; raw tool output stays on the
exception (and in the logs) and is never sent to clients.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification of a clip job failure."""

    INVALID_INPUT = "invalid_input"
    DIRECTORY_ERROR = "directory_error"
    DOWNLOAD_FAILED = "download_failed"
    TRIM_FAILED = "trim_failed"
    NOT_FOUND = "not_found"


class ClipJobError(Exception):
    """Base exception for clip job failures."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    default_message: str = "Clip job failed"

    def __init__(self, message: Optional[str] = None, output: Optional[str] = None):
        self.message = message or self.default_message
        self.output = output
        super().__init__(self.message)


class InvalidInputError(ClipJobError):
    """Raised when a clip request is missing fields or carries unsafe values."""

    kind = ErrorKind.INVALID_INPUT
    default_message = "Missing required fields"


class DirectoryError(ClipJobError):
    """Raised when the storage directory cannot be created."""

    kind = ErrorKind.DIRECTORY_ERROR
    default_message = "Failed to create download directory"


class DownloadFailedError(ClipJobError):
    """Raised when the fetch tool fails or times out."""

    kind = ErrorKind.DOWNLOAD_FAILED
    default_message = "Error downloading the video"


class TrimFailedError(ClipJobError):
    """Raised when the trim tool fails, times out, or produces no output."""

    kind = ErrorKind.TRIM_FAILED
    default_message = "Error clipping the video"


class ArtifactNotFoundError(ClipJobError):
    """Raised when a job or artifact is unknown, unpublished, or already removed."""

    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


ERROR_TYPES: dict[ErrorKind, type[ClipJobError]] = {
    cls.kind: cls
    for cls in (
        InvalidInputError,
        DirectoryError,
        DownloadFailedError,
        TrimFailedError,
        ArtifactNotFoundError,
    )
}
