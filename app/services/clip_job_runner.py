"""
Clip Job Runner - Executes the download -> trim pipeline for one job.

State machine:
    pending -> downloading -> trimming -> succeeded
    downloading | trimming -> failed
    pending -> failed            (storage directory could not be created)

The runner is the only writer of its job's JobResult while it runs.
output_path is set only when the job reaches succeeded, so a partial file
is never reported as a result.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from app.config import Settings
from app.services.errors import (
    ERROR_TYPES,
    ClipJobError,
    DirectoryError,
    DownloadFailedError,
    ErrorKind,
    TrimFailedError,
)
from app.services.job_descriptor import JobDescriptor
from app.services.tool_runner import ExternalToolError, ExternalToolRunner

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Status of a clip job."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    TRIMMING = "trimming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.FAILED)

ALLOWED_TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.PENDING: (JobStatus.DOWNLOADING, JobStatus.FAILED),
    JobStatus.DOWNLOADING: (JobStatus.TRIMMING, JobStatus.FAILED),
    JobStatus.TRIMMING: (JobStatus.SUCCEEDED, JobStatus.FAILED),
    JobStatus.SUCCEEDED: (),
    JobStatus.FAILED: (),
}


@dataclass
class JobError:
    """Failure details attached to a failed job."""

    kind: ErrorKind
    message: str
    output: Optional[str] = None  # Raw tool output, for logs only

    def to_exception(self) -> ClipJobError:
        return ERROR_TYPES[self.kind](self.message, output=self.output)


@dataclass
class JobResult:
    """Current state of a clip job."""

    job_id: str
    status: JobStatus = JobStatus.PENDING
    output_path: Optional[Path] = None
    error: Optional[JobError] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


_CLOCK_OFFSET = re.compile(r"^(-)?(?:(\d+):)?(\d+):(\d+(?:\.\d+)?)$")
_UNIT_OFFSET = re.compile(r"^(-)?(\d+(?:\.\d+)?)(s|ms|us)?$")
_UNIT_SCALE = {None: 1.0, "s": 1.0, "ms": 1e-3, "us": 1e-6}


def parse_offset(value: Optional[str]) -> Optional[float]:
    """
    Parse an ffmpeg-style time offset into seconds.

    Accepts [-][HH:]MM:SS[.frac] and [-]N[.frac][s|ms|us]. Returns None for
    anything else; such values are passed to ffmpeg untouched.
    """
    if not value:
        return None

    match = _CLOCK_OFFSET.match(value)
    if match:
        sign, hours, minutes, seconds = match.groups()
        total = int(hours or 0) * 3600 + int(minutes) * 60 + float(seconds)
        return -total if sign else total

    match = _UNIT_OFFSET.match(value)
    if match:
        sign, number, unit = match.groups()
        total = float(number) * _UNIT_SCALE[unit]
        return -total if sign else total

    return None


def build_fetch_args(descriptor: JobDescriptor, settings: Settings) -> list[str]:
    """yt-dlp arguments: download the source URL to the job's download path."""
    return [
        *settings.get_ytdlp_extra_args(),
        "-o",
        str(descriptor.download_path),
        descriptor.source_url,
    ]


def build_trim_args(descriptor: JobDescriptor) -> list[str]:
    """
    ffmpeg arguments for the requested range, always in stream-copy mode.

    neither offset -> full copy
    start only     -> start to end of file
    end only       -> beginning to end
    both           -> bounded range
    """
    args = ["-y", "-i", str(descriptor.download_path)]
    if descriptor.range_start is not None:
        args.extend(["-ss", descriptor.range_start])
    if descriptor.range_end is not None:
        args.extend(["-to", descriptor.range_end])
    args.extend(["-c", "copy", str(descriptor.output_path)])
    return args


class ClipJobRunner:
    """
    Runs one clip job through download and trim.

    One runner per JobDescriptor. The dispatcher never hands the same
    descriptor to two runners, so no two processes write the same files.
    """

    def __init__(
        self,
        descriptor: JobDescriptor,
        tool_runner: ExternalToolRunner,
        settings: Settings,
        result: Optional[JobResult] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.descriptor = descriptor
        self.tool_runner = tool_runner
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        # The runner takes ownership of a pre-registered pending result
        self.result = result or JobResult(job_id=descriptor.job_id)
        self._state_entered = time.monotonic()

    def _transition(self, new_status: JobStatus, outcome: Optional[str] = None) -> None:
        """Move to a new state, emitting one structured event."""
        previous = self.result.status
        if new_status not in ALLOWED_TRANSITIONS[previous]:
            raise RuntimeError(
                f"Invalid job transition {previous.value} -> {new_status.value} "
                f"for job {self.descriptor.job_id}"
            )

        now = time.monotonic()
        duration_ms = int((now - self._state_entered) * 1000)
        self._state_entered = now

        self.result.status = new_status
        if new_status in TERMINAL_STATUSES:
            self.result.finished_at = datetime.now(timezone.utc)

        self.logger.info(
            f"Job {self.descriptor.job_id}: {previous.value} -> {new_status.value} "
            f"({duration_ms}ms{', ' + outcome if outcome else ''})",
            extra={
                "job_id": self.descriptor.job_id,
                "state": new_status.value,
                "previous_state": previous.value,
                "duration_ms": duration_ms,
                "outcome": outcome,
            },
        )

    def _fail(self, error: ClipJobError) -> JobResult:
        self.result.error = JobError(kind=error.kind, message=error.message, output=error.output)
        if error.output:
            self.logger.error(
                f"Job {self.descriptor.job_id} {error.kind.value}: {error.output[-1000:]}"
            )
        self._transition(JobStatus.FAILED, outcome=error.kind.value)
        return self.result

    def _ensure_directory(self) -> None:
        directory = self.descriptor.download_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(output=str(e))

    async def run(self) -> JobResult:
        """
        Execute the pipeline.

        Never raises for job-level failures; they are recorded on the
        returned JobResult as a failed status with an error. An unexpected
        exception inside a stage fails the job with that stage's kind.
        """
        self.result.started_at = datetime.now(timezone.utc)
        self._state_entered = time.monotonic()

        try:
            self._ensure_directory()
        except DirectoryError as e:
            return self._fail(e)

        self._transition(JobStatus.DOWNLOADING)
        try:
            await self._download()
        except DownloadFailedError as e:
            return self._fail(e)
        except Exception as e:
            self.logger.exception(f"Job {self.descriptor.job_id} download stage crashed: {e}")
            return self._fail(DownloadFailedError(output=repr(e)))

        self._transition(JobStatus.TRIMMING)
        try:
            await self._trim()
        except TrimFailedError as e:
            return self._fail(e)
        except Exception as e:
            self.logger.exception(f"Job {self.descriptor.job_id} trim stage crashed: {e}")
            return self._fail(TrimFailedError(output=repr(e)))

        self.result.output_path = self.descriptor.output_path
        self._transition(JobStatus.SUCCEEDED, outcome="ok")
        return self.result

    async def _download(self) -> None:
        descriptor = self.descriptor
        self.logger.info(f"Downloading {descriptor.source_url} -> {descriptor.download_path}")

        try:
            await self.tool_runner.invoke(
                self.settings.ytdlp_path,
                build_fetch_args(descriptor, self.settings),
                timeout=self.settings.download_timeout_seconds,
            )
        except ExternalToolError as e:
            raise DownloadFailedError(output=e.output or str(e))

        self._locate_download()

    def _locate_download(self) -> None:
        """Make sure the download landed at download_path."""
        path = self.descriptor.download_path
        if path.is_file():
            return

        # yt-dlp might have added an extension
        for candidate in (
            path.with_name(f"{path.name}.mp4"),
            path.with_name(f"{path.name}.webm"),
            path.with_name(f"{path.name}.mkv"),
            path.with_suffix(".webm"),
            path.with_suffix(".mkv"),
        ):
            if candidate.is_file():
                try:
                    candidate.rename(path)
                except OSError as e:
                    raise DownloadFailedError(output=str(e))
                return

        raise DownloadFailedError(output=f"Download completed but output file not found: {path}")

    async def _trim(self) -> None:
        descriptor = self.descriptor

        start = parse_offset(descriptor.range_start)
        end = parse_offset(descriptor.range_end)
        if start is not None and end is not None and end <= start:
            raise TrimFailedError(
                "End time must be after start time",
                output=f"end {descriptor.range_end} <= start {descriptor.range_start}",
            )

        self.logger.info(
            f"Trimming {descriptor.download_path} "
            f"[{descriptor.range_start or 'start'} .. {descriptor.range_end or 'end'}]"
        )

        try:
            await self.tool_runner.invoke(
                self.settings.ffmpeg_path,
                build_trim_args(descriptor),
                timeout=self.settings.trim_timeout_seconds,
            )
        except ExternalToolError as e:
            raise TrimFailedError(output=e.output or str(e))

        output = descriptor.output_path
        if not output.is_file() or output.stat().st_size == 0:
            raise TrimFailedError(output=f"Trim produced no output: {output}")
