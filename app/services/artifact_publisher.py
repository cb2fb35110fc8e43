"""
Artifact Publisher - Exposes finished clips and manages their lifetime.

Only jobs that reached succeeded become downloadable. Every terminal job's
files (source download and clip) are tracked and deleted once the TTL has
passed. Deletion skips artifacts that are being downloaded or were accessed
within the retrieval grace window.

Output structure:
    download/
    ├── <job_id>.mp4           (source download, kept until expiry)
    └── clipped_<job_id>.mp4   (served under /download/)
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from app.config import Settings
from app.services.clip_job_runner import JobResult, JobStatus
from app.services.errors import ArtifactNotFoundError
from app.services.job_descriptor import CLIP_PREFIX, JobDescriptor

logger = logging.getLogger(__name__)


@dataclass
class TrackedJob:
    """Files of one terminal job plus retention bookkeeping."""

    job_id: str
    files: list[Path]
    tracked_at: float
    published_path: Optional[Path] = None
    active_retrievals: int = 0
    last_access: Optional[float] = None

    @property
    def published(self) -> bool:
        return self.published_path is not None


@dataclass
class SweepReport:
    """Outcome of one retention sweep."""

    expired_jobs: list[str] = field(default_factory=list)
    deleted_files: list[str] = field(default_factory=list)


class ArtifactPublisher:
    """
    Maps completed jobs to download locators and expires old artifacts.

    Thread-safe: retrievals run in the request handlers while sweeps run
    from the background retention task.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.directory = Path(settings.download_directory)
        self._jobs: dict[str, TrackedJob] = {}
        self._by_filename: dict[str, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def track(self, descriptor: JobDescriptor, result: JobResult) -> None:
        """
        Register a terminal job's files for retention.

        Succeeded jobs also become servable under their output filename.
        Failed jobs' partial files stay on disk for inspection until expiry.
        """
        if not result.is_terminal:
            raise ValueError(f"Job {result.job_id} is not finished ({result.status.value})")

        tracked = TrackedJob(
            job_id=descriptor.job_id,
            files=[descriptor.download_path, descriptor.output_path],
            tracked_at=self.clock(),
        )
        if result.status == JobStatus.SUCCEEDED and result.output_path is not None:
            tracked.published_path = Path(result.output_path)

        with self._lock:
            self._jobs[descriptor.job_id] = tracked
            if tracked.published:
                self._by_filename[tracked.published_path.name] = descriptor.job_id

        if tracked.published:
            self.logger.info(f"Published artifact {tracked.published_path.name} for job {descriptor.job_id}")

    def publish(self, result: JobResult) -> str:
        """
        Return the download locator for a succeeded job.

        Raises:
            ArtifactNotFoundError: If the job did not succeed or is not tracked
        """
        if result.status != JobStatus.SUCCEEDED or result.output_path is None:
            raise ArtifactNotFoundError(f"Job {result.job_id} has no artifact")

        with self._lock:
            tracked = self._jobs.get(result.job_id)
            if tracked is None or not tracked.published:
                raise ArtifactNotFoundError(f"Job {result.job_id} has no artifact")
            filename = tracked.published_path.name

        return self.locator_for(filename)

    def locator_for(self, filename: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/download/{filename}"

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def acquire(self, filename: str) -> Path:
        """
        Resolve a published artifact for download and pin it.

        Every successful acquire must be paired with release().

        Raises:
            ArtifactNotFoundError: If the name is unknown, unpublished, or gone
        """
        if not filename or "/" in filename or "\\" in filename or filename in (".", ".."):
            raise ArtifactNotFoundError(f"File not found: {filename}")

        with self._lock:
            job_id = self._by_filename.get(filename)
            tracked = self._jobs.get(job_id) if job_id else None
            if tracked is None or not tracked.published or not tracked.published_path.is_file():
                raise ArtifactNotFoundError(f"File not found: {filename}")

            tracked.active_retrievals += 1
            tracked.last_access = self.clock()
            return tracked.published_path

    def release(self, filename: str) -> None:
        """Unpin an artifact once its download has finished."""
        with self._lock:
            job_id = self._by_filename.get(filename)
            tracked = self._jobs.get(job_id) if job_id else None
            if tracked is None:
                return
            tracked.active_retrievals = max(0, tracked.active_retrievals - 1)
            tracked.last_access = self.clock()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def _is_expired(self, tracked: TrackedJob, now: float) -> bool:
        if now - tracked.tracked_at < self.settings.artifact_ttl_seconds:
            return False
        if tracked.active_retrievals > 0:
            return False
        if tracked.last_access is not None and now - tracked.last_access < self.settings.retrieval_grace_seconds:
            return False
        return True

    def sweep(self, now: Optional[float] = None) -> SweepReport:
        """
        Delete the files of jobs older than the TTL.

        Jobs with a download in flight or a recent access are skipped and
        retried on the next sweep.
        """
        now = self.clock() if now is None else now
        report = SweepReport()

        with self._lock:
            expired = [t for t in self._jobs.values() if self._is_expired(t, now)]
            for tracked in expired:
                del self._jobs[tracked.job_id]
                if tracked.published:
                    self._by_filename.pop(tracked.published_path.name, None)

        for tracked in expired:
            for path in tracked.files:
                try:
                    path.unlink()
                    report.deleted_files.append(str(path))
                except FileNotFoundError:
                    continue
                except OSError as e:
                    self.logger.warning(f"Failed to delete expired artifact {path}: {e}")
            report.expired_jobs.append(tracked.job_id)

        if report.expired_jobs:
            self.logger.info(
                f"Retention sweep expired {len(report.expired_jobs)} job(s), "
                f"deleted {len(report.deleted_files)} file(s)"
            )
        return report

    def sweep_orphans(self, now: Optional[float] = None) -> list[str]:
        """
        Delete untracked files older than the TTL from the download directory.

        Covers leftovers from a previous process, which this instance never
        tracked.
        """
        now = self.clock() if now is None else now
        if not self.directory.is_dir():
            return []

        with self._lock:
            known = {str(path) for t in self._jobs.values() for path in t.files}

        deleted = []
        for path in self.directory.iterdir():
            if not path.is_file() or str(path) in known:
                continue
            try:
                if now - path.stat().st_mtime < self.settings.artifact_ttl_seconds:
                    continue
                path.unlink()
                deleted.append(str(path))
            except OSError as e:
                self.logger.warning(f"Failed to delete orphaned file {path}: {e}")

        if deleted:
            self.logger.info(f"Removed {len(deleted)} orphaned file(s) from {self.directory}")
        return deleted

    def adopt_existing(self) -> list[str]:
        """
        Track clips left in the download directory by a previous process.

        Each clipped_<id> file is published again with its mtime as the
        tracking time, together with its <id> source download, so links
        handed out before a restart keep working until the TTL.

        Returns:
            Ids of the adopted jobs
        """
        if not self.directory.is_dir():
            return []

        adopted = []
        for path in sorted(self.directory.glob(f"{CLIP_PREFIX}*")):
            job_id = path.stem[len(CLIP_PREFIX):]
            if not path.is_file() or not job_id:
                continue
            try:
                stat = path.stat()
            except OSError as e:
                self.logger.warning(f"Failed to inspect leftover clip {path}: {e}")
                continue
            if stat.st_size == 0:
                continue

            tracked = TrackedJob(
                job_id=job_id,
                files=[path.with_name(f"{job_id}{path.suffix}"), path],
                tracked_at=stat.st_mtime,
                published_path=path,
            )
            with self._lock:
                if job_id in self._jobs:
                    continue
                self._jobs[job_id] = tracked
                self._by_filename[path.name] = job_id
            adopted.append(job_id)

        if adopted:
            self.logger.info(f"Adopted {len(adopted)} clip(s) left in {self.directory}")
        return adopted

    async def run_retention_loop(
        self,
        on_expired: Optional[Callable[[list[str]], None]] = None,
    ) -> None:
        """Sweep tracked jobs and untracked leftovers periodically until cancelled."""
        interval = self.settings.retention_sweep_interval_seconds
        self.logger.info(
            f"Retention loop started (ttl={self.settings.artifact_ttl_seconds}s, every {interval}s)"
        )
        while True:
            await asyncio.sleep(interval)
            try:
                report = self.sweep()
                if on_expired and report.expired_jobs:
                    on_expired(report.expired_jobs)
                self.sweep_orphans()
            except Exception as e:
                self.logger.exception(f"Retention sweep failed: {e}")

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._jobs)
