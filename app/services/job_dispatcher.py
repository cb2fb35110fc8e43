"""
Job Dispatcher - Bounded FIFO worker pool for clip jobs.

Submissions are validated, registered as pending, and queued in arrival
order. A fixed number of worker tasks take jobs off the queue; each worker
runs one job's download and trim back to back before taking the next, so
at most `capacity` external-tool pipelines run at any instant.

Admitted jobs always run to completion. A client that stops waiting (e.g.
disconnects) does not cancel its job; the artifact is still published and
reachable through the job API until it expires. Jobs still unfinished when
the shutdown grace period runs out are recorded as failed.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.config import Settings
from app.services.artifact_publisher import ArtifactPublisher
from app.services.clip_job_runner import ClipJobRunner, JobError, JobResult, JobStatus
from app.services.errors import ArtifactNotFoundError, DownloadFailedError, TrimFailedError
from app.services.job_descriptor import JobDescriptor, build_job_descriptor
from app.services.tool_runner import ExternalToolRunner

logger = logging.getLogger(__name__)


@dataclass
class JobHandle:
    """Handle returned by submit(); resolves once the job is terminal."""

    job_id: str
    descriptor: JobDescriptor
    future: asyncio.Future

    async def wait(self) -> JobResult:
        """
        Wait for the job to finish.

        Shielded: cancelling the waiter leaves the job running.
        """
        return await asyncio.shield(self.future)

    def done(self) -> bool:
        return self.future.done()


@dataclass
class DispatcherStats:
    capacity: int
    running: int
    queued: int
    tracked: int


class ClipJobDispatcher:
    """
    Accepts clip requests and runs them on a bounded worker pool.

    The job table is the only shared structure and is guarded by a lock;
    each job's files are id-derived, so workers never contend on disk.
    """

    def __init__(
        self,
        settings: Settings,
        tool_runner: ExternalToolRunner,
        publisher: ArtifactPublisher,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.tool_runner = tool_runner
        self.publisher = publisher
        self.logger = logger or logging.getLogger(__name__)
        self.capacity = settings.worker_capacity

        self._queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []
        self._jobs: dict[str, JobResult] = {}
        # Admitted jobs whose handle is not resolved yet (queued or running)
        self._inflight: dict[str, tuple[JobDescriptor, JobResult, JobHandle]] = {}
        self._lock = threading.Lock()
        self._running = 0

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Start the worker tasks on the current event loop."""
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"clip-worker-{i}")
            for i in range(self.capacity)
        ]
        self.logger.info(f"Dispatcher started with {self.capacity} worker(s)")

    async def stop(self, grace_seconds: Optional[float] = None) -> None:
        """
        Stop the pool.

        Waits up to grace_seconds for admitted jobs to finish, then cancels
        the workers. Jobs still queued or running at that point are marked
        failed and their handles resolved.
        """
        if not self._workers:
            return

        grace = self.settings.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        try:
            await asyncio.wait_for(self._queue.join(), timeout=grace)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Shutting down with {self._queue.qsize()} queued and {self._running} running job(s)"
            )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        with self._lock:
            interrupted = list(self._inflight.values())
        for descriptor, result, handle in interrupted:
            self._abandon(descriptor, result, handle, "interrupted by shutdown")
        self._queue = None
        self.logger.info("Dispatcher stopped")

    def submit(
        self,
        url: Optional[str],
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> JobHandle:
        """
        Validate and enqueue a clip request.

        Returns:
            JobHandle for awaiting the result

        Raises:
            InvalidInputError: If the request is invalid
            RuntimeError: If the dispatcher is not started
        """
        if self._queue is None:
            raise RuntimeError("Dispatcher not started")

        descriptor = build_job_descriptor(
            url,
            start,
            end,
            directory=self.settings.download_directory,
            host_aliases=self.settings.host_aliases,
            extension=self.settings.output_extension,
        )

        result = JobResult(job_id=descriptor.job_id)
        handle = JobHandle(
            job_id=descriptor.job_id,
            descriptor=descriptor,
            future=asyncio.get_running_loop().create_future(),
        )

        with self._lock:
            if descriptor.job_id in self._jobs:
                raise RuntimeError(f"Duplicate job id {descriptor.job_id}")
            self._jobs[descriptor.job_id] = result
            self._inflight[descriptor.job_id] = (descriptor, result, handle)

        self._queue.put_nowait((descriptor, result, handle))
        self.logger.info(
            f"Job {descriptor.job_id} queued (position {self._queue.qsize()}): {descriptor.source_url}",
            extra={"job_id": descriptor.job_id, "state": JobStatus.PENDING.value},
        )
        return handle

    def status(self, job_id: str) -> JobResult:
        """
        Get the current result of a job.

        Raises:
            ArtifactNotFoundError: If the job is unknown or has expired
        """
        with self._lock:
            result = self._jobs.get(job_id)
        if result is None:
            raise ArtifactNotFoundError(f"Job not found: {job_id}")
        return result

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20) -> list[JobResult]:
        """Most recent jobs first, optionally filtered by status."""
        with self._lock:
            results = list(self._jobs.values())
        if status is not None:
            results = [r for r in results if r.status == status]
        results.sort(key=lambda r: r.created_at, reverse=True)
        return results[:limit]

    def forget(self, job_ids: list[str]) -> None:
        """Drop finished jobs from the table (their artifacts have expired)."""
        with self._lock:
            for job_id in job_ids:
                result = self._jobs.get(job_id)
                if result is not None and result.is_terminal:
                    del self._jobs[job_id]

    def stats(self) -> DispatcherStats:
        with self._lock:
            tracked = len(self._jobs)
        return DispatcherStats(
            capacity=self.capacity,
            running=self._running,
            queued=self._queue.qsize() if self._queue else 0,
            tracked=tracked,
        )

    async def _worker(self, index: int) -> None:
        while True:
            descriptor, result, handle = await self._queue.get()
            self._running += 1
            try:
                await self._execute(descriptor, result, handle)
            finally:
                self._running -= 1
                self._queue.task_done()

    async def _execute(self, descriptor: JobDescriptor, result: JobResult, handle: JobHandle) -> None:
        runner = ClipJobRunner(
            descriptor,
            self.tool_runner,
            self.settings,
            result=result,
            logger=self.logger.getChild("runner"),
        )
        try:
            await runner.run()
        except Exception as e:
            self.logger.exception(f"Job {descriptor.job_id} crashed: {e}")
            self._abandon(descriptor, result, handle, repr(e))
            return

        self._finish(descriptor, result, handle)

    def _abandon(self, descriptor: JobDescriptor, result: JobResult, handle: JobHandle, reason: str) -> None:
        """
        Fail a job the runner could not finish (crash or shutdown).

        The failure kind follows the stage the job was in; a job that never
        started counts as a failed download.
        """
        if not result.is_terminal:
            error_type = TrimFailedError if result.status == JobStatus.TRIMMING else DownloadFailedError
            error = error_type(output=reason)
            previous = result.status
            result.error = JobError(kind=error.kind, message=error.message, output=reason)
            result.status = JobStatus.FAILED
            result.finished_at = datetime.now(timezone.utc)
            self.logger.error(
                f"Job {descriptor.job_id}: {previous.value} -> failed ({error.kind.value}, {reason})",
                extra={
                    "job_id": descriptor.job_id,
                    "state": JobStatus.FAILED.value,
                    "previous_state": previous.value,
                    "outcome": error.kind.value,
                },
            )
        self._finish(descriptor, result, handle)

    def _finish(self, descriptor: JobDescriptor, result: JobResult, handle: JobHandle) -> None:
        with self._lock:
            self._inflight.pop(descriptor.job_id, None)
        self.publisher.track(descriptor, result)
        if not handle.done():
            handle.future.set_result(result)
