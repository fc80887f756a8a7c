"""
In-memory job status table with bounded retention
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .errors import JobNotFoundError
from .models import JobSnapshot, RecordingJob, utcnow

logger = logging.getLogger(__name__)


class StatusStore:
    """
    job id -> RecordingJob, read through detached snapshots.

    Only the coordinator task that owns a job calls update() on it. Terminal
    jobs are evicted `retention_seconds` after they finished.
    """

    def __init__(
        self,
        retention_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.retention = timedelta(seconds=retention_seconds)
        self._clock = clock
        self._jobs: dict[str, RecordingJob] = {}

    def put(self, job: RecordingJob) -> JobSnapshot:
        self._evict_expired()
        self._jobs[job.id] = job
        return job.snapshot()

    def update(self, job_id: str, mutator: Callable[[RecordingJob], None]) -> JobSnapshot:
        """Apply `mutator` to the live job and stamp last_update"""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        mutator(job)
        job.last_update = self._clock()
        if job.state.is_terminal and job.finished_at is None:
            job.finished_at = job.last_update
        return job.snapshot()

    def get(self, job_id: str) -> JobSnapshot:
        self._evict_expired()
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.snapshot()

    def list(self) -> list[JobSnapshot]:
        self._evict_expired()
        return [job.snapshot() for job in self._jobs.values()]

    def active(self) -> Optional[JobSnapshot]:
        """The non-terminal job, if any"""
        for job in self._jobs.values():
            if not job.state.is_terminal:
                return job.snapshot()
        return None

    def __len__(self) -> int:
        return len(self._jobs)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.finished_at is not None and now - job.finished_at >= self.retention
        ]
        for job_id in expired:
            logger.debug(f"Evicting expired job {job_id}")
            del self._jobs[job_id]
