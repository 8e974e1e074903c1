"""
Job Status Controller: the only writer of the job store.

Owns the state machine pending → processing → {completed | failed} and
publishes every accepted write to registered listeners. Polling clients read
the store; push channels can subscribe as listeners instead.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from mediajobs.core.constants import (
    JobStatus, JobType, ALLOWED_TRANSITIONS, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT,
)
from mediajobs.core.db_sqlite import Database
from mediajobs.core.error_codes import (
    NotFoundError, InvalidTransitionError, truncate_message,
)
from mediajobs.core.models_sqlite import Job

logger = logging.getLogger(__name__)


@dataclass
class JobEvent:
    job: Job
    stage: Optional[str] = None
    message: Optional[str] = None


class JobListener(Protocol):
    def job_updated(self, event: JobEvent) -> None: ...


class JobNotifier:
    """Fans job events out to listeners. A failing listener never affects the write."""

    def __init__(self):
        self._listeners: list[JobListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: JobListener):
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: JobListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: JobEvent):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener.job_updated(event)
            except Exception as e:
                logger.error("Job listener %r failed for job %s: %s",
                             listener, event.job.id, e, exc_info=True)


class JobStatusController:
    """Validates and applies job status writes."""

    def __init__(self, db: Database, notifier: JobNotifier | None = None):
        self.db = db
        self.notifier = notifier or JobNotifier()

    # ── Reads ─────────────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Job:
        job = self.db.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(self, job_type: str | None = None, status: str | None = None,
                  limit: int = DEFAULT_LIST_LIMIT) -> list[Job]:
        limit = max(1, min(MAX_LIST_LIMIT, int(limit)))
        return self.db.list_jobs(job_type, status, limit)

    # ── Writes ────────────────────────────────────────────────────────

    def create_job(self, job_type: str, metadata: dict | None = None) -> Job:
        if job_type not in JobType.ALL:
            raise ValueError(f"Unknown job type: {job_type!r}")
        job = self.db.create_job(job_type, metadata)
        logger.info("Created %s job %s", job_type, job.id)
        self.notifier.publish(JobEvent(job))
        return job

    def update_status(self, job_id: str, status: str, progress: int | None = None,
                      result=None, error: str | None = None,
                      message: str | None = None, stage: str | None = None) -> Job:
        """
        Apply a status write. Writes to a terminal job are ignored (logged)
        and the unchanged job is returned.
        """
        if status not in JobStatus.ALL:
            raise InvalidTransitionError(f"Unknown status: {status!r}")

        with self.db.transaction():
            job = self.get_job(job_id)

            if job.status in JobStatus.TERMINAL:
                logger.warning("Ignoring write to terminal job %s (%s -> %s)",
                               job_id, job.status, status)
                return job

            if status not in ALLOWED_TRANSITIONS[job.status]:
                raise InvalidTransitionError(
                    f"Illegal transition for job {job_id}: {job.status} -> {status}")

            fields = {'status': status}

            if progress is not None:
                progress = max(0, min(100, int(progress)))
                if progress < job.progress:
                    logger.debug("Job %s: clamping progress %d to %d", job_id, progress, job.progress)
                    progress = job.progress
                fields['progress'] = progress

            if status == JobStatus.COMPLETED:
                if result is None:
                    raise InvalidTransitionError(f"Job {job_id} cannot complete without a result")
                fields['result'] = result
                fields['progress'] = 100
            elif result is not None:
                raise InvalidTransitionError("A result may only be written when completing a job")

            if status == JobStatus.FAILED:
                fields['error'] = truncate_message(error or "Unknown error")
            elif error is not None:
                raise InvalidTransitionError("An error may only be written when failing a job")

            if message is not None:
                fields['status_message'] = message

            if not self.db.update_job(job_id, **fields):
                # Lost a race with another writer that finished the job
                logger.warning("Write to job %s rejected by store (already terminal)", job_id)
                return self.get_job(job_id)

            updated = self.get_job(job_id)

        if status in JobStatus.TERMINAL:
            logger.info("Job %s %s%s", job_id, status,
                        f": {updated.error}" if updated.error else "")
        self.notifier.publish(JobEvent(updated, stage=stage, message=message))
        return updated

    def fail(self, job_id: str, error: str, stage: str | None = None) -> Job:
        """Fail a job from any non-terminal state (pending jobs start first)."""
        job = self.get_job(job_id)
        if job.status == JobStatus.PENDING:
            self.update_status(job_id, JobStatus.PROCESSING, stage=stage)
        return self.update_status(job_id, JobStatus.FAILED, error=error,
                                  message=error, stage=stage)

    def delete_job(self, job_id: str):
        if not self.db.delete_job(job_id):
            raise NotFoundError(f"Job {job_id} not found")
        logger.info("Deleted job %s", job_id)
