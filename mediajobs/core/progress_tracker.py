"""
Process-local progress snapshots fed by job events.
Used to attach an advisory ETA to status payloads; nothing here is durable.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from mediajobs.core.constants import JobStatus, JobType, MediaKind, ProgressStage
from mediajobs.core.job_status import JobEvent
from mediajobs.core.time_estimates import estimate_time_remaining

logger = logging.getLogger(__name__)


@dataclass
class ProgressSnapshot:
    job_id: str
    stage: str
    progress: int
    analysis_type: str = MediaKind.VIDEO
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    content_minutes: Optional[float] = None
    details: Optional[str] = None
    estimated_time_remaining: Optional[int] = None


def analysis_type_for(job_type: str, metadata: dict) -> str:
    """Which estimate table a job uses (video or audio)."""
    if job_type == JobType.TRANSCRIPTION:
        return MediaKind.AUDIO
    kind = metadata.get('analysisType') or metadata.get('kind')
    return kind if kind in MediaKind.ALL else MediaKind.VIDEO


class ProgressTracker:
    """JobListener keeping the latest snapshot per job."""

    def __init__(self):
        self._snapshots: dict[str, ProgressSnapshot] = {}
        self._lock = threading.Lock()

    def job_updated(self, event: JobEvent):
        job = event.job
        with self._lock:
            if job.status in JobStatus.TERMINAL:
                # Finished jobs are read from the store
                self._snapshots.pop(job.id, None)
                return

            snap = self._snapshots.get(job.id)
            if snap is None:
                snap = ProgressSnapshot(
                    job_id=job.id,
                    stage=event.stage or ProgressStage.VALIDATING,
                    progress=job.progress,
                    analysis_type=analysis_type_for(job.type, job.metadata),
                )
                self._snapshots[job.id] = snap

            if event.stage:
                snap.stage = event.stage
            snap.progress = job.progress
            if event.message:
                snap.details = event.message
            snap.estimated_time_remaining = estimate_time_remaining(
                snap.progress, snap.start_time, snap.content_minutes, snap.analysis_type)

    def set_content_duration(self, job_id: str, duration_seconds: float):
        """Record the content length once a stage has probed it."""
        with self._lock:
            snap = self._snapshots.get(job_id)
            if snap is not None and duration_seconds > 0:
                snap.content_minutes = duration_seconds / 60

    def get(self, job_id: str) -> ProgressSnapshot | None:
        with self._lock:
            snap = self._snapshots.get(job_id)
            if snap is None:
                return None
            snap.estimated_time_remaining = estimate_time_remaining(
                snap.progress, snap.start_time, snap.content_minutes, snap.analysis_type)
            return snap

    def forget(self, job_id: str):
        with self._lock:
            self._snapshots.pop(job_id, None)
