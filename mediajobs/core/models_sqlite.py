"""
Data models (plain dataclasses) for MediaJobs.

Job mirrors a row of the jobs table. Results are tagged per job type and
stored as JSON; MediaArtifact describes a transient file owned by one run.
"""

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Union

from mediajobs.core.constants import JobType


@dataclass
class TranscriptionResult:
    text: str
    duration_seconds: float
    word_count: int
    language: Optional[str] = None
    source: Optional[str] = None


@dataclass
class AnalysisResult:
    report: str
    model: str
    analysis_method: str
    source_url: Optional[str] = None


@dataclass
class DownloadResult:
    path: str
    size_bytes: int
    duration_seconds: float
    format: str


JobResult = Union[TranscriptionResult, AnalysisResult, DownloadResult]

_RESULT_TYPES = {
    JobType.TRANSCRIPTION: TranscriptionResult,
    JobType.ANALYSIS: AnalysisResult,
    JobType.DOWNLOAD: DownloadResult,
}


def result_type_for(job_type: str) -> type:
    """Return the result dataclass for a job type; unknown types are an error."""
    try:
        return _RESULT_TYPES[job_type]
    except KeyError:
        raise ValueError(f"Unknown job type: {job_type!r}") from None


def encode_result(job_type: str, result) -> str:
    """Serialise a result with its type tag. Dicts are checked against the job type."""
    cls = result_type_for(job_type)
    if isinstance(result, dict):
        result = cls(**{k: v for k, v in result.items() if k != 'type'})
    if not isinstance(result, cls):
        raise TypeError(f"{type(result).__name__} is not a result for {job_type} jobs")
    payload = asdict(result)
    payload['type'] = job_type
    return json.dumps(payload)


def decode_result(job_type: str, raw: str | None):
    """Parse a stored result back into its dataclass."""
    if raw is None:
        return None
    payload = json.loads(raw)
    tag = payload.pop('type', job_type)
    if tag != job_type:
        raise ValueError(f"Result tagged {tag!r} stored on a {job_type!r} job")
    return result_type_for(job_type)(**payload)


@dataclass
class Job:
    id: str                          # UUID
    type: str
    status: str = "pending"
    progress: int = 0
    result: Optional[JobResult] = None
    error: Optional[str] = None
    status_message: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.result is not None:
            data['result'] = dict(asdict(self.result), type=self.type)
        return data


@dataclass
class MediaArtifact:
    path: Path
    size_bytes: int
    format: str
    duration_seconds: float = 0.0

    @classmethod
    def from_path(cls, path: Path, duration_seconds: float = 0.0) -> "MediaArtifact":
        return cls(
            path=path,
            size_bytes=path.stat().st_size,
            format=path.suffix.lstrip('.').lower(),
            duration_seconds=duration_seconds,
        )

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)
