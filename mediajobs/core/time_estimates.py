"""
Heuristic processing-time estimates. Advisory only: shown to polling
clients, never used to make pipeline decisions.
"""

from datetime import datetime, timezone

from mediajobs.core.constants import MediaKind

# Base seconds per stage and analysis type
BASE_TIMES = {
    'downloading': {MediaKind.VIDEO: 5, MediaKind.AUDIO: 3},
    'processing': {MediaKind.VIDEO: 4, MediaKind.AUDIO: 2},
    'analyzing': {MediaKind.VIDEO: 20, MediaKind.AUDIO: 15},
}

# Seconds added per minute of content
PER_MINUTE = {
    'downloading': {MediaKind.VIDEO: 0.5, MediaKind.AUDIO: 0.2},
    'processing': {MediaKind.VIDEO: 0.3, MediaKind.AUDIO: 0.2},
    'analyzing': {MediaKind.VIDEO: 2, MediaKind.AUDIO: 1.5},
}

SAFETY_MULTIPLIER = 1.1
DEFAULT_CONTENT_MINUTES = 5
FULL_TRUST_PROGRESS = 30        # percent at which elapsed-based figure takes over
NO_INFO_ESTIMATE_SEC = 60


def estimate_processing_time(content_minutes: float | None, analysis_type: str) -> int:
    """Estimated total processing time in seconds."""
    if analysis_type not in MediaKind.ALL:
        raise ValueError(f"Unknown analysis type: {analysis_type!r}")
    minutes = content_minutes or DEFAULT_CONTENT_MINUTES

    total = sum(
        BASE_TIMES[stage][analysis_type] + minutes * PER_MINUTE[stage][analysis_type]
        for stage in BASE_TIMES
    )
    return round(total * SAFETY_MULTIPLIER)


def estimate_time_remaining(progress: float, start_time: datetime,
                            content_minutes: float | None = None,
                            analysis_type: str = MediaKind.VIDEO,
                            now: datetime | None = None) -> int:
    """
    Seconds remaining. Blends the model estimate with an elapsed/percent
    extrapolation, trusting the latter fully from 30% progress on.
    """
    if progress <= 0 and content_minutes:
        return estimate_processing_time(content_minutes, analysis_type)

    now = now or datetime.now(timezone.utc)
    elapsed = max(0.0, (now - start_time).total_seconds())

    if content_minutes:
        model_estimate = estimate_processing_time(content_minutes, analysis_type)
        percent_estimate = elapsed / progress * (100 - progress)
        weight = min(progress / FULL_TRUST_PROGRESS, 1)
        return max(0, round((1 - weight) * model_estimate + weight * percent_estimate))

    if progress > 0:
        return max(0, round(elapsed / progress * (100 - progress)))
    return NO_INFO_ESTIMATE_SEC
