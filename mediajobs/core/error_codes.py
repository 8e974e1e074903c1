"""
Standardised error handling for MediaJobs.

Every failure a pipeline stage can raise is a JobError subclass carrying a
stable code, a human-readable message and the HTTP status the web layer
answers with.
"""

from mediajobs.core.constants import ErrorCode, MAX_ERROR_MESSAGE_LEN


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    code = ErrorCode.UNEXPECTED
    http_status = 500

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(f"[{self.code}] {message}")


class InvalidSourceError(JobError):
    code = ErrorCode.INVALID_SOURCE
    http_status = 400


class AcquisitionError(JobError):
    code = ErrorCode.ACQUISITION
    http_status = 502


class TranscodeError(JobError):
    code = ErrorCode.TRANSCODE
    http_status = 422


class PayloadTooLargeError(JobError):
    code = ErrorCode.PAYLOAD_TOO_LARGE
    http_status = 413


class StageTimeoutError(JobError, TimeoutError):
    code = ErrorCode.TIMEOUT
    http_status = 504


class EmptyResultError(JobError):
    code = ErrorCode.EMPTY_RESULT
    http_status = 422


class ContentBlockedError(JobError):
    code = ErrorCode.CONTENT_BLOCKED
    http_status = 422

    def __init__(self, block_reason: str, message: str | None = None):
        self.block_reason = block_reason
        super().__init__(message or f"Content blocked by safety filter: {block_reason}")


class UpstreamError(JobError):
    code = ErrorCode.UPSTREAM
    http_status = 502


class PersistenceError(JobError):
    code = ErrorCode.PERSISTENCE
    http_status = 503


class NotFoundError(JobError):
    code = ErrorCode.NOT_FOUND
    http_status = 404


class JobCancelledError(JobError):
    code = ErrorCode.CANCELLED
    http_status = 409


class InvalidTransitionError(JobError):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 409


class ConfigurationError(JobError):
    code = ErrorCode.CONFIGURATION
    http_status = 500


def truncate_message(message: str, limit: int = MAX_ERROR_MESSAGE_LEN) -> str:
    """Clip a message to the length stored in Job.error."""
    if len(message) <= limit:
        return message
    return message[:limit - 3] + "..."
