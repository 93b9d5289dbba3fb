"""Transcode pipeline error types.

Every stage failure derives from TranscodeError and carries the HTTP
status the caller should see.
"""

from typing import Optional


class TranscodeError(Exception):
    """Base exception for all transcode pipeline failures."""

    status_code = 500


class ValidationError(TranscodeError):
    """Raised when the request carries no usable input file."""

    status_code = 400


class UploadTooLargeError(TranscodeError):
    """Raised when the incoming upload exceeds the configured size cap."""

    status_code = 413

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"Upload exceeds the {limit_bytes // (1024 * 1024)} MB limit")


class ProbeError(TranscodeError):
    """Raised when ffprobe fails or emits output that cannot be parsed."""

    def __init__(self, message: str, exit_code: Optional[int] = None, diagnostic_tail: str = ""):
        self.exit_code = exit_code
        self.diagnostic_tail = diagnostic_tail
        super().__init__(message)


class EncodeError(TranscodeError):
    """Raised when ffmpeg cannot be started or exits non-zero."""

    def __init__(self, message: str, exit_code: Optional[int] = None, diagnostic_tail: str = ""):
        self.exit_code = exit_code
        self.diagnostic_tail = diagnostic_tail
        super().__init__(message)

    @classmethod
    def from_exit(cls, exit_code: int, diagnostic_tail: str) -> "EncodeError":
        return cls(
            f"ffmpeg exited with {exit_code}: {diagnostic_tail}",
            exit_code=exit_code,
            diagnostic_tail=diagnostic_tail,
        )


class UploadError(TranscodeError):
    """Raised when the pinning service is unreachable or rejects the upload."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class ConfigurationError(UploadError):
    """Raised when the pinning credentials are missing."""

    status_code = 500


class PipelineFailedError(TranscodeError):
    """Terminal failure of one request, as surfaced to the HTTP caller."""

    def __init__(self, cause: TranscodeError, request_id: str, duration_ms: int):
        self.cause = cause
        self.request_id = request_id
        self.duration_ms = duration_ms
        self.status_code = cause.status_code
        super().__init__(str(cause) or cause.__class__.__name__)
