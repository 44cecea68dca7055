"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from dataclasses import dataclass


class SegdlError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(SegdlError):
    """Raised for issues related to configuration loading or validation."""


class ResolverError(SegdlError):
    """Raised when a URL cannot be resolved into downloadable items."""


class StreamNotFoundError(SegdlError):
    """Raised when no stream matches the requested id or audio-only policy."""


class PlannerError(SegdlError):
    """Raised when existing segment files cannot be scanned or parsed."""


class RequestError(SegdlError):
    """Raised when an HTTP request fails at the transport level after all retries."""

    def __init__(self, url: str, message: str):
        super().__init__(f"request error for {url}: {message}")
        self.url = url


class HttpStatusError(RequestError):
    """Raised when the server keeps answering with an HTTP error status."""

    def __init__(self, url: str, status: int):
        super().__init__(url, f"HTTP {status}")
        self.status = status


class TransferError(SegdlError):
    """
    Raised when a response body could not be fully written to disk.

    ``written`` is the number of bytes that did reach the file before the
    failure, so a retry can continue from there instead of starting over.
    """

    def __init__(self, url: str, written: int, message: str):
        super().__init__(f"transfer of {url} failed after {written} bytes: {message}")
        self.url = url
        self.written = written


@dataclass
class SegmentFailure:
    """A single segment that exhausted its retry budget."""

    segment_index: float
    error: Exception

    def __str__(self) -> str:
        return f"segment {self.segment_index:f}: {self.error}"


class SegmentsFailedError(SegdlError):
    """Raised after all segment tasks finished and at least one of them failed."""

    def __init__(self, file_path: str, failures: list[SegmentFailure]):
        self.file_path = file_path
        self.failures = failures
        details = "; ".join(str(f) for f in failures)
        super().__init__(
            f"{len(failures)} segment(s) of '{file_path}' failed: {details}"
        )


class PartsFailedError(SegdlError):
    """Raised after all parts of a multi-part stream finished and some failed."""

    def __init__(self, title: str, errors: list[Exception]):
        self.title = title
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} part(s) of '{title}' failed: {details}")


class MergeError(SegdlError):
    """Raised when segments or parts cannot be combined into the final file."""


class DelegateError(SegdlError):
    """Raised when the remote download daemon cannot be reached."""


class DownloadCancelledError(SegdlError):
    """Raised when a download is stopped through its cancellation token."""


class JobConflictError(SegdlError):
    """Raised when a second job targets an output path that is already in use."""
