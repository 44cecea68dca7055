"""
Cooperative cancellation for in-flight downloads.

A :class:`CancellationToken` is handed down from the session to the planner,
the segment fetcher, the single-stream path and the merger. Each of them checks
it between network reads or file copies, so a caller can stop a multi-segment
download without waiting for every sibling task to finish, while the progress
already written to the segment files stays on disk for the next run.
"""

from __future__ import annotations

import threading

from segdl.exceptions import DownloadCancelledError


class CancellationToken:
    """Thread-safe cancellation flag.

    Examples:
        >>> token = CancellationToken()
        >>> token.raise_if_cancelled("fetch")  # no-op
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self, operation: str) -> None:
        """Raises :class:`DownloadCancelledError` if cancellation was requested."""
        if self._is_cancelled.is_set():
            raise DownloadCancelledError(f"{operation} cancelled")

    def reset(self) -> None:
        """Reset the token; only meant for tests and controlled reuse."""
        self._is_cancelled.clear()
