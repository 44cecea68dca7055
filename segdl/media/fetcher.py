"""
Downloads the unfinished segments of a part concurrently, one task per segment,
appending every ranged response to the segment's own file.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from segdl.exceptions import (
    DownloadCancelledError,
    SegmentFailure,
    SegmentsFailedError,
    TransferError,
)
from segdl.models.segment import SegmentMeta
from segdl.net.client import HttpClient
from segdl.utils.cancellation import CancellationToken
from segdl.utils.structured_logger import DownloadLogger

from .segment_store import SegmentStore

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class SegmentFetcher:
    """
    Fetches byte ranges with a bounded, fixed-delay retry per chunk.

    A failed attempt that already wrote some bytes is not thrown away: the next
    attempt asks only for what is still missing from the chunk.
    """

    def __init__(
        self,
        client: HttpClient,
        retry_times: int = 3,
        retry_delay: float = 1.0,
        chunk_size: int = 0,
        events: Optional[DownloadLogger] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.client = client
        self.retry_times = max(retry_times, 1)
        self.retry_delay = retry_delay
        self.chunk_size = chunk_size
        self.events = events
        self.cancel_token = cancel_token

    async def fetch_all(
        self,
        url: str,
        file_path: Path,
        segments: list[SegmentMeta],
        referer: str = "",
        on_bytes: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Downloads every given segment, waiting for all of them before returning.

        Raises:
            DownloadCancelledError: If the cancellation token fired.
            SegmentsFailedError: If at least one segment exhausted its retries;
                the other segments still ran to completion.
        """
        store = SegmentStore(file_path)
        tasks = [
            self._fetch_segment(store, url, meta, referer, on_bytes) for meta in segments
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        failures = []
        cancelled = None
        for meta, result in zip(segments, results):
            if isinstance(result, DownloadCancelledError):
                cancelled = result
            elif isinstance(result, BaseException):
                failures.append(SegmentFailure(segment_index=meta.index, error=result))

        if cancelled:
            raise cancelled
        if failures:
            failures.sort(key=lambda f: f.segment_index)
            raise SegmentsFailedError(str(file_path), failures)

    async def _fetch_segment(
        self,
        store: SegmentStore,
        url: str,
        meta: SegmentMeta,
        referer: str,
        on_bytes: Optional[ProgressCallback],
    ) -> None:
        try:
            sink = await store.open_for_append(meta)
        except OSError as e:
            raise TransferError(url, 0, f"cannot open segment file: {e}") from e

        try:
            while meta.cursor <= meta.end:
                chunk = self.chunk_size or meta.remaining
                range_end = min(meta.cursor + chunk - 1, meta.end)
                await self._fetch_chunk(store, url, meta, range_end, sink, referer, on_bytes)
        finally:
            await sink.close()

    async def _fetch_chunk(
        self,
        store: SegmentStore,
        url: str,
        meta: SegmentMeta,
        range_end: int,
        sink,
        referer: str,
        on_bytes: Optional[ProgressCallback],
    ) -> None:
        name = store.file_path.name
        for attempt in range(1, self.retry_times + 1):
            if self.cancel_token:
                self.cancel_token.raise_if_cancelled(f"segment {meta.index:f} of '{name}'")
            headers = {
                "Range": f"bytes={meta.cursor}-{range_end}",
                "Referer": referer or url,
                "Accept-Encoding": "identity",
            }
            try:
                written = await self.client.stream_into(
                    url,
                    sink,
                    headers,
                    on_bytes,
                    self.cancel_token,
                    limit=range_end - meta.cursor + 1,
                )
            except TransferError as e:
                meta.cursor += e.written
                if meta.cursor == range_end + 1:
                    # Whole chunk on disk; only bytes past the range were refused
                    log.debug(f"Segment {meta.index:f} of '{name}': {e}, chunk kept")
                    return
                if attempt >= self.retry_times:
                    if self.events:
                        self.events.segment_failed(name, meta.index, str(e))
                    raise
                log.debug(
                    f"Segment {meta.index:f} of '{name}' attempt "
                    f"{attempt}/{self.retry_times} failed: {e}. "
                    f"Retrying in {self.retry_delay}s..."
                )
                if self.events:
                    self.events.segment_retry(name, meta.index, attempt, str(e))
                await asyncio.sleep(self.retry_delay)
                continue

            meta.cursor += written
            if meta.cursor != range_end + 1:
                # Server closed the body early without an error
                error = TransferError(
                    url, written, f"expected bytes up to {range_end}, got {meta.cursor - 1}"
                )
                if attempt >= self.retry_times:
                    if self.events:
                        self.events.segment_failed(name, meta.index, str(error))
                    raise error
                log.debug(f"Short read on segment {meta.index:f} of '{name}', retrying")
                await asyncio.sleep(self.retry_delay)
                continue
            return
