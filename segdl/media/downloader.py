"""
Downloads a single part to its final path, through the segment engine
(plan, fetch concurrently, merge) or the single-stream path.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles.os

from segdl.models.config import DownloadConfig
from segdl.models.media import Part
from segdl.net.client import HttpClient
from segdl.utils.cancellation import CancellationToken
from segdl.utils.path import file_size, temp_path
from segdl.utils.structured_logger import DownloadLogger

from .fetcher import SegmentFetcher
from .merger import SegmentMerger
from .planner import SegmentPlanner
from .segment_store import SegmentStore
from .single_stream import SingleStreamDownloader

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class SegmentedDownloader:
    """Splits a part of known size into ranges fetched in parallel and merged at the end."""

    def __init__(
        self,
        planner: SegmentPlanner,
        fetcher: SegmentFetcher,
        merger: SegmentMerger,
    ):
        self.planner = planner
        self.fetcher = fetcher
        self.merger = merger

    async def save(
        self,
        part: Part,
        file_path: Path,
        referer: str = "",
        on_bytes: Optional[ProgressCallback] = None,
    ) -> bool:
        """
        Returns False when the final file was already complete, True otherwise.

        Raises:
            PlannerError: If leftover segment files cannot be read.
            SegmentsFailedError: If some segments failed; nothing is merged.
            MergeError: If the finished segments cannot be combined.
            DownloadCancelledError: If the cancellation token fired.
        """
        size, exists = await asyncio.to_thread(file_size, file_path)
        if exists and size == part.size:
            log.info(f"{file_path.name} already exists, skipping")
            return False

        tmp = temp_path(file_path)
        tmp_size, tmp_exists = await asyncio.to_thread(file_size, tmp)
        if tmp_exists:
            if tmp_size == part.size:
                # A previous run merged but did not get to rename
                await aiofiles.os.replace(tmp, file_path)
                leftovers = await asyncio.to_thread(SegmentStore(file_path).scan)
                await self.merger.remove_segments(file_path, leftovers)
                return True
            await aiofiles.os.remove(tmp)

        plan = await self.planner.plan(file_path, part.size)
        if plan.saved_bytes and on_bytes:
            await on_bytes(plan.saved_bytes)

        if plan.complete:
            log.debug(f"All segments of '{file_path.name}' already on disk")
        else:
            await self.fetcher.fetch_all(
                part.url, file_path, plan.unfinished, referer, on_bytes
            )

        await self.merger.merge(file_path, plan.segments)
        return True


class PartDownloader:
    """
    Chooses the download path for each part: segmented when enabled and the
    size is known, single-stream otherwise.
    """

    def __init__(
        self,
        segmented: SegmentedDownloader,
        single: SingleStreamDownloader,
        multi_thread: bool = True,
    ):
        self.segmented = segmented
        self.single = single
        self.multi_thread = multi_thread

    @classmethod
    def from_config(
        cls,
        config: DownloadConfig,
        client: HttpClient,
        events: Optional[DownloadLogger] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "PartDownloader":
        segmented = SegmentedDownloader(
            SegmentPlanner(config.thread_number, events, cancel_token),
            SegmentFetcher(
                client,
                retry_times=config.retry_times,
                retry_delay=config.retry_delay,
                chunk_size=config.chunk_size,
                events=events,
                cancel_token=cancel_token,
            ),
            SegmentMerger(events, cancel_token),
        )
        single = SingleStreamDownloader(
            client,
            retry_times=config.retry_times,
            retry_delay=config.retry_delay,
            chunk_size=config.chunk_size,
            cancel_token=cancel_token,
        )
        return cls(segmented, single, config.multi_thread)

    async def save(
        self,
        part: Part,
        file_path: Path,
        referer: str = "",
        on_bytes: Optional[ProgressCallback] = None,
    ) -> bool:
        if self.multi_thread and part.size > 0:
            return await self.segmented.save(part, file_path, referer, on_bytes)
        return await self.single.save(part, file_path, referer, on_bytes)
