"""
Turns one resolved item into files on disk: picks the stream, names the
output, fetches captions and routes every part to the right download path.
"""

import asyncio
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional

import aiofiles
from rich.markup import escape

from segdl.cli.progress_manager import ProgressManager
from segdl.exceptions import (
    DownloadCancelledError,
    JobConflictError,
    PartsFailedError,
    SegdlError,
    StreamNotFoundError,
)
from segdl.media import Muxer, PartDownloader
from segdl.models.config import DownloadConfig
from segdl.models.media import CaptionPart, DataType, MediaData, Part, Stream
from segdl.models.stats import DownloadStats
from segdl.net.client import HttpClient
from segdl.net.delegate import Aria2Delegate
from segdl.utils.formatting import format_size
from segdl.utils.path import file_name, file_path

log = logging.getLogger(__name__)

AUDIO_QUALITY_PATTERN = re.compile("audio+")


class LoadResult(str, Enum):
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    DELEGATED = "delegated"


def select_stream(data: MediaData, stream_id: str = "", audio_only: bool = False) -> Stream:
    """
    Picks the stream to download: the requested id, the best audio-only stream,
    or the largest stream by default.

    Raises:
        StreamNotFoundError: If the item has no streams or nothing matches.
    """
    if not data.streams:
        raise StreamNotFoundError(f"No streams in '{data.title}'")

    sorted_streams = data.sorted_streams()
    if audio_only:
        for stream in sorted_streams:
            if AUDIO_QUALITY_PATTERN.search(stream.quality):
                return stream
        raise StreamNotFoundError(f"No audio stream found in '{data.title}'")

    stream_id = stream_id or sorted_streams[0].id
    stream = data.streams.get(stream_id)
    if stream is None:
        raise StreamNotFoundError(f"No stream named '{stream_id}' in '{data.title}'")
    return stream


class StreamDispatcher:
    """
    Loads resolved items. A single instance is shared by all workers of a
    session so that two jobs never write the same output path at once.
    """

    def __init__(
        self,
        config: DownloadConfig,
        client: HttpClient,
        part_downloader: PartDownloader,
        muxer: Optional[Muxer] = None,
        delegate: Optional[Aria2Delegate] = None,
        stats: Optional[DownloadStats] = None,
        progress_manager: Optional[ProgressManager] = None,
    ):
        self.config = config
        self.client = client
        self.part_downloader = part_downloader
        self.muxer = muxer or Muxer()
        self.delegate = delegate
        self.stats = stats or DownloadStats()
        self.progress_manager = progress_manager
        self._claimed: set[Path] = set()
        self._claim_lock = asyncio.Lock()

    async def load(self, data: MediaData) -> LoadResult:
        """
        Downloads the selected stream of ``data``.

        Raises:
            StreamNotFoundError: If no stream can be selected.
            JobConflictError: If another job is writing the same output.
            PartsFailedError, SegmentsFailedError, MergeError, DelegateError,
            PlannerError, TransferError: When the download itself fails.
        """
        stream = select_stream(data, self.config.stream, self.config.audio_only)
        name = file_name(self.config.output_name or data.title, "", self.config.file_name_length)
        final_path = file_path(name, stream.ext, self.config.output_path)

        if final_path.exists():
            log.info(f"  [yellow]○ Skipping:[/] [dim]{escape(final_path.name)}[/dim] (already exists)")
            return LoadResult.SKIPPED

        await self._claim(final_path)
        try:
            if self.config.caption and data.captions:
                await self._download_captions(data, name)

            if self.config.use_aria2_rpc:
                delegate = self.delegate or Aria2Delegate.from_config(self.config)
                count = await delegate.add_stream(name, stream)
                log.info(f"  [cyan]→ Sent to aria2:[/] {escape(name)} ({count} part(s))")
                return LoadResult.DELEGATED

            referer = self.config.refer or data.url
            if len(stream.parts) == 1:
                part = stream.parts[0]
                part_path = file_path(name, part.ext, self.config.output_path)
                await self._save_part(part, part_path, referer, name)
                return LoadResult.DOWNLOADED

            await self._save_multi_part(data, stream, name, final_path, referer)
            return LoadResult.DOWNLOADED
        finally:
            await self._release(final_path)

    async def _claim(self, path: Path) -> None:
        key = path.resolve()
        async with self._claim_lock:
            if key in self._claimed:
                raise JobConflictError(f"'{path}' is already being downloaded")
            self._claimed.add(key)

    async def _release(self, path: Path) -> None:
        async with self._claim_lock:
            self._claimed.discard(path.resolve())

    async def _save_multi_part(
        self, data: MediaData, stream: Stream, name: str, final_path: Path, referer: str
    ) -> None:
        part_paths = [
            file_path(f"{name}[{i}]", part.ext, self.config.output_path)
            for i, part in enumerate(stream.parts)
        ]
        tasks = [
            self._save_part(part, path, referer, f"{name} [{i + 1}/{len(stream.parts)}]")
            for i, (part, path) in enumerate(zip(stream.parts, part_paths))
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        errors = []
        for result in results:
            if isinstance(result, DownloadCancelledError):
                raise result
            if isinstance(result, BaseException):
                errors.append(result)
        if errors:
            raise PartsFailedError(data.title, errors)

        if data.type != DataType.VIDEO:
            return
        log.info(f"Merging video parts into [dim]{escape(str(final_path))}[/dim]")
        await self.muxer.merge(part_paths, final_path, stream.ext, stream.need_mux)

    async def _save_part(self, part: Part, path: Path, referer: str, description: str) -> None:
        task_id = None
        if self.progress_manager:
            size_str = format_size(part.size) if part.size else ""
            task_id = self.progress_manager.add_part_task(description, part.size, size_str)

        async def on_bytes(count: int) -> None:
            await self.stats.add_bytes(count, self.progress_manager)
            if self.progress_manager:
                self.progress_manager.advance_task(task_id, count)

        try:
            downloaded = await self.part_downloader.save(part, path, referer, on_bytes)
        except BaseException:
            if self.progress_manager:
                self.progress_manager.remove_task(task_id, success=False)
            raise
        if self.progress_manager:
            self.progress_manager.remove_task(task_id, success=True)
        if downloaded:
            self.stats.parts_downloaded += 1

    async def _download_captions(self, data: MediaData, name: str) -> None:
        log.info(f"Downloading captions of '{escape(name)}'")
        named = len(data.captions) > 1
        for key, caption in data.captions.items():
            if caption is None:
                continue
            caption_name = f"{name}.{key}" if named else name
            try:
                await self._download_caption(caption, caption_name)
            except (SegdlError, OSError, ValueError) as e:
                log.error(f"  [red]✗ Caption '{escape(key)}' failed:[/] {escape(str(e))}")

    async def _download_caption(self, caption: CaptionPart, name: str) -> None:
        body = await self.client.get_bytes(caption.url, self.config.refer or caption.url)
        if caption.transform is not None:
            body = caption.transform(body)
        path = file_path(
            name, caption.ext, self.config.output_path, self.config.file_name_length, escape=True
        )
        async with aiofiles.open(path, "wb") as f:
            await f.write(body)
        log.debug(f"Saved caption {path}")
