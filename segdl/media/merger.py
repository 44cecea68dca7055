"""
Concatenates the payloads of finished segment files into the final file.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from segdl.exceptions import MergeError
from segdl.models.segment import SegmentMeta
from segdl.utils.cancellation import CancellationToken
from segdl.utils.path import temp_path
from segdl.utils.structured_logger import DownloadLogger

from .segment_store import HEADER_SIZE, SegmentStore

log = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


class SegmentMerger:
    """
    Writes ``<final>.download`` from the segments in ascending index order,
    renames it to the final name and only then deletes the segment files.
    """

    def __init__(
        self,
        events: Optional[DownloadLogger] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.events = events
        self.cancel_token = cancel_token

    async def merge(self, file_path: Path, segments: list[SegmentMeta]) -> None:
        """
        Raises:
            MergeError: If a segment cannot be read, the merged size does not
                match the covered byte range, or the rename fails. Segment
                files are left untouched in every failure case.
        """
        started = time.monotonic()
        store = SegmentStore(file_path)
        ordered = sorted(segments, key=lambda m: m.index)
        expected = sum(meta.length for meta in ordered)
        tmp = temp_path(file_path)

        try:
            written = await self._concatenate(store, ordered, tmp)
        except OSError as e:
            raise MergeError(f"Cannot merge segments of '{file_path}': {e}") from e

        if written != expected:
            raise MergeError(
                f"Merged size of '{file_path.name}' is {written} bytes, "
                f"expected {expected}"
            )

        try:
            await aiofiles.os.replace(tmp, file_path)
        except OSError as e:
            raise MergeError(f"Cannot rename '{tmp}' to '{file_path}': {e}") from e

        await self.remove_segments(file_path, ordered)

        duration = time.monotonic() - started
        log.debug(f"Merged {len(ordered)} segments into '{file_path.name}' in {duration:.2f}s")
        if self.events:
            self.events.part_merged(file_path.name, written, len(ordered), duration)

    async def remove_segments(self, file_path: Path, segments: list[SegmentMeta]) -> None:
        """Deletes the segment files of a merged part; failures are only logged."""
        store = SegmentStore(file_path)
        for meta in segments:
            try:
                await store.remove(meta)
            except FileNotFoundError:
                continue
            except OSError as e:
                log.warning(f"Could not delete segment file {store.segment_path(meta)}: {e}")

    async def _concatenate(
        self, store: SegmentStore, ordered: list[SegmentMeta], tmp: Path
    ) -> int:
        written = 0
        async with aiofiles.open(tmp, "wb") as out:
            for meta in ordered:
                if self.cancel_token:
                    self.cancel_token.raise_if_cancelled(f"merge of '{store.file_path.name}'")
                async with aiofiles.open(store.segment_path(meta), "rb") as src:
                    await src.seek(HEADER_SIZE, os.SEEK_SET)
                    while True:
                        buf = await src.read(COPY_BUFFER_SIZE)
                        if not buf:
                            break
                        await out.write(buf)
                        written += len(buf)
        return written
