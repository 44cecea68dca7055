"""
On-disk segment files: a fixed-size binary header describing the byte range,
followed by the payload bytes fetched so far.
"""

import logging
import os
import re
import struct
from pathlib import Path

import aiofiles
import aiofiles.os

from segdl.exceptions import PlannerError
from segdl.models.segment import SegmentMeta

log = logging.getLogger(__name__)

# index: float32, start / end / cursor: int64, little-endian, no padding
HEADER_FORMAT = "<fqqq"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


def encode_header(meta: SegmentMeta) -> bytes:
    return struct.pack(HEADER_FORMAT, meta.index, meta.start, meta.end, meta.cursor)


def decode_header(data: bytes) -> SegmentMeta:
    index, start, end, cursor = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
    return SegmentMeta(index=index, start=start, end=end, cursor=cursor)


class SegmentStore:
    """
    Maps segments of one final file to ``<final name>.part<index>`` files.

    The store owns these files for the duration of a job: it creates them with
    their header, reopens them for appending on resume, recovers their progress
    from disk, and deletes them when asked.
    """

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)
        self.directory = self.file_path.parent
        self._pattern = re.compile(
            re.escape(self.file_path.name) + r"\.part(-?\d+(?:\.\d+)?)$"
        )

    def segment_path(self, meta: SegmentMeta) -> Path:
        return self.index_path(meta.index)

    def index_path(self, index: float) -> Path:
        return self.directory / f"{self.file_path.name}.part{index:f}"

    def scan(self) -> list[SegmentMeta]:
        """
        Recovers every segment of this file found on disk, sorted by index.

        The cursor is derived from the file size, so it reflects every byte
        written up to a crash even though the header is never rewritten.

        Raises:
            PlannerError: If the directory or a segment header cannot be read.
        """
        try:
            entries = list(os.scandir(self.directory))
        except OSError as e:
            raise PlannerError(f"Cannot list '{self.directory}': {e}") from e

        metas = []
        for entry in entries:
            if not entry.is_file() or not self._pattern.match(entry.name):
                continue
            metas.append(self.read_meta(Path(entry.path)))

        metas.sort(key=lambda m: m.index)
        return metas

    def read_meta(self, path: Path) -> SegmentMeta:
        """Parses the header of a segment file and derives its live cursor."""
        try:
            with open(path, "rb") as f:
                header = f.read(HEADER_SIZE)
            size = path.stat().st_size
        except OSError as e:
            raise PlannerError(f"Cannot read segment file '{path}': {e}") from e

        if len(header) < HEADER_SIZE:
            raise PlannerError(
                f"Segment file '{path}' is broken (header is {len(header)} bytes); "
                "delete all its .part files and download again."
            )
        meta = decode_header(header)
        meta.cursor = meta.start + size - HEADER_SIZE
        return meta

    async def open_for_append(self, meta: SegmentMeta):
        """
        Opens the segment file positioned after its last byte.

        A segment that starts from scratch (``cursor == start``) gets a fresh
        file with its header; any stale content is discarded.
        """
        path = self.segment_path(meta)
        if meta.cursor == meta.start:
            f = await aiofiles.open(path, "wb")
            await f.write(encode_header(meta))
            await f.flush()
            return f
        return await aiofiles.open(path, "ab")

    async def remove(self, meta: SegmentMeta) -> None:
        await aiofiles.os.remove(self.segment_path(meta))

    def remove_sync(self, meta: SegmentMeta) -> None:
        path = self.segment_path(meta)
        path.unlink()
        log.debug(f"Removed segment file {path.name}")
