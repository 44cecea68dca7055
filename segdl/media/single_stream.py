"""
Sequential download of one part into ``<final>.download``, resuming by byte
offset, for parts whose size is unknown or when segmenting is disabled.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles
import aiofiles.os

from segdl.exceptions import TransferError
from segdl.models.media import Part
from segdl.net.client import HttpClient
from segdl.utils.cancellation import CancellationToken
from segdl.utils.path import file_size, temp_path

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class SingleStreamDownloader:
    """Downloads a part over one connection, optionally in fixed-size chunks."""

    def __init__(
        self,
        client: HttpClient,
        retry_times: int = 3,
        retry_delay: float = 1.0,
        chunk_size: int = 0,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.client = client
        self.retry_times = max(retry_times, 1)
        self.retry_delay = retry_delay
        self.chunk_size = chunk_size
        self.cancel_token = cancel_token

    async def save(
        self,
        part: Part,
        file_path: Path,
        referer: str = "",
        on_bytes: Optional[ProgressCallback] = None,
    ) -> bool:
        """
        Saves ``part`` to ``file_path``.

        Returns:
            False if a complete file was already there, True after a download.

        Raises:
            TransferError: If a chunk still fails after ``retry_times`` attempts
                or the result does not match the declared part size.
            DownloadCancelledError: If the cancellation token fired.
        """
        size, exists = await asyncio.to_thread(file_size, file_path)
        if exists and size == part.size:
            log.info(f"{file_path.name} already exists, skipping")
            return False

        tmp = temp_path(file_path)
        offset, _ = await asyncio.to_thread(file_size, tmp)
        if part.size > 0 and offset > part.size:
            log.warning(f"'{tmp.name}' is larger than the remote file, restarting it")
            await aiofiles.os.remove(tmp)
            offset = 0
        if offset:
            log.debug(f"Resuming '{file_path.name}' from byte {offset}")
            if on_bytes:
                await on_bytes(offset)

        if part.size == 0 or offset < part.size:
            async with aiofiles.open(tmp, "ab" if offset else "wb") as sink:
                offset = await self._copy(part, sink, offset, referer, on_bytes)

        if part.size > 0 and offset != part.size:
            raise TransferError(
                part.url, offset, f"got {offset} of {part.size} bytes for '{file_path.name}'"
            )

        await aiofiles.os.replace(tmp, file_path)
        return True

    async def _copy(
        self,
        part: Part,
        sink,
        offset: int,
        referer: str,
        on_bytes: Optional[ProgressCallback],
    ) -> int:
        if self.chunk_size and part.size > 0:
            while offset < part.size:
                range_end = min(offset + self.chunk_size - 1, part.size - 1)
                offset = await self._fetch(part.url, sink, offset, range_end, referer, on_bytes)
            return offset
        return await self._fetch(part.url, sink, offset, None, referer, on_bytes)

    async def _fetch(
        self,
        url: str,
        sink,
        offset: int,
        range_end: Optional[int],
        referer: str,
        on_bytes: Optional[ProgressCallback],
    ) -> int:
        """Fetches ``[offset, range_end]`` (open-ended when None); returns the new offset."""
        for attempt in range(1, self.retry_times + 1):
            if self.cancel_token:
                self.cancel_token.raise_if_cancelled(f"download of {url}")
            headers = {"Referer": referer or url, "Accept-Encoding": "identity"}
            if range_end is not None:
                headers["Range"] = f"bytes={offset}-{range_end}"
            elif offset:
                headers["Range"] = f"bytes={offset}-"

            try:
                written = await self.client.stream_into(
                    url,
                    sink,
                    headers,
                    on_bytes,
                    self.cancel_token,
                    limit=None if range_end is None else range_end - offset + 1,
                )
            except TransferError as e:
                offset += e.written
                if range_end is not None and offset == range_end + 1:
                    log.debug(f"{e}; requested range of {url} is complete")
                    return offset
                if attempt >= self.retry_times:
                    raise
                log.debug(
                    f"Download attempt {attempt}/{self.retry_times} for {url} failed: "
                    f"{e}. Retrying in {self.retry_delay}s..."
                )
                await asyncio.sleep(self.retry_delay)
                continue

            offset += written
            if range_end is None or offset == range_end + 1:
                return offset
            if attempt >= self.retry_times:
                raise TransferError(
                    url, written, f"expected bytes up to {range_end}, got {offset - 1}"
                )
            log.debug(f"Short read from {url}, retrying from byte {offset}")
            await asyncio.sleep(self.retry_delay)
        return offset
