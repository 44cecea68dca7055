"""
Combines the finished part files of a multi-part video with ffmpeg.
"""

import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from segdl.exceptions import MergeError

log = logging.getLogger(__name__)


def find_ffmpeg() -> Optional[str]:
    """Returns an ``ffmpeg`` next to the working directory first, then from PATH."""
    name = "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"
    local = Path(".") / name
    if local.is_file():
        return str(local.resolve())
    return shutil.which(name)


def _concat_line(path: Path) -> str:
    escaped = str(path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class Muxer:
    """
    Runs ffmpeg as a subprocess to produce ``output_path`` from ``inputs``.

    The result is written as ``<name>.download.<ext>`` and renamed when ffmpeg
    exits cleanly. Inputs and the concat list are deleted only on success.
    """

    def __init__(self, ffmpeg: Optional[str] = None):
        self.ffmpeg = ffmpeg

    def _executable(self) -> str:
        ffmpeg = self.ffmpeg or find_ffmpeg()
        if not ffmpeg:
            raise MergeError("ffmpeg was not found in the current directory or on PATH")
        return ffmpeg

    @staticmethod
    def temp_output(output_path: Path) -> Path:
        return output_path.with_name(f"{output_path.stem}.download{output_path.suffix}")

    async def merge_same_extension(self, inputs: list[Path], output_path: Path) -> None:
        """Muxes inputs stream-copied into one container (audio + video, or ts/flv parts)."""
        tmp = self.temp_output(output_path)
        args = ["-y"]
        for path in inputs:
            args += ["-i", str(path)]
        args += ["-c:v", "copy", "-c:a", "copy", str(tmp)]
        await self._run(args, tmp, output_path)
        await self._cleanup(inputs)

    async def merge_to_mp4(self, inputs: list[Path], output_path: Path) -> None:
        """Concatenates mp4 parts through the concat demuxer."""
        tmp = self.temp_output(output_path)
        list_path = output_path.with_name(f"{output_path.stem}.txt")
        async with aiofiles.open(list_path, "w", encoding="utf-8") as f:
            for path in inputs:
                await f.write(_concat_line(path))

        args = [
            "-y", "-f", "concat", "-safe", "0", "-i", str(list_path),
            "-c", "copy", "-bsf:a", "aac_adtstoasc", str(tmp),
        ]
        await self._run(args, tmp, output_path)
        await self._cleanup([*inputs, list_path])

    async def merge(
        self, inputs: list[Path], output_path: Path, ext: str, need_mux: bool
    ) -> None:
        if need_mux or ext != "mp4":
            await self.merge_same_extension(inputs, output_path)
        else:
            await self.merge_to_mp4(inputs, output_path)

    async def _run(self, args: list[str], tmp: Path, output_path: Path) -> None:
        cmd = [self._executable(), *args]
        log.debug(f"Running {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MergeError(f"Cannot start ffmpeg: {e}") from e

        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise MergeError(
                f"ffmpeg exited with status {proc.returncode} while writing "
                f"'{output_path.name}'\n{stderr.decode('utf-8', errors='replace').strip()}"
            )

        try:
            await aiofiles.os.replace(tmp, output_path)
        except OSError as e:
            raise MergeError(f"Cannot rename '{tmp}' to '{output_path}': {e}") from e

    async def _cleanup(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                log.warning(f"Could not delete {os.fspath(path)}: {e}")
