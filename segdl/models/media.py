"""
Pydantic models describing what a resolver hands to the downloader:
items, their quality streams, and the byte-addressable parts of each stream.
"""

from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

# Containers that are re-muxed into mp4 when parts of a video are merged
REMUX_TO_MP4 = ("ts", "flv", "f4v")


class DataType(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"


class Part(BaseModel):
    """One retrievable byte stream with a declared size and extension."""

    model_config = ConfigDict(frozen=True)

    url: str
    size: int = 0
    ext: str = ""


class CaptionPart(Part):
    """A side file (subtitles, danmaku...) with an optional content transform."""

    transform: Optional[Callable[[bytes], bytes]] = Field(default=None, exclude=True)


class Stream(BaseModel):
    """A named quality variant, e.g. '1080P', made of one or more parts."""

    id: str = ""
    quality: str = ""
    parts: list[Part] = Field(default_factory=list)
    size: int = 0
    ext: str = ""
    need_mux: bool = False


class MediaData(BaseModel):
    """A single resolved item (one video, one image set, one audio file)."""

    url: str
    site: str = ""
    title: str = ""
    type: DataType = DataType.VIDEO
    streams: dict[str, Stream] = Field(default_factory=dict)
    captions: dict[str, Optional[CaptionPart]] = Field(default_factory=dict)

    def fill_streams_data(self) -> None:
        """Fills stream ids, qualities, extensions and sizes left empty by a resolver."""
        for stream_id, stream in self.streams.items():
            stream.id = stream_id
            if not stream.quality:
                stream.quality = stream_id

            if self.type == DataType.VIDEO and not stream.ext and stream.parts:
                ext = stream.parts[0].ext
                stream.ext = "mp4" if ext in REMUX_TO_MP4 else ext
            elif not stream.ext and stream.parts:
                stream.ext = stream.parts[0].ext

            if stream.size > 0:
                continue
            stream.size = sum(part.size for part in stream.parts)

    def sorted_streams(self) -> list[Stream]:
        """Returns the streams ordered from the largest to the smallest."""
        return sorted(self.streams.values(), key=lambda s: s.size, reverse=True)
