"""
The contract every resolver implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from segdl.models.config import DownloadConfig
from segdl.models.media import MediaData


@dataclass
class ResolveOptions:
    """What a resolver may need to know beyond the URL itself."""

    playlist: bool = False
    items: str = ""
    item_start: int = 1
    item_end: int = 0
    thread_number: int = 4
    cookie: str = ""

    @classmethod
    def from_config(cls, config: DownloadConfig) -> "ResolveOptions":
        return cls(
            playlist=config.playlist,
            items=config.items,
            item_start=config.item_start,
            item_end=config.item_end,
            thread_number=config.thread_number,
            cookie=config.cookie,
        )


class Resolver(ABC):
    """Turns a URL into one or more downloadable items."""

    @abstractmethod
    async def resolve(self, url: str, options: ResolveOptions) -> list[MediaData]:
        """Returns the items found at ``url``; a playlist yields several."""
