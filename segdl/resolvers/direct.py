"""
Fallback resolver for plain file URLs: one item, one stream, one part.
"""

import logging
import mimetypes
from urllib.parse import unquote, urlparse

from segdl.exceptions import RequestError
from segdl.models.media import DataType, MediaData, Part, Stream
from segdl.net.client import HttpClient
from segdl.utils.path import name_and_ext_from_url

from .base import ResolveOptions, Resolver

log = logging.getLogger(__name__)

DEFAULT_STREAM_ID = "default"


def data_type_for(content_type: str) -> DataType:
    if content_type.startswith("image/"):
        return DataType.IMAGE
    if content_type.startswith("audio/"):
        return DataType.AUDIO
    return DataType.VIDEO


class DirectResolver(Resolver):
    """
    Probes the URL's headers for size and content type.

    A server that does not report Content-Length still resolves, with size 0,
    which routes the part through the single-stream path.
    """

    def __init__(self, client: HttpClient):
        self.client = client

    async def resolve(self, url: str, options: ResolveOptions) -> list[MediaData]:
        headers = await self.client.headers(url)

        size = 0
        length = headers.get("Content-Length")
        if length and length.isdigit():
            size = int(length)
        else:
            log.debug(f"{url} did not report its size")

        content_type = (headers.get("Content-Type") or "").split(";")[0].strip()
        if not content_type:
            raise RequestError(url, "Content-Type does not exist")

        parsed = urlparse(url)
        name, ext = name_and_ext_from_url(unquote(parsed.path))
        if not ext:
            guessed = mimetypes.guess_extension(content_type) or ""
            ext = guessed.lstrip(".") or "bin"
        title = name or parsed.netloc

        part = Part(url=url, size=size, ext=ext)
        return [
            MediaData(
                url=url,
                site=parsed.netloc,
                title=title,
                type=data_type_for(content_type),
                streams={
                    DEFAULT_STREAM_ID: Stream(
                        id=DEFAULT_STREAM_ID, quality=content_type, parts=[part], size=size
                    )
                },
            )
        ]
