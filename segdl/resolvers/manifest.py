"""
Loads items from a local JSON manifest: one serialised MediaData object,
or a list of them for a playlist.
"""

import json
from pathlib import Path

import aiofiles
from pydantic import ValidationError

from segdl.exceptions import ResolverError
from segdl.models.media import MediaData

from .base import ResolveOptions, Resolver


class ManifestResolver(Resolver):
    async def resolve(self, url: str, options: ResolveOptions) -> list[MediaData]:
        path = Path(url).expanduser()
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                raw = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise ResolverError(f"Cannot read manifest '{path}': {e}") from e

        entries = raw if isinstance(raw, list) else [raw]
        try:
            return [MediaData.model_validate(entry) for entry in entries]
        except ValidationError as e:
            raise ResolverError(f"Invalid manifest '{path}':\n{e}") from e
