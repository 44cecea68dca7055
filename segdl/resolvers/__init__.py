"""
Resolver Layer.

Maps a URL to the resolver registered for its site and returns the resolved
items with their derived stream fields filled in. URLs of unknown sites fall
back to :class:`DirectResolver`; local ``.json`` files are read as manifests.
"""

import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from segdl.exceptions import ResolverError, SegdlError
from segdl.models.media import MediaData
from segdl.net.client import HttpClient

from .base import ResolveOptions, Resolver
from .direct import DirectResolver
from .manifest import ManifestResolver

log = logging.getLogger(__name__)

# Hosts whose site key is not their second-level domain
KNOWN_HOSTS = {
    "haokan.baidu.com": "haokan",
    "xhslink.com": "xiaohongshu",
}

DOMAIN_PATTERN = re.compile(
    r"([a-z0-9][-a-z0-9]{0,62})\."
    r"(com\.cn|com\.hk|"
    r"cn|com|net|edu|gov|biz|org|info|pro|name|xxx|xyz|be|"
    r"me|top|cc|tv|tt|vn)"
)


def site_key(host: str) -> str:
    """``www.example.com`` -> ``example``; empty when the host is not recognised."""
    host = host.lower()
    if host in KNOWN_HOSTS:
        return KNOWN_HOSTS[host]
    match = DOMAIN_PATTERN.search(host)
    return match.group(1) if match else ""


class ResolverRegistry:
    """Site key -> resolver table with a direct-download fallback."""

    def __init__(self, client: HttpClient, fallback: Optional[Resolver] = None):
        self._resolvers: dict[str, Resolver] = {}
        self.fallback = fallback or DirectResolver(client)
        self.manifest = ManifestResolver()

    def register(self, site: str, resolver: Resolver) -> None:
        """Registers ``resolver`` for ``site``; the first registration wins."""
        self._resolvers.setdefault(site, resolver)

    def get(self, site: str) -> Resolver:
        return self._resolvers.get(site, self.fallback)

    async def dispatch(self, url: str, options: ResolveOptions) -> list[MediaData]:
        """
        Resolves ``url`` into items ready for download.

        Raises:
            ResolverError: If the URL is invalid or its resolver failed.
        """
        url = url.strip()
        if url.lower().endswith(".json") and Path(url).expanduser().is_file():
            resolver = self.manifest
        else:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ResolverError(f"Invalid URL: {url}")
            site = site_key(parsed.hostname or "")
            resolver = self.get(site)
            log.debug(f"Resolving {url} with {type(resolver).__name__} (site '{site}')")

        try:
            items = await resolver.resolve(url, options)
        except ResolverError:
            raise
        except (SegdlError, OSError, ValueError) as e:
            raise ResolverError(f"Failed to resolve {url}: {e}") from e

        if not items:
            raise ResolverError(f"Nothing to download at {url}")
        for item in items:
            item.fill_streams_data()
        return items


__all__ = [
    "DirectResolver",
    "ManifestResolver",
    "ResolveOptions",
    "Resolver",
    "ResolverRegistry",
    "site_key",
]
