"""Tests for site lookup, the direct fallback and JSON manifests."""

import asyncio
import json

import pytest

from segdl.exceptions import ResolverError
from segdl.models.media import DataType, MediaData
from segdl.resolvers import (
    DirectResolver,
    ResolveOptions,
    Resolver,
    ResolverRegistry,
    site_key,
)

from .conftest import FakeClient


class StaticResolver(Resolver):
    def __init__(self, items):
        self.items = items
        self.urls = []

    async def resolve(self, url, options):
        self.urls.append(url)
        return self.items


@pytest.mark.parametrize(
    "host, key",
    [
        ("www.bilibili.com", "bilibili"),
        ("v.douyin.com", "douyin"),
        ("news.sina.com.cn", "sina"),
        ("haokan.baidu.com", "haokan"),
        ("xhslink.com", "xiaohongshu"),
        ("localhost", ""),
    ],
)
def test_site_key(host, key):
    assert site_key(host) == key


def test_registered_resolver_is_used_for_its_site():
    item = MediaData(url="https://www.example.com/v/1", title="one")
    resolver = StaticResolver([item])
    registry = ResolverRegistry(FakeClient())
    registry.register("example", resolver)
    registry.register("example", StaticResolver([]))

    items = asyncio.run(registry.dispatch("https://www.example.com/v/1", ResolveOptions()))

    assert items == [item]
    assert resolver.urls == ["https://www.example.com/v/1"]


def test_invalid_url_is_rejected():
    registry = ResolverRegistry(FakeClient())
    with pytest.raises(ResolverError, match="Invalid URL"):
        asyncio.run(registry.dispatch("ftp://example.com/file", ResolveOptions()))


def test_empty_result_is_an_error():
    registry = ResolverRegistry(FakeClient(), fallback=StaticResolver([]))
    with pytest.raises(ResolverError):
        asyncio.run(registry.dispatch("https://unknown.example.org/x", ResolveOptions()))


def test_direct_resolver_builds_one_stream():
    client = FakeClient(response_headers={"Content-Length": "4096", "Content-Type": "video/mp4"})
    registry = ResolverRegistry(client)

    (item,) = asyncio.run(
        registry.dispatch("https://cdn.example.net/media/My%20Clip.mp4", ResolveOptions())
    )

    assert item.title == "My Clip"
    assert item.type == DataType.VIDEO
    stream = item.streams["default"]
    assert stream.size == 4096
    assert stream.ext == "mp4"
    assert stream.parts[0].size == 4096


def test_direct_resolver_without_size_or_extension():
    client = FakeClient(response_headers={"Content-Type": "image/png"})

    (item,) = asyncio.run(
        DirectResolver(client).resolve("https://img.example.com/raw/abc", ResolveOptions())
    )

    assert item.type == DataType.IMAGE
    assert item.streams["default"].parts[0].size == 0
    assert item.streams["default"].parts[0].ext == "png"


def test_missing_content_type_fails_resolution():
    registry = ResolverRegistry(FakeClient(response_headers={"Content-Length": "10"}))
    with pytest.raises(ResolverError):
        asyncio.run(registry.dispatch("https://cdn.example.com/a.bin", ResolveOptions()))


def test_manifest_playlist_is_loaded_and_filled(tmp_path):
    manifest = tmp_path / "list.json"
    manifest.write_text(
        json.dumps(
            [
                {
                    "url": "https://site/1",
                    "title": "first",
                    "streams": {
                        "hd": {"parts": [{"url": "https://cdn/1.ts", "size": 5, "ext": "ts"}]}
                    },
                },
                {"url": "https://site/2", "title": "second", "type": "audio"},
            ]
        ),
        encoding="utf-8",
    )
    registry = ResolverRegistry(FakeClient())

    first, second = asyncio.run(registry.dispatch(str(manifest), ResolveOptions()))

    assert first.streams["hd"].id == "hd"
    assert first.streams["hd"].ext == "mp4"
    assert first.streams["hd"].size == 5
    assert second.type == DataType.AUDIO


def test_broken_manifest_is_a_resolver_error(tmp_path):
    manifest = tmp_path / "broken.json"
    manifest.write_text('{"title": "no url"}', encoding="utf-8")

    with pytest.raises(ResolverError, match="Invalid manifest"):
        asyncio.run(ResolverRegistry(FakeClient()).dispatch(str(manifest), ResolveOptions()))
