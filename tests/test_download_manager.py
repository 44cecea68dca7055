"""Tests for source expansion, item selection and session bookkeeping."""

import asyncio

from segdl.core.download_manager import DownloadManager
from segdl.core.stream_dispatcher import LoadResult
from segdl.exceptions import StreamNotFoundError
from segdl.models.config import DownloadConfig
from segdl.models.media import MediaData
from segdl.models.stats import DownloadStats
from segdl.resolvers import Resolver, ResolverRegistry

from .conftest import FakeClient


class PlaylistResolver(Resolver):
    async def resolve(self, url, options):
        return [MediaData(url=f"{url}#{i}", title=f"item {i}") for i in range(1, 6)]


class FakeDispatcher:
    """Answers each title with a canned result or error."""

    def __init__(self, outcomes=None):
        self.stats = DownloadStats()
        self.outcomes = outcomes or {}
        self.loaded = []

    async def load(self, item):
        self.loaded.append(item.title)
        outcome = self.outcomes.get(item.title, LoadResult.DOWNLOADED)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_manager(dispatcher=None, **config):
    config = DownloadConfig(**config)
    registry = ResolverRegistry(FakeClient())
    registry.register("example", PlaylistResolver())
    return DownloadManager(config, registry, dispatcher or FakeDispatcher())


def test_url_list_files_are_expanded_and_deduplicated(tmp_path):
    url_file = tmp_path / "urls.txt"
    url_file.write_text(
        "https://a.example.com/1\n# comment\n\nhttps://a.example.com/2\n", encoding="utf-8"
    )
    manifest = tmp_path / "items.json"
    manifest.write_text("[]", encoding="utf-8")

    manager = make_manager(
        source_urls=[str(url_file), "https://a.example.com/1", str(manifest)]
    )

    assert manager.expand_sources() == [
        "https://a.example.com/1",
        "https://a.example.com/2",
        str(manifest),
    ]


def test_without_playlist_only_the_first_item_is_kept():
    items = asyncio.run(make_manager().resolve("https://www.example.com/list"))
    assert [item.title for item in items] == ["item 1"]


def test_playlist_selection_expression():
    manager = make_manager(playlist=True, items="2,4-5")
    items = asyncio.run(manager.resolve("https://www.example.com/list"))
    assert [item.title for item in items] == ["item 2", "item 4", "item 5"]


def test_playlist_window():
    manager = make_manager(playlist=True, item_start=4)
    items = asyncio.run(manager.resolve("https://www.example.com/list"))
    assert [item.title for item in items] == ["item 4", "item 5"]


def test_session_counts_every_outcome():
    dispatcher = FakeDispatcher(
        {
            "item 2": LoadResult.SKIPPED,
            "item 3": StreamNotFoundError("no stream"),
            "item 4": LoadResult.DELEGATED,
        }
    )
    manager = make_manager(
        dispatcher,
        playlist=True,
        source_urls=["https://www.example.com/list", "not a url"],
    )

    stats = asyncio.run(manager.execute_downloads())

    assert sorted(dispatcher.loaded) == ["item 1", "item 2", "item 3", "item 4", "item 5"]
    assert stats.items_downloaded == 2
    assert stats.items_skipped_exists == 1
    assert stats.items_delegated == 1
    # one failed item plus the unresolvable URL
    assert stats.items_failed == 2
