"""
The main orchestrator for handling URLs, resolving them into items and
managing the download queue.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from rich.markup import escape

from segdl.cli.progress_manager import ProgressManager
from segdl.exceptions import DownloadCancelledError, ResolverError, SegdlError
from segdl.models.config import DownloadConfig
from segdl.models.media import MediaData
from segdl.models.stats import DownloadStats
from segdl.resolvers import ResolveOptions, ResolverRegistry
from segdl.utils.cancellation import CancellationToken
from segdl.utils.selection import select_items
from segdl.utils.structured_logger import SessionLogger

from .stream_dispatcher import LoadResult, StreamDispatcher

log = logging.getLogger(__name__)


class DownloadManager:
    """Orchestrates the entire download session."""

    def __init__(
        self,
        config: DownloadConfig,
        registry: ResolverRegistry,
        dispatcher: StreamDispatcher,
        progress_manager: Optional[ProgressManager] = None,
        session_events: Optional[SessionLogger] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config
        self.registry = registry
        self.dispatcher = dispatcher
        self.stats: DownloadStats = dispatcher.stats
        self.progress_manager = progress_manager
        self.session_events = session_events
        self.cancel_token = cancel_token or CancellationToken()
        self.semaphore = asyncio.Semaphore(config.max_workers)
        self.start_time = time.monotonic()

    def expand_sources(self) -> list[str]:
        """
        Returns the unique URLs to process. A source naming a local text file is
        replaced by the URLs it lists; ``.json`` files are kept as manifests.
        """
        expanded = []
        for source in self.config.source_urls:
            path = Path(source).expanduser()
            if path.is_file() and path.suffix.lower() != ".json":
                log.info(f"Reading URLs from file: [dim]{escape(source)}[/dim]")
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        expanded.extend(
                            line.strip()
                            for line in f
                            if line.strip() and not line.startswith("#")
                        )
                except (IOError, UnicodeDecodeError) as e:
                    log.error(f"[red]Could not read file {escape(source)}: {e}[/red]")
            else:
                expanded.append(source)

        unique = list(dict.fromkeys(expanded))
        if len(unique) < len(expanded):
            log.info(f"Removed {len(expanded) - len(unique)} duplicate URLs.")
        return unique

    async def execute_downloads(self) -> DownloadStats:
        """Processes all URLs from the config and executes downloads."""
        urls = self.expand_sources()
        if not urls:
            log.warning("[yellow]No source URLs to process. Nothing to do.[/yellow]")
            return self.stats

        if self.session_events:
            self.session_events.session_started(
                len(urls), self.config.thread_number, self.config.max_workers
            )
        if self.progress_manager:
            self.progress_manager.initialize_session(total_items=None)

        await asyncio.gather(*(self._process_url(url) for url in urls))

        if self.session_events:
            self.session_events.session_completed(
                time.monotonic() - self.start_time,
                self.stats.items_downloaded,
                self.stats.items_failed,
                self.stats.items_skipped_exists,
                self.stats.total_size_downloaded / (1024 * 1024),
            )
        return self.stats

    async def resolve(self, url: str) -> list[MediaData]:
        """Resolves ``url`` and applies the playlist item selection."""
        items = await self.registry.dispatch(url, ResolveOptions.from_config(self.config))
        if self.config.playlist:
            return select_items(
                items, self.config.items, self.config.item_start, self.config.item_end
            )
        if len(items) > 1:
            log.info(
                f"{escape(url)} holds {len(items)} items; only the first is downloaded "
                "(use --playlist for all of them)."
            )
        return items[:1]

    async def _process_url(self, url: str) -> None:
        try:
            items = await self.resolve(url)
        except ResolverError as e:
            self.stats.items_failed += 1
            log.error(f"[red]✗ Error processing URL {escape(url)}: {escape(str(e))}[/red]")
            return

        if self.progress_manager:
            self.progress_manager.add_to_total(len(items))
        await asyncio.gather(*(self._process_item(item) for item in items))

    async def _process_item(self, item: MediaData) -> None:
        async with self.semaphore:
            if self.cancel_token.is_cancelled():
                return
            title = escape(item.title)
            try:
                result = await self.dispatcher.load(item)
            except DownloadCancelledError:
                log.warning(f"  [yellow]⚠ Cancelled:[/] {title} (progress kept)")
                self._item_completed(item, "cancelled")
                return
            except (SegdlError, OSError) as e:
                self.stats.items_failed += 1
                log.error(f"  [red]✗ Failed:[/] {title} ({escape(str(e))})")
                self._item_completed(item, "failed", str(e))
                return

            if result == LoadResult.SKIPPED:
                self.stats.items_skipped_exists += 1
                if self.progress_manager:
                    self.progress_manager.increment_skipped()
            elif result == LoadResult.DELEGATED:
                self.stats.items_delegated += 1
            else:
                self.stats.items_downloaded += 1
                log.info(f"  [green]✓ Downloaded:[/] {title}")
            self._item_completed(item, result.value)

    def _item_completed(self, item: MediaData, status: str, error: Optional[str] = None) -> None:
        if self.progress_manager and status != LoadResult.SKIPPED.value:
            self.progress_manager.item_finished()
        if self.session_events:
            self.session_events.item_completed(item.title, status, error)
