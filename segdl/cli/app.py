"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from segdl import __version__
from segdl.core.download_manager import DownloadManager
from segdl.core.stream_dispatcher import StreamDispatcher, select_stream
from segdl.exceptions import DelegateError, SegdlError
from segdl.media import Muxer, PartDownloader
from segdl.media.muxer import find_ffmpeg
from segdl.models.config import DownloadConfig
from segdl.models.stats import DownloadStats
from segdl.net.client import HttpClient
from segdl.net.delegate import Aria2Delegate
from segdl.resolvers import ResolveOptions, ResolverRegistry
from segdl.storage.config_manager import ConfigManager, default_config_dir
from segdl.utils.cancellation import CancellationToken
from segdl.utils.structured_logger import create_structured_logger

from .formatters import print_config, print_media_info, print_summary_panel
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("segdl")
log.setLevel("INFO")

app = typer.Typer(
    name="segdl",
    help=(
        "A resumable, multi-segment downloader for media and plain files. Use"
        " 'segdl <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


CONFIG_DIR = default_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Segmented downloader CLI"""
    if version:
        console.print(f"[bold]segdl[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    log.setLevel(log_level)

    if show_config:
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(CONFIG_FILE, config)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing config file without asking."
    ),
    output: str = typer.Option("", "-o", "--output", help="Default output directory."),
    threads: int = typer.Option(4, "-n", "--threads", help="Default segments per file."),
):
    """Write a config file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config({"output_path": output, "thread_number": threads})
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to download! Try: [cyan]segdl download <URL>[/cyan]")


def _read_urls_from_stdin() -> list[str]:
    """Reads URLs from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe URLs or redirect"
            " a file.[/yellow]"
        )
        raise typer.Exit(code=1)

    urls = [
        line.strip()
        for line in sys.stdin
        if line.strip() and not line.strip().startswith("#")
    ]
    if not urls:
        console.print("[yellow]⚠️  No valid URLs found in stdin.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Read {len(urls)} URLs from stdin.[/green]")
    return urls


@app.command(name="download")
def download_command(
    urls: list[str] | None = typer.Argument(  # noqa: B008
        None, help="URLs, JSON manifests, or text files listing URLs."
    ),
    # --- Output ---
    output_path: str | None = typer.Option(
        None, "-o", "--output", help="Directory to save files into."
    ),
    output_name: str | None = typer.Option(
        None, "-O", "--name", help="File name to use instead of the item title."
    ),
    file_name_length: int | None = typer.Option(
        None, "--name-length", help="Truncate file names to this many characters (0 = off)."
    ),
    # --- Stream selection ---
    stream: str | None = typer.Option(
        None, "-s", "--stream", help="Stream id to download (see 'segdl info')."
    ),
    audio_only: bool | None = typer.Option(
        None, "--audio-only/--no-audio-only", help="Download the best audio-only stream."
    ),
    caption: bool | None = typer.Option(
        None, "--caption/--no-caption", help="Also download captions."
    ),
    # --- Requests ---
    refer: str | None = typer.Option(None, "--refer", help="Referer header to send."),
    cookie: str | None = typer.Option(None, "-c", "--cookie", help="Cookie header to send."),
    user_agent: str | None = typer.Option(None, "--user-agent", help="User-Agent to send."),
    retry_times: int | None = typer.Option(
        None, "-r", "--retry", help="Attempts per request or chunk."
    ),
    # --- Segment engine ---
    thread_number: int | None = typer.Option(
        None, "-n", "--threads", help="Concurrent segments per file."
    ),
    chunk_size_mb: int | None = typer.Option(
        None, "--chunk-size", help="Request size in MiB within a segment (0 = whole range)."
    ),
    multi_thread: bool | None = typer.Option(
        None, "--multi-thread/--single-thread", help="Use the segmented engine."
    ),
    # --- Delegate ---
    use_aria2_rpc: bool | None = typer.Option(
        None, "--aria2/--no-aria2", help="Send downloads to aria2 instead."
    ),
    # --- Playlist ---
    playlist: bool = typer.Option(
        False, "-p", "--playlist", help="Download every selected item of a playlist."
    ),
    items: str = typer.Option(
        "", "-i", "--items", help="Playlist items to download, e.g. '1,5,6,8-10'."
    ),
    item_start: int = typer.Option(1, "--item-start", help="First playlist item."),
    item_end: int = typer.Option(0, "--item-end", help="Last playlist item (0 = last)."),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of items downloaded at the same time."
    ),
    silent: bool | None = typer.Option(
        None, "--silent/--no-silent", help="Hide the live progress display."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read URLs from standard input, one URL per line."
    ),
):
    """Download one or more URLs."""
    if stdin:
        if urls:
            console.print(
                "[yellow]⚠️  Both URLs and --stdin provided. Using --stdin only.[/yellow]"
            )
        urls = _read_urls_from_stdin()
    elif not urls:
        console.print(
            "[red]✗ No URLs provided.[/red] "
            "Use: [cyan]segdl download <URL>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    cli_options = {
        "source_urls": urls,
        "output_path": output_path,
        "output_name": output_name,
        "file_name_length": file_name_length,
        "stream": stream,
        "audio_only": audio_only,
        "caption": caption,
        "refer": refer,
        "cookie": cookie,
        "user_agent": user_agent,
        "retry_times": retry_times,
        "thread_number": thread_number,
        "chunk_size_mb": chunk_size_mb,
        "multi_thread": multi_thread,
        "use_aria2_rpc": use_aria2_rpc,
        "playlist": playlist,
        "items": items,
        "item_start": item_start,
        "item_end": item_end,
        "max_workers": workers,
        "silent": silent,
    }
    config = ConfigManager(CONFIG_FILE).load_config(cli_options)

    async def _download_async() -> tuple[DownloadStats, float, dict]:
        cancel_token = CancellationToken()
        base_logger, download_events, session_events = create_structured_logger(
            Path(config.json_log_dir) if config.json_log_dir else None,
            enable_json=bool(config.json_log_dir),
        )
        async with HttpClient.from_config(config) as client, ProgressManager(
            console=console, silent=config.silent
        ) as progress_manager:
            dispatcher = StreamDispatcher(
                config,
                client,
                PartDownloader.from_config(config, client, download_events, cancel_token),
                muxer=Muxer(),
                stats=DownloadStats(),
                progress_manager=progress_manager,
            )
            manager = DownloadManager(
                config,
                ResolverRegistry(client),
                dispatcher,
                progress_manager,
                session_events,
                cancel_token,
            )
            console.print("[bold cyan]📥 Starting download session...[/bold cyan]")
            start_time = time.monotonic()
            try:
                stats = await manager.execute_downloads()
            except asyncio.CancelledError:
                cancel_token.cancel()
                raise
            finally:
                base_logger.close()
            return stats, time.monotonic() - start_time, progress_manager.get_statistics()

    stats, duration, progress_stats = asyncio.run(_download_async())
    print_summary_panel(stats, duration, progress_stats)
    if stats.items_failed:
        raise typer.Exit(code=1)


@app.command()
def info(
    url: str = typer.Argument(..., help="URL or JSON manifest to inspect."),
    playlist: bool = typer.Option(False, "-p", "--playlist", help="List every item."),
    cookie: str | None = typer.Option(None, "-c", "--cookie", help="Cookie header to send."),
    refer: str | None = typer.Option(None, "--refer", help="Referer header to send."),
):
    """List the items and streams a URL resolves to, without downloading."""
    config = ConfigManager(CONFIG_FILE).load_config(
        {"source_urls": [url], "playlist": playlist, "cookie": cookie, "refer": refer}
    )

    async def _info_async():
        async with HttpClient.from_config(config) as client:
            registry = ResolverRegistry(client)
            items = await registry.dispatch(url, ResolveOptions.from_config(config))
        for position, item in enumerate(items if playlist else items[:1], start=1):
            if playlist:
                console.print(f"\n[bold]#{position}[/bold]")
            print_media_info(item)
            best = select_stream(item)
            console.print(f"[dim]Default stream:[/] [magenta]{best.id}[/magenta]")

    asyncio.run(_info_async())


async def _check_aria2(config: DownloadConfig) -> bool:
    try:
        version = await Aria2Delegate.from_config(config).ping()
    except DelegateError as e:
        console.print(f"[red]✗ {e}[/red]")
        return False
    console.print(f"[green]✓[/] aria2 {version} reachable at [dim]{config.aria2_addr}[/dim]")
    return True


@app.command()
def diagnose():
    """Diagnose common configuration and tooling issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False

    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[yellow]○ No config file, defaults are used.[/] "
            "Run [cyan]segdl init[/cyan] to create one."
        )

    config = None
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration is valid and can be loaded.")
    except SegdlError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        issues_found = True

    if config and config.output_path and not Path(config.output_path).is_dir():
        console.print(f"[red]✗ Output directory does not exist: {config.output_path}[/red]")
        issues_found = True

    ffmpeg = find_ffmpeg()
    if ffmpeg:
        console.print(f"[green]✓[/] ffmpeg found at [dim]{ffmpeg}[/dim]")
    else:
        console.print(
            "[yellow]○ ffmpeg not found.[/] Multi-part videos cannot be merged."
        )

    if config and config.use_aria2_rpc and not asyncio.run(_check_aria2(config)):
        issues_found = True

    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
