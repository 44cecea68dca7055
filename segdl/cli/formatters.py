"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from segdl.models.config import DownloadConfig
from segdl.models.media import MediaData
from segdl.models.stats import DownloadStats
from segdl.utils.formatting import format_duration, format_size, format_speed


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your config file (`segdl --show-config`).",
            "• Run `segdl init --force` to write a fresh default config.",
        ],
        "ResolverError": [
            "• Check that the URL is complete and reachable in a browser.",
            "• Some sites need a cookie; pass it with `--cookie`.",
        ],
        "StreamNotFoundError": [
            "• Run `segdl info <URL>` to list the available streams.",
            "• Drop `--stream` or `--audio-only` to take the best stream.",
        ],
        "PlannerError": [
            "• A leftover .part file is unreadable.",
            "• Delete the .part files of this download and start again.",
        ],
        "SegmentsFailedError": [
            "• Run the same command again: finished bytes are kept on disk.",
            "• Raise `--retry` or lower `--threads` if the server throttles.",
        ],
        "MergeError": [
            "• Make sure ffmpeg is installed (`segdl diagnose`).",
            "• Check free disk space in the output directory.",
        ],
        "DelegateError": [
            "• Check that aria2c runs with --enable-rpc.",
            "• Verify aria2_addr and aria2_token in your config.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Try reducing the number of `--workers` or `--threads`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config: DownloadConfig):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key in sorted(DownloadConfig.get_ini_keys()):
        value = getattr(config, key)
        if key in ("cookie", "aria2_token") and value:
            value = "********"
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_media_info(data: MediaData):
    """Lists the streams of a resolved item, largest first."""
    console = Console()
    table = Table(box=box.ROUNDED, title=f"[bold]{data.title}[/bold]")
    table.add_column("Stream", style="bold magenta", no_wrap=True)
    table.add_column("Quality")
    table.add_column("Parts", justify="right")
    table.add_column("Size", justify="right", style="cyan")
    table.add_column("Ext")

    for stream in data.sorted_streams():
        table.add_row(
            stream.id,
            stream.quality,
            str(len(stream.parts)),
            format_size(stream.size) if stream.size else "unknown",
            stream.ext,
        )
    console.print(table)

    details = f"[dim]Site:[/] {data.site or '-'}  [dim]Type:[/] {data.type.value}"
    captions = [name for name, caption in data.captions.items() if caption]
    if captions:
        details += f"  [dim]Captions:[/] {', '.join(captions)}"
    console.print(details)


def print_summary_panel(
    stats: DownloadStats, duration_s: float, progress_stats: dict[str, Any] | None = None
):
    """Displays the final summary of the download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.items_downloaded}[/bold green]"
    )
    if stats.items_skipped_exists > 0:
        stats_table.add_row(
            "○ Skipped:", f"[yellow]{stats.items_skipped_exists} (exists)[/yellow]"
        )
    if stats.items_delegated > 0:
        stats_table.add_row("→ Sent to aria2:", f"[cyan]{stats.items_delegated}[/cyan]")
    if stats.items_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.items_failed}[/bold red]")

    stats_table.add_row("", "")
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.total_size_downloaded)}[/cyan]"
    )

    avg_speed = stats.total_size_downloaded / duration_s if duration_s > 0 else 0
    stats_table.add_row(
        "Avg. Speed:", f"[magenta]{format_speed(avg_speed)}[/magenta]"
    )
    if stats.peak_speed_bps > 0:
        stats_table.add_row(
            "Peak Speed:",
            f"[magenta]{format_speed(stats.peak_speed_bps)}[/magenta]",
        )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if progress_stats:
        stats_table.add_row("", "")
        stats_table.add_row(
            "Peak Concurrent:",
            f"[green]{progress_stats.get('peak_concurrent', 0)}[/green]",
        )

    border_color = "red" if stats.items_failed else "green"
    console.print()
    console.print(
        Panel(
            stats_table,
            title="📥 [bold]Download Complete![/bold]",
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
