"""
Rich Live view of a download session: a header line with the session clock and
current speed, a counters panel with the overall item bar, and one bar per part
while it downloads.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Optional

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table
from rich.text import Text

from segdl import __version__
from segdl.utils.formatting import format_duration, format_speed

MAX_DESCRIPTION = 55


@dataclass
class SessionCounters:
    total_items: int = 0
    items_done: int = 0
    items_skipped: int = 0
    parts_done: int = 0
    parts_failed: int = 0
    active_parts: int = 0
    peak_concurrent: int = 0
    current_speed: float = 0.0
    peak_speed: float = 0.0


class ProgressManager:
    """
    Owns the live display. Parts register a bar with :meth:`add_part_task`,
    advance it as bytes land on disk and drop it with :meth:`remove_task`;
    the session reports whole items through :meth:`item_finished` and
    :meth:`increment_skipped`.

    With ``silent`` set nothing is drawn, but the counters are still kept for
    the summary panel.
    """

    def __init__(self, console: Console, silent: bool = False):
        self.console = console
        self.silent = silent
        self.counters = SessionCounters()

        self.parts = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=24),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
        )
        self.items = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("{task.completed}/{task.total} items"),
            console=console,
        )

        self._items_task: Optional[TaskID] = None
        self._part_tasks: set[TaskID] = set()
        self._started_at: Optional[float] = None
        self._layout: Optional[Layout] = None
        self._live: Optional[Live] = None

    # Session-level updates

    def initialize_session(self, total_items: Optional[int]) -> None:
        self.counters.total_items = total_items or 0
        self._started_at = time.monotonic()
        if not self.silent:
            self._items_task = self.items.add_task("Items", total=total_items)

    def add_to_total(self, count: int) -> None:
        """Grows the item total as playlists resolve."""
        self.counters.total_items += count
        if self._items_task is not None:
            self.items.update(self._items_task, total=self.counters.total_items)

    def update_speed_stats(self, current_speed: float, peak_speed: float) -> None:
        self.counters.current_speed = current_speed
        self.counters.peak_speed = peak_speed

    def item_finished(self) -> None:
        self.counters.items_done += 1
        self._refresh_items()

    def increment_skipped(self, count: int = 1) -> None:
        self.counters.items_skipped += count
        self._refresh_items()

    def get_statistics(self) -> dict:
        return asdict(self.counters)

    # Per-part bars

    def add_part_task(
        self, description: str, total_size: int, file_size_str: str = ""
    ) -> Optional[TaskID]:
        """Adds a bar for one part; an unknown size (0) shows an indeterminate bar."""
        self.counters.active_parts += 1
        self.counters.peak_concurrent = max(
            self.counters.peak_concurrent, self.counters.active_parts
        )
        if self.silent:
            return None

        if len(description) > MAX_DESCRIPTION:
            description = description[: MAX_DESCRIPTION - 3] + "..."
        if file_size_str:
            description = f"{description} [dim]{file_size_str}[/dim]"
        task_id = self.parts.add_task(description, total=total_size or None)
        self._part_tasks.add(task_id)
        self._redraw()
        return task_id

    def advance_task(self, task_id: Optional[TaskID], advance: int) -> None:
        if task_id is not None:
            self.parts.advance(task_id, advance)

    def remove_task(self, task_id: Optional[TaskID], success: bool = True) -> None:
        self.counters.active_parts = max(self.counters.active_parts - 1, 0)
        if success:
            self.counters.parts_done += 1
        else:
            self.counters.parts_failed += 1
        if task_id in self._part_tasks:
            self.parts.remove_task(task_id)
            self._part_tasks.discard(task_id)
        self._redraw()

    # Rendering

    def _refresh_items(self) -> None:
        if self._items_task is not None:
            done = self.counters.items_done + self.counters.items_skipped
            self.items.update(self._items_task, completed=done)
        self._redraw()

    def _header(self) -> Panel:
        elapsed = time.monotonic() - self._started_at if self._started_at else 0
        text = Text()
        text.append(f"segdl {__version__}", style="bold cyan")
        text.append("  │  ", style="dim")
        text.append(f"elapsed {format_duration(elapsed)}", style="yellow")
        if self.counters.current_speed > 0:
            text.append("  │  ", style="dim")
            text.append(f"⚡ {format_speed(self.counters.current_speed)}", style="magenta")
        return Panel(text, border_style="cyan")

    def _counters_panel(self) -> Panel:
        c = self.counters
        grid = Table.grid(padding=(0, 2))
        for _ in range(2):
            grid.add_column(style="bold cyan", justify="right")
            grid.add_column()
        grid.add_row(
            "Parts done:", f"[green]{c.parts_done}[/green]",
            "Parts failed:", f"[red]{c.parts_failed}[/red]",
        )
        grid.add_row(
            "Items skipped:", f"[yellow]{c.items_skipped}[/yellow]",
            "Active parts:", f"[cyan]{c.active_parts}[/cyan]",
        )
        if c.peak_speed > 0:
            grid.add_row(
                "Peak parts:", f"[magenta]{c.peak_concurrent}[/magenta]",
                "Peak speed:", f"[magenta]{format_speed(c.peak_speed)}[/magenta]",
            )
        body = Group(grid, self.items) if self._items_task is not None else grid
        return Panel(body, title="[bold]📊 Session[/bold]", border_style="blue")

    def _parts_panel(self) -> Panel:
        if not self._part_tasks:
            return Panel(
                Text("Resolving...", style="dim italic", justify="center"),
                title="[bold]📥 Parts[/bold]",
                border_style="green",
            )
        return Panel(
            self.parts,
            title=f"[bold]📥 Parts ({len(self._part_tasks)})[/bold]",
            border_style="green",
        )

    def _redraw(self) -> None:
        if self.silent or self._layout is None:
            return
        self._layout["header"].update(self._header())
        self._layout["counters"].update(self._counters_panel())
        self._layout["parts"].update(self._parts_panel())

    async def __aenter__(self) -> "ProgressManager":
        if self.silent:
            return self
        self._layout = Layout()
        self._layout.split_column(
            Layout(name="header", size=3),
            Layout(name="counters", size=7),
            Layout(name="parts", ratio=1),
        )
        self._redraw()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=12,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._live is not None:
            # let the last refresh show the finished bars
            await asyncio.sleep(0.2)
            self._live.stop()
