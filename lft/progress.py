"""
Progress rendering: a rich live bar driven by TransferStats snapshots.

Usage::

    view = ProgressView(direction="↑ SEND")
    view.start()
    for event in controller.events...:
        view.handle(event)
    view.stop()

Speed and ETA come from the snapshot itself (the smoothed estimator),
not from rich's own column calculations.
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)

from .events import Event, OperationCompleted, StatsUpdated, StatusMessage
from .stats import TransferStats


class ProgressView:
    """Single-bar live display of one session."""

    def __init__(self, direction: str = "→", console: Console | None = None) -> None:
        self.direction = direction
        self.console = console or Console(stderr=True)
        self.last_stats: TransferStats | None = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn(
                f"[bold cyan]{direction}[/]"
                " ([progress.percentage]{task.fields[pct]:>5.1f}%)"
            ),
            BarColumn(bar_width=None),
            DownloadColumn(binary_units=True),
            TextColumn("[green]{task.fields[speed]:.2f} MiB/s"),
            TextColumn("[yellow]{task.fields[eta]}"),
            TextColumn("{task.fields[files]}"),
            TextColumn("[dim]{task.fields[filename]}"),
            console=self.console,
            expand=True,
        )
        self._task: TaskID | None = None

    def start(self) -> None:
        self._progress.start()
        self._task = self._progress.add_task(
            "transfer", total=None,
            pct=0.0, speed=0.0, eta="", files="", filename="",
        )

    def stop(self) -> None:
        self._progress.stop()

    def handle(self, event: Event) -> None:
        if isinstance(event, StatsUpdated):
            self.render(event.stats)
        elif isinstance(event, StatusMessage):
            self._progress.console.print(f"[bold]\\[lft][/] {event.text}")
        elif isinstance(event, OperationCompleted) and not event.ok:
            self._progress.console.print(f"[bold red]\\[lft] {event.role} failed:[/] {event.error}")

    def render(self, stats: TransferStats) -> None:
        self.last_stats = stats
        if self._task is None:
            return
        self._progress.update(
            self._task,
            total=stats.total_bytes or None,
            completed=stats.transferred_bytes,
            pct=stats.progress,
            speed=stats.current_speed,
            eta=stats.estimated_time,
            files=f"{stats.completed_files}/{stats.total_files} files",
            filename=stats.current_file,
        )


class NullView:
    """Drop-in no-op replacement when --quiet is set."""

    last_stats: TransferStats | None = None

    def start(self) -> None: ...
    def stop(self) -> None: ...

    def handle(self, event: Event) -> None:
        if isinstance(event, StatsUpdated):
            self.last_stats = event.stats
