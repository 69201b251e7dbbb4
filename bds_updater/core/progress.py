"""Live progress display for downloads and reconciliation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog
from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.text import Text

from bds_updater.core.types import ItemStatus, ReconciliationAction
from bds_updater.core.utils import shorten_name

logger = structlog.get_logger()

SPINNER_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]

_STATUS_STYLES = {
    ItemStatus.pending: "dim",
    ItemStatus.processing: "cyan",
    ItemStatus.completed: "green",
    ItemStatus.error: "red",
}

_KIND_TAGS = {
    ReconciliationAction.REPLACE: (" REPLACE ", "reverse bright_black"),
    ReconciliationAction.KEEP: ("  KEEP   ", "reverse blue"),
    ReconciliationAction.MERGE: ("  MERGE  ", "reverse yellow"),
}

_KIND_STYLES = {
    ReconciliationAction.REPLACE: "bright_black",
    ReconciliationAction.KEEP: "blue",
    ReconciliationAction.MERGE: "yellow",
}


@dataclass
class ItemProgress:
    """Display state of one reconciled item."""

    name: str
    kind: ReconciliationAction
    status: ItemStatus = ItemStatus.pending
    message: str | None = None


class ProgressReporter:
    """Tracks per-item reconciliation status and redraws it in place.

    The spinner only advances through ``tick()``; ``run_ticker`` drives it
    on an interval.

    Args:
        console: Console to draw on, a default Console if None
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self.items: dict[str, ItemProgress] = {}
        self.frame = 0
        self._live: Live | None = None

    def start(self) -> None:
        """Begin drawing the live block."""
        if self._live is None:
            self._live = Live(
                self.render(),
                console=self.console,
                auto_refresh=False,
                transient=False,
            )
            self._live.start()

    def add_item(self, name: str, kind: ReconciliationAction) -> None:
        self.items[name] = ItemProgress(name=name, kind=kind)
        self.redraw()

    def start_processing(self, name: str) -> None:
        self._set_status(name, ItemStatus.processing)

    def complete_item(self, name: str) -> None:
        self._set_status(name, ItemStatus.completed)

    def error_item(self, name: str, message: str) -> None:
        self._set_status(name, ItemStatus.error, message)

    def _set_status(self, name: str, status: ItemStatus, message: str | None = None) -> None:
        item = self.items.get(name)
        if item is None:
            return
        item.status = status
        if message is not None:
            item.message = message
        self.redraw()

    @property
    def has_processing(self) -> bool:
        """True while any item is being processed."""
        return any(item.status == ItemStatus.processing for item in self.items.values())

    def tick(self) -> None:
        """Advance the spinner, redrawing only while work is in flight."""
        if not self.has_processing:
            return
        self.frame = (self.frame + 1) % len(SPINNER_FRAMES)
        self.redraw()

    def _status_icon(self, status: ItemStatus) -> Text:
        if status == ItemStatus.processing:
            return Text(SPINNER_FRAMES[self.frame], style="cyan")
        if status == ItemStatus.completed:
            return Text("✓", style="green")
        if status == ItemStatus.error:
            return Text("✗", style="red")
        return Text("⚬", style="bright_black")

    def render_line(self, item: ItemProgress) -> Text:
        """Render a single item."""
        tag, tag_style = _KIND_TAGS[item.kind]
        if item.status == ItemStatus.pending:
            name_style = _KIND_STYLES[item.kind]
        else:
            name_style = _STATUS_STYLES[item.status]

        line = Text("  ")
        line.append_text(self._status_icon(item.status))
        line.append("  ")
        line.append(tag, style=tag_style)
        line.append(" ")
        line.append(shorten_name(item.name), style=name_style)
        if item.message:
            line.append(f" - {item.message}", style="red")
        return line

    def render(self) -> Text:
        """Render every tracked item, sorted case-insensitively by name."""
        ordered = sorted(self.items.values(), key=lambda item: item.name.lower())
        return Text("\n").join(self.render_line(item) for item in ordered)

    def redraw(self) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)

    def finish(self) -> None:
        """Stop the live block after one final render."""
        if self._live is not None:
            self._live.update(self.render(), refresh=True)
            self._live.stop()
            self._live = None
        elif self.items:
            self.console.print(self.render())
        logger.debug("progress_finished", **self.summary())

    def summary(self) -> dict[str, int]:
        """Count items by status."""
        counts = {status.value: 0 for status in ItemStatus}
        for item in self.items.values():
            counts[item.status.value] += 1
        return counts


async def run_ticker(reporter: ProgressReporter, interval: float = 0.2) -> None:
    """Drive ``reporter.tick()`` until cancelled."""
    while True:
        await asyncio.sleep(interval)
        reporter.tick()


class DownloadProgress:
    """Byte-count progress bar for archive downloads.

    Used as a context manager; ``update`` is the cumulative byte-count
    callback handed to the fetcher.

    Args:
        console: Console to draw on
        description: Bar label
    """

    def __init__(self, console: Console | None = None, description: str = "Downloading server") -> None:
        self.description = description
        self._progress = Progress(
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )
        self._task: TaskID | None = None

    def __enter__(self) -> DownloadProgress:
        self._progress.start()
        self._task = self._progress.add_task(self.description, total=None)
        return self

    def __exit__(self, *args: object) -> None:
        self._progress.stop()

    def set_total(self, total: int | None) -> None:
        if self._task is not None:
            self._progress.update(self._task, total=total)

    def update(self, received: int) -> None:
        if self._task is not None:
            self._progress.update(self._task, completed=received)
