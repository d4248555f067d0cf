"""Console rendering and progress helpers for the s3-up CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import ProgressEvent, UploadResult


LARGE_FILE_THRESHOLD = 50 * 1024 * 1024
SINGLE_FILE_PERCENT_STEP = 5

console = Console()
err_console = Console(stderr=True)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]s3-up[/bold green]",
        subtitle="[dim]s3uploader CLI[/dim]",
        border_style="blue",
    )
    err_console.print(panel)


def render_upload_result(result: UploadResult) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")
    table.add_row("Key", result.key)
    table.add_row("Content-Type", result.content_type)
    table.add_row("Size", _human_size(result.size))
    table.add_row(result.algorithm, result.digest)
    table.add_row("ETag", result.etag or "-")
    if result.version_id:
        table.add_row("Version", result.version_id)
    console.print(table)


def render_listing(keys: Iterable[str]) -> int:
    count = 0
    for key in keys:
        console.print(key, markup=False, highlight=False)
        count += 1
    return count


class SingleFileUploadProgress:
    """Single-file upload progress renderer fed by ProgressEvents."""

    def __init__(self, filename: str, file_size: Optional[int] = None):
        self.filename = filename
        self.file_size = file_size or 0
        self._started = False
        self._last_printed_percent = -1
        self._last_print_time = 0.0

        self._live = None
        self._task_id = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=err_console,
        )

    def start(self) -> None:
        if self._started:
            return

        if self.file_size > LARGE_FILE_THRESHOLD:
            self._live = Live(
                self._progress,
                console=err_console,
                refresh_per_second=5,
                vertical_overflow="visible",
            )
            self._live.start()
            self._task_id = self._progress.add_task(
                "upload",
                filename=self.filename[:60],
                total=self.file_size,
            )
        else:
            err_console.print(f"[cyan]Uploading:[/cyan] {self.filename}")

        self._started = True

    def update(self, event: ProgressEvent) -> None:
        if not self._started:
            self.start()

        uploaded = event.bytes_written
        total = event.bytes_total or self.file_size
        if total <= 0:
            return

        if self._task_id is not None:
            self._progress.update(self._task_id, completed=uploaded, total=total)
            return

        percent = event.percent if event.bytes_total else min(100, uploaded * 100 // total)
        now = time.monotonic()
        should_print = (
            percent >= 100
            or percent - self._last_printed_percent >= SINGLE_FILE_PERCENT_STEP
            or now - self._last_print_time >= 2.0
        )
        if should_print and percent != self._last_printed_percent:
            err_console.print(f"  {percent:3d}% ({_human_size(uploaded)}/{_human_size(total)})")
            self._last_printed_percent = percent
            self._last_print_time = now

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

        if success:
            err_console.print(f"[green]Uploaded:[/green] {self.filename}")
            return

        suffix = f" - {error}" if error else ""
        err_console.print(f"[red]Failed:[/red] {self.filename}{suffix}")

    def get_callback(self):
        def callback(event: ProgressEvent) -> None:
            self.update(event)

        return callback
