"""Progress bars for command line jobs such as the snapshot sync."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn


class ProgressBar:
    """One bar on a live ``Progress`` display."""

    def __init__(self, progress: Progress, description: str, total: Optional[float]) -> None:
        self._progress = progress
        self._task_id = progress.add_task(description, total=total)

    def advance(self, amount: float = 1.0) -> None:
        self._progress.advance(self._task_id, amount)

    def describe(self, description: str) -> None:
        self._progress.update(self._task_id, description=description)


class ProgressManager:
    """Draw bars on the same console the log handler writes to, so lines don't tear."""

    def __init__(self) -> None:
        self.console = Console()

    def use_console(self, console: Console) -> None:
        self.console = console

    def reset_console(self) -> None:
        self.console = Console()

    @contextmanager
    def task(self, description: str, *, total: Optional[float] = None) -> Iterator[ProgressBar]:
        with Progress(
            TextColumn("{task.description}", style="bold blue"),
            BarColumn(bar_width=None),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            yield ProgressBar(progress, description, total)


progress_manager = ProgressManager()
