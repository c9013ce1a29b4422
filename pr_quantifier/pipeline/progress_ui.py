from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from pr_quantifier.integration.event_bus import EventBus
from pr_quantifier.integration.events import BatchFlushed, RepositoryQuantified


@dataclass
class Ui:
    console: Console
    progress: Progress
    _tasks: dict[str, TaskID] = field(default_factory=dict)

    def log(self, message: str) -> None:
        self.console.print(message)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(BatchFlushed, self._on_batch)
        bus.subscribe(RepositoryQuantified, self._on_repository)

    def _on_batch(self, event: BatchFlushed) -> None:
        task = self._tasks.get(event.repository)
        if task is None:
            task = self.progress.add_task(event.repository, total=event.total_commits)
            self._tasks[event.repository] = task
        self.progress.update(task, completed=event.commits_processed)
        if event.failures:
            self.log(f"[yellow]{event.repository}: {event.failures} commit(s) skipped in batch {event.batch_index}[/yellow]")

    def _on_repository(self, event: RepositoryQuantified) -> None:
        task = self._tasks.get(event.repository)
        if task is not None:
            # Root commits are counted in the total but never scored.
            total = next(t.total for t in self.progress.tasks if t.id == task)
            self.progress.update(task, completed=total)
        self.log(
            f"[green]{event.repository}[/green]: {event.commits_scored} scored, "
            f"{event.commits_failed} skipped -> {event.result_file}"
        )


@contextmanager
def progress_ui() -> Iterator[Ui]:
    console = Console()
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    )
    with progress:
        yield Ui(console=console, progress=progress)
