"""Progress display utilities using Rich."""

from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    Progress,
    TaskID,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TimeElapsedColumn,
    MofNCompleteColumn,
)
from rich.panel import Panel
from rich.table import Table

from ..core import events
from ..core.events import Event
from ..models.task import LogEntry, Stage, Task

console = Console()

# Where each event leaves a task's bar, out of 100
_EVENT_PROGRESS = {
    events.TASK_STARTED: 0,
    events.TRANSCRIPTION_STARTED: 30,
    events.TRANSCRIPTION_POLLING: 40,
    events.TRANSCRIPTION_COMPLETE: 70,
    events.TRANSLATION_STARTED: 75,
    events.TRANSLATION_COMPLETE: 95,
}
_EXTRACTION_SHARE = 25

_EVENT_LABEL = {
    events.TASK_STARTED: "starting",
    events.TRANSCRIPTION_STARTED: "transcribing",
    events.TRANSCRIPTION_COMPLETE: "transcribed",
    events.TRANSLATION_STARTED: "translating",
    events.TRANSLATION_COMPLETE: "saving",
}


class ConsoleEventSink:
    """
    Render lifecycle events as Rich progress bars.

    One overall bar counts finished tasks; each running task gets its own row,
    hidden again once it reaches a terminal stage.
    """

    def __init__(self, tasks: List[Task], disable: bool = False):
        self.tasks = {task.id: task for task in tasks}
        self.disable = disable

        self._progress: Optional[Progress] = None
        self._overall: Optional[TaskID] = None
        self._rows: Dict[str, TaskID] = {}

    def create_progress(self) -> Progress:
        """Create a progress bar instance."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=self.disable,
        )

    def __enter__(self) -> "ConsoleEventSink":
        self._progress = self.create_progress()
        self._progress.start()
        self._overall = self._progress.add_task("[cyan]Overall progress", total=len(self.tasks))
        return self

    def __exit__(self, *args):
        if self._progress:
            self._progress.stop()

    def _name(self, task_id: Optional[str]) -> str:
        task = self.tasks.get(task_id or "")
        return escape(task.name) if task else (task_id or "")[:8]

    def _row(self, task_id: str) -> TaskID:
        assert self._progress is not None
        if task_id not in self._rows:
            self._rows[task_id] = self._progress.add_task(
                f"[green]{self._name(task_id)}", total=100
            )
        return self._rows[task_id]

    def emit(self, event: Event) -> None:
        if self._progress is None or event.task_id is None:
            return

        name = event.name
        if name == events.TASK_LOG:
            if event.payload.get("category") == "error":
                self._progress.console.print(
                    f"[yellow]![/yellow] {self._name(event.task_id)}: "
                    f"{escape(str(event.payload.get('message', '')))}"
                )
            return

        if name in (events.TASK_COMPLETED, events.TASK_FAILED):
            row = self._rows.pop(event.task_id, None)
            if row is not None:
                self._progress.update(row, visible=False)
            self._progress.update(self._overall, advance=1)
            return

        row = self._row(event.task_id)
        if name == events.TASK_PROGRESS:
            share = float(event.payload.get("progress", 0)) * _EXTRACTION_SHARE / 100
            self._progress.update(
                row, completed=share, description=f"[green]{self._name(event.task_id)}: extracting"
            )
        elif name in _EVENT_PROGRESS:
            description = f"[green]{self._name(event.task_id)}"
            label = _EVENT_LABEL.get(name)
            if name == events.TRANSCRIPTION_POLLING:
                label = f"remote {event.payload.get('status', '')}"
            if label:
                description = f"{description}: {escape(label)}"
            self._progress.update(row, completed=_EVENT_PROGRESS[name], description=description)


def print_task_summary(tasks: List[Task]) -> None:
    """Print task summary table."""
    table = Table(title="Processing Results")

    table.add_column("Task", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Duration", justify="right")
    table.add_column("Output / Error")

    for task in tasks:
        if task.stage == Stage.COMPLETED:
            status = "[green]Success[/green]"
        elif task.stage == Stage.FAILED:
            status = "[red]Failed[/red]"
        else:
            status = f"[yellow]{task.stage.value}[/yellow]"

        duration = ""
        if task.elapsed_time:
            duration = f"{task.elapsed_time:.1f}s"

        note = task.error if task.error else (str(task.output_path) if task.output_path else "")
        if len(note) > 60:
            note = note[:60] + "..."

        table.add_row(
            task.id[:8],
            escape(task.name),
            status,
            duration,
            escape(note),
        )

    console.print(table)


_CATEGORY_STYLE = {
    "metadata": "dim",
    "process": "magenta",
    "transcription": "blue",
    "translation": "green",
    "error": "red",
}


def print_log_entries(task_id: str, entries: List[LogEntry]) -> None:
    """Print a task's durable log."""
    table = Table(title=f"Task log {task_id}")
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Category")
    table.add_column("Message")

    for entry in entries:
        style = _CATEGORY_STYLE.get(entry.category.value, "")
        table.add_row(
            entry.timestamp,
            f"[{style}]{entry.category.value}[/{style}]" if style else entry.category.value,
            escape(entry.message),
        )

    console.print(table)


def print_error(message: str) -> None:
    """Print error message."""
    console.print(Panel(escape(message), title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(escape(message), title="Complete", border_style="green"))


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[cyan]i[/cyan] {escape(message)}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]![/yellow] {escape(message)}")
