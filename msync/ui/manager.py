from typing import Dict, Optional
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn, TaskID
from rich.table import Table
from msync.domain.events import (
    ActionMessage, DiscoveryFinished, JobCompleted, JobFailed,
    ProgressUpdated, RunFinished, RunStarted,
)
from msync.domain.models import JobStatus, RunSummary
from msync.infrastructure.event_bus import EventBus
from msync.ui.state import RunState

DRY_RUN_PREFIX = "DRY RUN:"


def summary_title(command: str, summary: RunSummary) -> str:
    return f"msync {command}" + (" (dry run)" if summary.dry_run else "")


def render_summary(summary: RunSummary) -> Table:
    table = Table(show_header=False)
    table.add_column("metric", style="bold")
    table.add_column("value", justify="right")
    table.add_row("Found", str(summary.found))
    table.add_row("To process", str(summary.to_process))
    table.add_row("To remove", str(summary.to_remove))
    table.add_row("Succeeded", f"[green]{summary.succeeded}[/]")
    if summary.skipped:
        table.add_row("Skipped", f"[yellow]{summary.skipped}[/]")
    failed_style = "red" if summary.failed else "green"
    table.add_row("Failed", f"[{failed_style}]{summary.failed}[/]")
    return table


class UIManager:
    """Subscribes to EventBus, updates RunState and renders progress with rich.

    Progress events arrive batched from the runner, so rendering never
    throttles the worker pool.
    """

    def __init__(self, bus: EventBus, state: RunState, console: Optional[Console] = None, show_progress: bool = True):
        self.bus = bus
        self.state = state
        self.console = console or Console()
        self.show_progress = show_progress
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
            disable=not show_progress,
        )
        self._tasks: Dict[str, TaskID] = {}
        self._current_task: Optional[TaskID] = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(ProgressUpdated, self.on_progress)
        self.bus.subscribe(ActionMessage, self.on_action_message)
        self.bus.subscribe(RunFinished, self.on_run_finished)

    def __enter__(self):
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.progress.stop()
        return False

    def on_run_started(self, event: RunStarted):
        with self.state._lock:
            self.state.command = event.command
            self.state.dry_run = event.dry_run

    def on_discovery_finished(self, event: DiscoveryFinished):
        self.state.record_discovery(event.files_found, event.files_to_process, event.files_to_remove)
        self.console.print(
            f"Scanned {event.root}: found {event.files_found}, "
            f"to process {event.files_to_process}, to remove {event.files_to_remove}"
        )
        if event.files_to_process:
            task = self.progress.add_task(event.root.name or str(event.root), total=event.files_to_process)
            self._tasks[str(event.root)] = task
            self._current_task = task
        else:
            self._current_task = None

    def on_job_completed(self, event: JobCompleted):
        self.state.record_completed(skipped=event.job.status == JobStatus.SKIPPED)

    def on_job_failed(self, event: JobFailed):
        self.state.record_failed(event.job.rel_path)

    def on_progress(self, event: ProgressUpdated):
        if self._current_task is None:
            return
        self.progress.update(self._current_task, completed=event.done, description=event.last_rel_path or None)

    def on_action_message(self, event: ActionMessage):
        prefix = f"[yellow]{DRY_RUN_PREFIX}[/] " if event.dry_run else ""
        self.console.print(f"{prefix}{event.message}", markup=True, highlight=False)

    def on_run_finished(self, event: RunFinished):
        with self.state._lock:
            self.state.summary = event.summary
        self.progress.stop()
        self.console.print(summary_title(event.command, event.summary), style="bold", markup=False, highlight=False)
        self.console.print(render_summary(event.summary))
        if self.state.failed_paths:
            self.console.print("[red]Failed:[/]")
            for rel_path in sorted(self.state.failed_paths):
                self.console.print(f"  {rel_path}", markup=False, highlight=False)
