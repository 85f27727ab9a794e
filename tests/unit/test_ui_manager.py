import io
from pathlib import Path
from rich.console import Console
from msync.infrastructure.event_bus import EventBus
from msync.ui.state import RunState
from msync.ui.manager import UIManager, render_summary, summary_title
from msync.domain.events import (
    ActionMessage,
    DiscoveryFinished,
    JobCompleted,
    JobFailed,
    ProgressUpdated,
    RunFinished,
    RunStarted,
)
from msync.domain.models import Job, JobKind, JobStatus, RunSummary, SourceFile


def _console():
    buffer = io.StringIO()
    return Console(file=buffer, width=120, force_terminal=False), buffer


def _job(rel_path: str, status: JobStatus) -> Job:
    source = SourceFile(rel_path=rel_path, path=Path("/lib") / rel_path, mtime_ns=1, size_bytes=1)
    return Job(kind=JobKind.TRANSCODE, rel_path=rel_path, source=source, status=status)


def test_ui_manager_updates_state_on_events():
    bus = EventBus()
    state = RunState()
    console, _ = _console()
    UIManager(bus, state, console=console, show_progress=False)

    bus.publish(RunStarted(command="index", roots=[Path("/lib")], dry_run=True))
    bus.publish(DiscoveryFinished(root=Path("/lib"), files_found=5, files_to_process=3, files_to_remove=1))
    bus.publish(JobCompleted(job=_job("a.flac", JobStatus.COMPLETED)))
    bus.publish(JobCompleted(job=_job("b.flac", JobStatus.SKIPPED)))
    bus.publish(JobFailed(job=_job("c.flac", JobStatus.FAILED), error_message="boom"))

    assert state.command == "index"
    assert state.dry_run is True
    assert state.files_found == 5
    assert state.files_to_process == 3
    assert state.files_to_remove == 1
    assert state.completed_count == 1
    assert state.skipped_count == 1
    assert state.failed_count == 1
    assert state.failed_paths == ["c.flac"]


def test_ui_manager_prefixes_dry_run_actions():
    bus = EventBus()
    state = RunState()
    console, buffer = _console()
    UIManager(bus, state, console=console, show_progress=False)

    bus.publish(ActionMessage(message="Would remove: A/old.opus", dry_run=True))
    bus.publish(ActionMessage(message="Removed: A/gone.opus"))

    output = buffer.getvalue()
    assert "DRY RUN: Would remove: A/old.opus" in output
    assert "Removed: A/gone.opus" in output
    assert "DRY RUN: Removed" not in output


def test_ui_manager_progress_tracks_current_root():
    bus = EventBus()
    state = RunState()
    console, _ = _console()
    manager = UIManager(bus, state, console=console, show_progress=False)

    bus.publish(DiscoveryFinished(root=Path("/lib"), files_found=10, files_to_process=4))
    bus.publish(ProgressUpdated(done=2, total=4, last_rel_path="x.flac"))

    task = manager.progress.tasks[0]
    assert task.total == 4
    assert task.completed == 2

    # A root with nothing to do gets no task and ignores progress
    bus.publish(DiscoveryFinished(root=Path("/other"), files_found=1))
    bus.publish(ProgressUpdated(done=1, total=1))
    assert len(manager.progress.tasks) == 1


def test_ui_manager_prints_summary_and_failures():
    bus = EventBus()
    state = RunState()
    console, buffer = _console()
    UIManager(bus, state, console=console, show_progress=False)

    bus.publish(JobFailed(job=_job("B/broken.flac", JobStatus.FAILED), error_message="boom"))
    summary = RunSummary(found=7, to_process=3, to_remove=1, succeeded=2, failed=1)
    bus.publish(RunFinished(command="transcode-opus", summary=summary))

    output = buffer.getvalue()
    assert state.summary == summary
    assert "msync transcode-opus" in output
    assert "To process" in output
    assert "B/broken.flac" in output


def test_summary_title_marks_dry_run():
    assert summary_title("prune", RunSummary(dry_run=True)) == "msync prune (dry run)"
    assert summary_title("index", RunSummary()) == "msync index"


def test_render_summary_shows_skipped_only_when_present():
    assert render_summary(RunSummary(found=1)).row_count == 5
    assert render_summary(RunSummary(found=1, skipped=2)).row_count == 6


def test_summary_heading_is_not_wrapped_on_narrow_console():
    bus = EventBus()
    buffer = io.StringIO()
    console = Console(file=buffer, width=40, force_terminal=False)
    UIManager(bus, RunState(), console=console, show_progress=False)

    bus.publish(RunFinished(command="transcode-opus", summary=RunSummary(dry_run=True)))

    assert "msync transcode-opus (dry run)" in buffer.getvalue()
