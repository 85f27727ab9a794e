"""Domain events for the sync pipeline.

Events flow through the EventBus from the pipeline (including worker
threads) to the console reporter. Subscribers must be thread-safe.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import List
from pydantic import BaseModel
from .models import Job, RunSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class RunStarted(Event):
    """Emitted once per command before discovery."""

    command: str
    roots: List[Path]
    dry_run: bool = False


class DiscoveryFinished(Event):
    """Emitted after a root has been scanned and diffed against its artifacts."""

    root: Path
    files_found: int
    files_to_process: int = 0
    files_to_remove: int = 0


class JobEvent(Event):
    """Base class for events related to a single job."""

    job: Job


class JobCompleted(JobEvent):
    """Emitted when a job published its artifact (or had nothing to publish)."""

    pass


class JobFailed(JobEvent):
    """Emitted when a job raised; prior state for that path is preserved."""

    error_message: str


class ProgressUpdated(Event):
    """Batched progress; published every N completions, not per job."""

    done: int
    total: int
    last_rel_path: str = ""


class ActionMessage(Event):
    """A mutation performed (or, in dry-run, one that would be performed)."""

    message: str
    dry_run: bool = False


class RunFinished(Event):
    """Emitted once per command with the merged summary."""

    command: str
    summary: RunSummary
