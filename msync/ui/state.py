import threading
from typing import List, Optional
from msync.domain.models import RunSummary

class RunState:
    """Thread-safe counters for the current command."""

    def __init__(self):
        self._lock = threading.RLock()

        self.command = ""
        self.dry_run = False

        # Discovery counters, summed over roots
        self.files_found = 0
        self.files_to_process = 0
        self.files_to_remove = 0

        # Job counters
        self.completed_count = 0
        self.skipped_count = 0
        self.failed_count = 0
        self.failed_paths: List[str] = []

        self.summary: Optional[RunSummary] = None

    def record_discovery(self, found: int, to_process: int, to_remove: int):
        with self._lock:
            self.files_found += found
            self.files_to_process += to_process
            self.files_to_remove += to_remove

    def record_completed(self, skipped: bool = False):
        with self._lock:
            if skipped:
                self.skipped_count += 1
            else:
                self.completed_count += 1

    def record_failed(self, rel_path: str):
        with self._lock:
            self.failed_count += 1
            self.failed_paths.append(rel_path)
