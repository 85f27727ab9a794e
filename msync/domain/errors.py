"""
Error types raised by the sync pipeline.

All errors inherit from SyncError so the job runner can catch them at the
job boundary. Plain OSError is used for filesystem failures.
"""

from pathlib import Path
from typing import List, Optional


class SyncError(Exception):
    """Base exception for all sync failures."""
    pass


class RootPathError(SyncError):
    """Raised when a configured root is missing or not a directory (fatal)."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class PathError(SyncError):
    """Raised when a path is not under its expected root or cannot be encoded."""

    def __init__(self, path: Path, root: Path):
        self.path = path
        self.root = root
        super().__init__(f"{path} is not under {root}")


class TagReadError(SyncError):
    """Raised when tags cannot be read from an audio file."""

    def __init__(self, filepath: Path, reason: str):
        self.filepath = filepath
        self.reason = reason
        super().__init__(f"Failed to read tags from {filepath}: {reason}")


class TagWriteError(SyncError):
    """Raised when tags cannot be copied onto a target file."""

    def __init__(self, filepath: Path, reason: str):
        self.filepath = filepath
        self.reason = reason
        super().__init__(f"Failed to write tags to {filepath}: {reason}")


class ProcessError(SyncError):
    """Raised when an external encoder or extractor fails to spawn or exits non-zero."""

    def __init__(self, cmd: List[str], returncode: Optional[int], detail: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.detail = detail
        program = cmd[0] if cmd else "<empty command>"
        if returncode is None:
            message = f"{program} failed to start"
        else:
            message = f"{program} exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
