import logging
import os
import uuid
from pathlib import Path
from msync.domain.errors import PathError

TEMP_MARKER = ".msync-tmp"

logger = logging.getLogger(__name__)


def temp_path_for(final_path: Path) -> Path:
    """A hidden, unique temp path beside final_path (same directory, same filesystem)."""
    token = uuid.uuid4().hex[:8]
    return final_path.with_name(f".{final_path.stem}.{token}{TEMP_MARKER}{final_path.suffix}")


def publish_artifact(tmp_path: Path, final_path: Path, mtime_ns: int):
    """Atomically moves tmp_path over final_path and stamps it with the source mtime."""
    # Stamp first so the file never appears at final_path with a wall-clock mtime
    os.utime(tmp_path, ns=(mtime_ns, mtime_ns))
    os.replace(tmp_path, final_path)


def discard(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def touch_ancestors(path: Path, root: Path):
    """Sets the mtime of every directory from path's parent up to root (inclusive) to now."""
    try:
        depth = len(path.parent.relative_to(root).parts)
    except ValueError:
        raise PathError(path, root) from None
    current = path.parent
    os.utime(current, None)
    for _ in range(depth):
        current = current.parent
        os.utime(current, None)


class HousekeepingService:
    """Service for cleaning up temp files left behind by interrupted runs."""

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes msync temp files in the directory."""
        removed = 0
        for root, dirs, files in os.walk(directory):
            for file in files:
                if TEMP_MARKER in file:
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError as exc:
                        logger.warning(f"Could not remove stale temp file {file}: {exc}")
        if removed:
            logger.info(f"Removed {removed} stale temp file(s) under {directory}")
        return removed
