import exiftool
import threading
from pathlib import Path
from msync.domain.errors import TagWriteError

class ExifToolAdapter:
    """Wrapper around pyexiftool for copying tags onto transcoded files."""

    def __init__(self):
        self.et = exiftool.ExifTool()
        self._lock = threading.Lock()

    def start(self):
        if not self.et.running:
            self.et.run()

    def stop(self):
        if self.et.running:
            self.et.terminate()

    def copy_tags(self, source: Path, target: Path):
        """Copies tags from source to target, mapping tag names across containers.

        Raises TagWriteError when exiftool refuses the write.
        """
        # Tags are copied by name (no -all:all) so Vorbis fields land in MP4 atoms
        cmd = [
            "-tagsFromFile", str(source),
            "-overwrite_original",
            str(target)
        ]
        # One exiftool process is shared by all workers
        with self._lock:
            self.start()
            try:
                self.et.execute(*cmd)
            except Exception as exc:
                raise TagWriteError(target, str(exc)) from exc
            status = self.et.last_status
            stderr = self.et.last_stderr

        if status != 0:
            raise TagWriteError(target, (stderr or "").strip() or f"exiftool status {status}")
