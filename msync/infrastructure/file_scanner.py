import os
import stat
from pathlib import Path
from typing import Dict, List
from msync.domain.models import SourceFile

class FileScanner:
    """Recursively scans a root for audio files, keyed by relative path."""

    def __init__(self, extensions: List[str]):
        self.extensions = {(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions}

    def matches(self, file_name: str) -> bool:
        return os.path.splitext(file_name)[1].lower() in self.extensions

    def scan(self, root_dir: Path) -> Dict[str, SourceFile]:
        """Returns {relative path: SourceFile} for every recognized file under root_dir.

        Symlinks are never followed, and files that disappear between listing
        and stat are skipped.
        """
        found: Dict[str, SourceFile] = {}
        for root, dirs, files in os.walk(str(root_dir), followlinks=False):
            root_path = Path(root)
            dirs.sort()
            files.sort()

            for file_name in files:
                if not self.matches(file_name):
                    continue

                file_path = root_path / file_name
                try:
                    st = os.lstat(file_path)
                except OSError:
                    # Vanished mid-scan or unreadable
                    continue
                # lstat reports symlinks as links, so this also skips them
                if not stat.S_ISREG(st.st_mode):
                    continue

                rel_path = file_path.relative_to(root_dir).as_posix()
                found[rel_path] = SourceFile(
                    rel_path=rel_path,
                    path=file_path,
                    mtime_ns=st.st_mtime_ns,
                    size_bytes=st.st_size,
                )
        return found
