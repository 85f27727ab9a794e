"""Persisted metadata index for one root.

The store is owned by a single run. Worker threads insert entries
concurrently; one lock guards the map because no two jobs of a run ever
share a key. The file is written once at the end of the run through a
temp file in the same directory, so a crash leaves the previous copy intact.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from msync.domain.models import IndexEntry

INDEX_VERSION = 1


class IndexStore:
    def __init__(self, index_path: Path):
        self.index_path = Path(index_path)
        self.logger = logging.getLogger(__name__)
        self._tracks: Dict[str, IndexEntry] = {}
        self._lock = threading.Lock()
        self._dirty = False

    @classmethod
    def for_root(cls, root: Path, filename: str = "index.json") -> "IndexStore":
        return cls(Path(root) / filename)

    def load(self) -> "IndexStore":
        """Reads the index from disk; any failure leaves an empty index and logs a warning.

        An unreadable file counts as a change, so the next save replaces it.
        """
        tracks: Dict[str, IndexEntry] = {}
        damaged = False
        try:
            if self.index_path.exists():
                tracks = self._parse(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.logger.warning(f"Could not load index {self.index_path}, starting empty: {exc}")
            tracks = {}
            damaged = True
        with self._lock:
            self._tracks = tracks
            self._dirty = damaged
        return self

    def _parse(self, content: str) -> Dict[str, IndexEntry]:
        document = json.loads(content)
        if not isinstance(document, dict) or not isinstance(document.get("tracks"), dict):
            raise ValueError("missing 'tracks' object")

        tracks: Dict[str, IndexEntry] = {}
        for rel_path, raw in document["tracks"].items():
            try:
                tracks[rel_path] = IndexEntry.model_validate(raw)
            except ValidationError as exc:
                # Dropped entries are simply re-extracted
                self.logger.warning(f"Ignoring malformed index entry {rel_path}: {exc.error_count()} error(s)")
        return tracks

    def get(self, rel_path: str) -> Optional[IndexEntry]:
        with self._lock:
            return self._tracks.get(rel_path)

    def insert(self, rel_path: str, entry: IndexEntry):
        with self._lock:
            if self._tracks.get(rel_path) != entry:
                self._tracks[rel_path] = entry
                self._dirty = True

    def remove(self, rel_path: str) -> bool:
        with self._lock:
            if self._tracks.pop(rel_path, None) is None:
                return False
            self._dirty = True
            return True

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._tracks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tracks)

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def to_document(self) -> Dict[str, Any]:
        with self._lock:
            tracks = {key: self._tracks[key].to_json_dict() for key in sorted(self._tracks)}
        return {"version": INDEX_VERSION, "tracks": tracks}

    def save(self, dry_run: bool = False) -> bool:
        """Writes the index atomically. Returns True when the file was written."""
        if dry_run:
            self.logger.info(f"DRY RUN: would write {self.index_path} ({len(self)} tracks)")
            return False
        if not (self.dirty or not self.index_path.exists()):
            self.logger.info(f"Index unchanged, not rewriting {self.index_path}")
            return False

        payload = json.dumps(self.to_document(), indent=2, ensure_ascii=False) + "\n"
        directory = self.index_path.parent
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.index_path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.index_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        with self._lock:
            self._dirty = False
        self.logger.info(f"Index written to {self.index_path} ({len(self)} tracks)")
        return True
