"""Removal of transcoded files whose lossless source is gone.

A destination file is kept when any configured source root still holds
its relative path under one of the lossless extensions, matched the same
case-insensitive way the scanner matches them. With `transcode.prune_covers`
enabled, a cover is removed once its directory holds no transcoded audio
any more.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import List, Optional, Set, Tuple, Union

from msync.config.input_dirs import validate_root, validate_roots
from msync.config.models import AppConfig
from msync.domain.events import ActionMessage, DiscoveryFinished
from msync.domain.models import RunSummary
from msync.infrastructure.event_bus import EventBus
from msync.infrastructure.file_scanner import FileScanner
from msync.infrastructure.housekeeping import TEMP_MARKER


def strip_extension(rel_path: str) -> str:
    return str(PurePosixPath(rel_path).with_suffix(""))


class PruneEngine:
    def __init__(self, config: AppConfig, event_bus: EventBus, file_scanner: Optional[FileScanner] = None):
        self.config = config
        self.event_bus = event_bus
        self.file_scanner = file_scanner or FileScanner(config.scan.lossless_extensions)
        self.logger = logging.getLogger(__name__)
        self.transcoded_extensions = set(config.transcode.transcoded_extensions)

    def source_stems(self, source_roots: List[Path]) -> Set[str]:
        """Relative source paths without extension, over every root."""
        stems: Set[str] = set()
        for root in source_roots:
            stems.update(strip_extension(rel_path) for rel_path in self.file_scanner.scan(root))
        return stems

    def find_orphans(self, source_roots: List[Path], dest_root: Path) -> Tuple[int, List[str]]:
        """Returns (transcoded files seen, sorted relative paths of those without a source)."""
        stems = self.source_stems(source_roots)
        seen = 0
        orphans: List[str] = []
        for root, dirs, files in os.walk(str(dest_root), followlinks=False):
            dirs.sort()
            for file_name in sorted(files):
                if TEMP_MARKER in file_name:
                    continue
                if os.path.splitext(file_name)[1].lower() not in self.transcoded_extensions:
                    continue
                seen += 1
                rel_path = (Path(root) / file_name).relative_to(dest_root).as_posix()
                if strip_extension(rel_path) not in stems:
                    orphans.append(rel_path)
        return seen, orphans

    def find_lonely_covers(self, dest_root: Path, removed: List[str]) -> List[str]:
        """Covers whose directory holds no transcoded audio once `removed` is gone."""
        cover_name = self.config.transcode.cover_filename
        removed_set = set(removed)
        lonely: List[str] = []
        for rel_dir in sorted({PurePosixPath(r).parent for r in removed}):
            directory = dest_root / rel_dir
            if not (directory / cover_name).exists():
                continue
            try:
                names = os.listdir(directory)
            except OSError:
                continue
            remaining = [
                n for n in names
                if os.path.splitext(n)[1].lower() in self.transcoded_extensions
                and TEMP_MARKER not in n
                and str(rel_dir / n) not in removed_set
            ]
            if not remaining:
                lonely.append(str(rel_dir / cover_name))
        return lonely

    def run(
        self,
        source_roots: Union[Path, List[Path]],
        dest_root: Path,
        dry_run: bool = False,
    ) -> RunSummary:
        if isinstance(source_roots, (str, Path)):
            source_roots = [source_roots]
        source_roots = validate_roots(list(source_roots))
        dest_root = validate_root(dest_root)
        self.logger.info(
            f"Prune started: roots={[str(r) for r in source_roots]} dest={dest_root} dry_run={dry_run}"
        )

        seen, orphans = self.find_orphans(source_roots, dest_root)
        covers = self.find_lonely_covers(dest_root, orphans) if self.config.transcode.prune_covers else []
        self.event_bus.publish(DiscoveryFinished(
            root=dest_root, files_found=seen, files_to_remove=len(orphans) + len(covers)
        ))

        summary = RunSummary(found=seen, to_remove=len(orphans) + len(covers), dry_run=dry_run)
        for rel_path in orphans + covers:
            path = dest_root / rel_path
            if dry_run:
                self.logger.info(f"DRY RUN: would remove {rel_path}")
                self.event_bus.publish(ActionMessage(message=f"Would remove: {rel_path}", dry_run=True))
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                summary.skipped += 1
                continue
            except OSError as e:
                summary.failed += 1
                self.logger.error(f"Could not remove {rel_path}: {e}")
                continue
            summary.succeeded += 1
            self.logger.info(f"Removed orphan: {rel_path}")
            self.event_bus.publish(ActionMessage(message=f"Removed: {rel_path}"))

        self.logger.info(
            f"Prune finished: orphans={len(orphans)} covers={len(covers)} removed={summary.succeeded} failed={summary.failed}"
        )
        return summary
