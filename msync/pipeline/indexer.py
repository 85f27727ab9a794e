"""Incremental metadata indexing of one source root.

Scans the root, removes index entries whose file is gone, re-extracts tags
only for new or modified files, and writes `<root>/index.json` once at the
end. Files that fail extraction keep their previous entry (if any) and are
retried on the next run.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

from msync.config.input_dirs import validate_root
from msync.config.models import AppConfig
from msync.domain.events import ActionMessage, DiscoveryFinished
from msync.domain.models import IndexEntry, Job, JobKind, JobStatus, RunSummary, SourceFile
from msync.infrastructure.event_bus import EventBus
from msync.infrastructure.file_scanner import FileScanner
from msync.infrastructure.tags import TagReader
from msync.pipeline.index_store import IndexStore
from msync.pipeline.runner import JobRunner
from msync.pipeline.staleness import index_is_stale, ms_to_seconds, ns_to_ms


def identify_changes(store: IndexStore, current: Dict[str, SourceFile]) -> Tuple[List[SourceFile], List[str]]:
    """Returns (files to (re)extract, index keys whose file no longer exists), both sorted."""
    to_remove = [key for key in store.keys() if key not in current]
    to_process = [
        current[key] for key in sorted(current)
        if index_is_stale(store.get(key), current[key])
    ]
    return to_process, to_remove


class Indexer:
    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        file_scanner: FileScanner,
        tag_reader: TagReader,
        runner: JobRunner,
    ):
        self.config = config
        self.event_bus = event_bus
        self.file_scanner = file_scanner
        self.tag_reader = tag_reader
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    def build_entry(self, source: SourceFile) -> IndexEntry:
        """Reads tags and file properties into an index entry (blocking; runs on workers)."""
        tags = self.tag_reader.read(source.path)
        duration = int(tags.duration) if tags.duration else None
        return IndexEntry(
            mtime=ms_to_seconds(ns_to_ms(source.mtime_ns)),
            size=source.size_bytes,
            duration=duration or None,
            bitrate=tags.bitrate,
            album=tags.album or "",
            artist=tags.artist or "",
            title=tags.title,
            album_artist=tags.album_artist,
            composer=tags.composer,
            genre=tags.genre,
            year=tags.year,
            track_number=tags.track_number,
            track_number_total=tags.track_total,
            disk_number=tags.disc_number,
            disk_number_total=tags.disc_total,
            performer=tags.performer,
            work=tags.work,
            grouping=tags.grouping,
            label=tags.label,
        )

    def run(self, root: Path, dry_run: bool = False) -> RunSummary:
        root = validate_root(root)
        store = IndexStore.for_root(root, self.config.scan.index_filename).load()
        self.logger.info(f"Index started: root={root} existing_tracks={len(store)} dry_run={dry_run}")

        current = self.file_scanner.scan(root)
        to_process, to_remove = identify_changes(store, current)

        self.logger.info(
            f"Discovery finished: found={len(current)}, to_process={len(to_process)}, to_remove={len(to_remove)}"
        )
        self.event_bus.publish(DiscoveryFinished(
            root=root,
            files_found=len(current),
            files_to_process=len(to_process),
            files_to_remove=len(to_remove),
        ))

        for rel_path in to_remove:
            prefix = "DRY RUN: " if dry_run else ""
            if not dry_run:
                store.remove(rel_path)
            self.logger.info(f"{prefix}Removed from index: {rel_path}")
            self.event_bus.publish(ActionMessage(message=f"Removed from index: {rel_path}", dry_run=dry_run))

        jobs = [
            Job(kind=JobKind.EXTRACT_METADATA, rel_path=source.rel_path, source=source)
            for source in to_process
        ]

        def extract(job: Job) -> JobStatus:
            entry = self.build_entry(job.source)
            if not dry_run:
                store.insert(job.rel_path, entry)
            return JobStatus.COMPLETED

        summary = self.runner.run(jobs, extract)
        summary.found = len(current)
        summary.to_remove = len(to_remove)
        summary.dry_run = dry_run

        store.save(dry_run=dry_run)
        self.logger.info(
            f"Index finished: root={root} tracks={len(store)} ok={summary.succeeded} failed={summary.failed}"
        )
        return summary
