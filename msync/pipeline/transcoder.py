"""Mirrors lossless source trees into one transcoded destination tree.

For every source file the destination holds `<rel path>.<format ext>` and
its directory holds a `cover.jpg`. Both are regenerated only when missing
or older than their source, written to a temp file beside the final path,
stamped with the source mtime and then renamed into place, so a failed or
interrupted encode never leaves a partial file at the final path.
"""

import logging
from collections import defaultdict
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Set, Union

from msync.config.input_dirs import prepare_dest_root, validate_roots
from msync.config.models import AppConfig
from msync.domain.events import ActionMessage, DiscoveryFinished
from msync.domain.models import Job, JobKind, JobStatus, RunSummary, SourceFile
from msync.infrastructure.event_bus import EventBus
from msync.infrastructure.exif_tool import ExifToolAdapter
from msync.infrastructure.ffmpeg import FFmpegAdapter
from msync.infrastructure.file_scanner import FileScanner
from msync.infrastructure.housekeeping import (
    HousekeepingService,
    discard,
    publish_artifact,
    temp_path_for,
    touch_ancestors,
)
from msync.infrastructure.tags import TagReader
from msync.pipeline.runner import JobRunner
from msync.pipeline.staleness import artifact_is_stale


def target_rel_path(rel_path: str, extension: str) -> str:
    return str(PurePosixPath(rel_path).with_suffix(extension))


class TranscodePipeline:
    """Transcode + cover extraction over one or more source roots.

    Args:
        config: AppConfig (format table, cover command, source extensions).
        event_bus: EventBus for discovery, action and job events.
        file_scanner: FileScanner restricted to the lossless source extensions.
        tag_reader: TagReader used to probe sources for embedded art.
        ffmpeg_adapter: FFmpegAdapter that runs the encoder/extractor commands.
        exif_adapter: ExifToolAdapter for formats whose encoder drops tags.
        runner: JobRunner executing the per-file jobs.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        file_scanner: FileScanner,
        tag_reader: TagReader,
        ffmpeg_adapter: FFmpegAdapter,
        exif_adapter: Optional[ExifToolAdapter],
        runner: JobRunner,
        housekeeper: Optional[HousekeepingService] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.file_scanner = file_scanner
        self.tag_reader = tag_reader
        self.ffmpeg_adapter = ffmpeg_adapter
        self.exif_adapter = exif_adapter
        self.runner = runner
        self.housekeeper = housekeeper or HousekeepingService()
        self.logger = logging.getLogger(__name__)

    def plan(
        self,
        sources: Dict[str, SourceFile],
        dest_root: Path,
        format_name: str,
        claimed: Set[Path],
    ) -> List[Job]:
        """Builds the work set for one root: stale covers first, then stale audio targets.

        A directory whose sources carry no embedded art gets no cover job.

        `claimed` collects every target already assigned in this run so that no
        two jobs ever write the same path.
        """
        extension = self.ffmpeg_adapter.profile(format_name).extension
        cover_name = self.config.transcode.cover_filename
        jobs: List[Job] = []

        by_dir: Dict[PurePosixPath, List[SourceFile]] = defaultdict(list)
        for rel_path in sorted(sources):
            by_dir[PurePosixPath(rel_path).parent].append(sources[rel_path])

        for rel_dir in sorted(by_dir):
            cover_path = dest_root / rel_dir / cover_name
            if cover_path in claimed:
                continue
            # Newest first, so the cover is stamped with the newest source mtime
            candidates = sorted(by_dir[rel_dir], key=lambda s: (-s.mtime_ns, s.rel_path))
            if not artifact_is_stale(candidates[0].mtime_ns, cover_path):
                continue
            art_source = next((c for c in candidates if self.tag_reader.has_cover(c.path)), None)
            if art_source is None:
                self.logger.debug(f"No embedded art under {rel_dir}, no cover to extract")
                continue
            claimed.add(cover_path)
            jobs.append(Job(
                kind=JobKind.EXTRACT_COVER,
                rel_path=str(rel_dir / cover_name),
                source=candidates[0],
                art_source=art_source,
                target=cover_path,
            ))

        for rel_path in sorted(sources):
            source = sources[rel_path]
            target = dest_root / target_rel_path(rel_path, extension)
            if target in claimed:
                self.logger.warning(f"Skipping {rel_path}: {target} is already produced by another source")
                continue
            claimed.add(target)
            if not artifact_is_stale(source.mtime_ns, target):
                continue
            jobs.append(Job(
                kind=JobKind.TRANSCODE,
                rel_path=rel_path,
                source=source,
                target=target,
                format_name=format_name,
            ))
        return jobs

    def _extract_cover(self, job: Job, dest_root: Path) -> JobStatus:
        target = job.target
        art_source = job.art_source
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = temp_path_for(target)
        try:
            self.ffmpeg_adapter.extract_cover(art_source.path, tmp_path)
            publish_artifact(tmp_path, target, job.source.mtime_ns)
        finally:
            discard(tmp_path)
        touch_ancestors(target, dest_root)
        self.logger.info(f"Cover extracted: {job.rel_path} (from {art_source.rel_path})")
        return JobStatus.COMPLETED

    def _transcode(self, job: Job, dest_root: Path) -> JobStatus:
        source = job.source
        target = job.target
        profile = self.ffmpeg_adapter.profile(job.format_name)

        target.parent.mkdir(parents=True, exist_ok=True)
        discard(target)
        tmp_path = temp_path_for(target)
        try:
            self.ffmpeg_adapter.encode(source.path, tmp_path, job.format_name)
            if profile.copy_tags:
                if self.exif_adapter is None:
                    raise RuntimeError(f"Format {job.format_name} needs tag copying but no tag writer is configured")
                self.exif_adapter.copy_tags(source.path, tmp_path)
            publish_artifact(tmp_path, target, source.mtime_ns)
        finally:
            discard(tmp_path)
        touch_ancestors(target, dest_root)
        self.logger.info(f"Transcoded: {job.rel_path} -> {target.name}")
        return JobStatus.COMPLETED

    def run(
        self,
        source_roots: Union[Path, List[Path]],
        dest_root: Path,
        format_name: str,
        dry_run: bool = False,
    ) -> RunSummary:
        if isinstance(source_roots, (str, Path)):
            source_roots = [source_roots]
        source_roots = validate_roots(list(source_roots))
        self.ffmpeg_adapter.profile(format_name)  # Unknown format is fatal before any work
        dest_root = prepare_dest_root(dest_root, source_roots, dry_run=dry_run)

        self.logger.info(
            f"Transcode started: format={format_name} roots={[str(r) for r in source_roots]} "
            f"dest={dest_root} dry_run={dry_run}"
        )
        if not dry_run:
            self.housekeeper.cleanup_temp_files(dest_root)

        total = RunSummary(dry_run=dry_run)
        claimed: Set[Path] = set()
        for root in source_roots:
            sources = self.file_scanner.scan(root)
            jobs = self.plan(sources, dest_root, format_name, claimed)
            self.logger.info(f"Discovery finished: root={root} found={len(sources)} to_process={len(jobs)}")
            self.event_bus.publish(DiscoveryFinished(
                root=root, files_found=len(sources), files_to_process=len(jobs)
            ))

            if dry_run:
                for job in jobs:
                    verb = "extract cover" if job.kind == JobKind.EXTRACT_COVER else "transcode"
                    message = f"Would {verb}: {job.rel_path} -> {job.target}"
                    self.logger.info(f"DRY RUN: {message}")
                    self.event_bus.publish(ActionMessage(message=message, dry_run=True))
                total = total.merge(RunSummary(found=len(sources), to_process=len(jobs), dry_run=True))
                continue

            def handle(job: Job, dest_root: Path = dest_root) -> JobStatus:
                if job.kind == JobKind.EXTRACT_COVER:
                    return self._extract_cover(job, dest_root)
                return self._transcode(job, dest_root)

            summary = self.runner.run(jobs, handle)
            summary.found = len(sources)
            total = total.merge(summary)

        self.logger.info(
            f"Transcode finished: found={total.found} ok={total.succeeded} "
            f"skipped={total.skipped} failed={total.failed}"
        )
        return total
