from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

class JobKind(str, Enum):
    EXTRACT_METADATA = "EXTRACT_METADATA"
    TRANSCODE = "TRANSCODE"
    EXTRACT_COVER = "EXTRACT_COVER"

class JobStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"  # Nothing to publish
    FAILED = "FAILED"

class SourceFile(BaseModel):
    rel_path: str
    path: Path
    mtime_ns: int
    size_bytes: int

class TagFields(BaseModel):
    """Uniform tag field set returned by every tag backend."""
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    track_total: Optional[int] = None
    disc_number: Optional[int] = None
    disc_total: Optional[int] = None
    composer: Optional[str] = None
    performer: Optional[str] = None
    work: Optional[str] = None
    grouping: Optional[str] = None
    label: Optional[str] = None
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    has_cover: bool = False

class IndexEntry(BaseModel):
    """One track in index.json. Serialized with camelCase keys, None fields omitted."""
    model_config = ConfigDict(populate_by_name=True)

    mtime: float
    size: int
    duration: Optional[int] = None
    bitrate: Optional[int] = None
    album: Optional[str] = None
    artist: Optional[str] = None
    title: Optional[str] = None
    album_artist: Optional[str] = Field(default=None, alias="albumArtist")
    composer: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = Field(default=None, alias="trackNumber")
    track_number_total: Optional[int] = Field(default=None, alias="trackNumberTotal")
    disk_number: Optional[int] = Field(default=None, alias="diskNumber")
    disk_number_total: Optional[int] = Field(default=None, alias="diskNumberTotal")
    performer: Optional[str] = None
    work: Optional[str] = None
    grouping: Optional[str] = None
    label: Optional[str] = None

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

class Job(BaseModel):
    kind: JobKind
    rel_path: str
    source: SourceFile
    target: Optional[Path] = None
    # Cover jobs: the source the embedded art is read from
    art_source: Optional[SourceFile] = None
    format_name: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None

class RunSummary(BaseModel):
    found: int = 0
    to_process: int = 0
    to_remove: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    dry_run: bool = False

    def merge(self, other: "RunSummary") -> "RunSummary":
        return RunSummary(
            found=self.found + other.found,
            to_process=self.to_process + other.to_process,
            to_remove=self.to_remove + other.to_remove,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            dry_run=self.dry_run or other.dry_run,
        )
