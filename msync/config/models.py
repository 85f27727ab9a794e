import os
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

def default_thread_count() -> int:
    """Worker pool size: hardware parallelism, never fewer than 4."""
    return max(os.cpu_count() or 1, 4)

def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"

class FormatProfile(BaseModel):
    """One row of the encoder table. `{source}` and `{output}` are substituted."""
    extension: str
    command: List[str]
    copy_tags: bool = False  # Encoder drops tags; copy them afterwards

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        return _normalize_extension(v)

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("command must not be empty")
        joined = " ".join(v)
        if "{source}" not in joined or "{output}" not in joined:
            raise ValueError("command must reference both {source} and {output}")
        return v

def _default_formats() -> Dict[str, FormatProfile]:
    return {
        "opus": FormatProfile(
            extension=".opus",
            command=[
                "ffmpeg", "-y", "-loglevel", "quiet",
                "-i", "{source}",
                "-c:a", "libopus", "-map", "a:0", "-b:a", "128k",
                "-f", "opus", "{output}",
            ],
        ),
        "mp3": FormatProfile(
            extension=".mp3",
            command=[
                "ffmpeg", "-y", "-loglevel", "quiet",
                "-i", "{source}",
                "-map", "a:0", "-map_metadata", "0", "-id3v2_version", "3",
                "-q:a", "5",
                "-f", "mp3", "{output}",
            ],
        ),
        "aac": FormatProfile(
            extension=".m4a",
            command=[
                "ffmpeg", "-y", "-loglevel", "quiet",
                "-i", "{source}",
                "-map", "a:0", "-map_metadata", "-1",
                "-c:a", "aac", "-b:a", "192k",
                "-f", "ipod", "{output}",
            ],
            copy_tags=True,
        ),
    }

def _default_cover_command() -> List[str]:
    return [
        "ffmpeg", "-y", "-loglevel", "quiet",
        "-i", "{source}",
        "-an", "-frames:v", "1", "-c:v", "mjpeg",
        "-f", "image2", "-update", "1", "{output}",
    ]

class GeneralConfig(BaseModel):
    threads: int = Field(default_factory=default_thread_count, gt=0)
    progress_every: int = Field(default=10, ge=1)
    log_path: Optional[str] = None
    debug: bool = False

class ScanConfig(BaseModel):
    audio_extensions: List[str] = Field(
        default_factory=lambda: [".mp3", ".flac", ".wav", ".m4a", ".aac", ".ogg", ".opus", ".wv", ".ape"]
    )
    # Extensions a transcoded file may have been produced from (used by prune)
    lossless_extensions: List[str] = Field(default_factory=lambda: [".flac"])
    index_filename: str = "index.json"

    @field_validator("audio_extensions", "lossless_extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        normalized = [_normalize_extension(ext) for ext in v if ext.strip()]
        if not normalized:
            raise ValueError("extension list must not be empty")
        return normalized

class TranscodeConfig(BaseModel):
    cover_filename: str = "cover.jpg"
    # Also delete a cover once its directory has no transcoded audio left
    prune_covers: bool = False
    cover_command: List[str] = Field(default_factory=_default_cover_command)
    formats: Dict[str, FormatProfile] = Field(default_factory=_default_formats)

    @model_validator(mode="after")
    def validate_formats(self):
        if not self.formats:
            raise ValueError("at least one transcode format is required")
        extensions = [profile.extension for profile in self.formats.values()]
        if len(set(extensions)) != len(extensions):
            raise ValueError("transcode formats must use distinct extensions")
        return self

    @property
    def transcoded_extensions(self) -> List[str]:
        return sorted(profile.extension for profile in self.formats.values())

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
