"""Tag reading through mutagen.

One TagReader dispatches on file extension to a backend that knows the
tag container of that format (Vorbis comments, ID3 frames, MP4 atoms,
APEv2 items). Every backend returns the same TagFields model, so callers
never branch on format.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import mutagen
from mutagen.id3 import ID3

from msync.domain.errors import TagReadError
from msync.domain.models import TagFields

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(\d+)")
_YEAR = re.compile(r"(\d{4})")


def parse_number(value: Any) -> Optional[int]:
    """Leading integer of a tag value ("07", "7/12", "7 of 12")."""
    if value is None:
        return None
    match = _LEADING_NUMBER.match(str(value))
    return int(match.group(1)) if match else None


def parse_number_pair(value: Any) -> Tuple[Optional[int], Optional[int]]:
    """Splits "n/total" into its two numbers; total may be missing."""
    if value is None:
        return None, None
    text = str(value)
    if "/" in text:
        number, total = text.split("/", 1)
        return parse_number(number), parse_number(total)
    return parse_number(text), None


def parse_year(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = _YEAR.search(str(value))
    return int(match.group(1)) if match else None


def _first_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    text = str(value).strip()
    return text or None


class TagBackend:
    """Reads one family of tag containers into TagFields."""

    extensions: Tuple[str, ...] = ()

    def read(self, path: Path) -> TagFields:
        try:
            audio = mutagen.File(str(path))
        except mutagen.MutagenError as exc:
            raise TagReadError(path, str(exc)) from exc
        if audio is None:
            raise TagReadError(path, "unsupported or unrecognized audio file")

        fields = self.parse(audio)
        info = getattr(audio, "info", None)
        length = getattr(info, "length", None)
        if length:
            fields.duration = float(length)
        bitrate = getattr(info, "bitrate", None)
        if bitrate:
            fields.bitrate = int(bitrate) // 1000
        return fields

    def parse(self, audio: Any) -> TagFields:
        raise NotImplementedError


class MappingBackend(TagBackend):
    """Tag containers that behave like case-insensitive text mappings (Vorbis, APEv2)."""

    extensions = (".flac", ".ogg", ".opus", ".wv", ".ape", ".aac")

    def _lookup(self, tags: Dict[str, Any], *keys: str) -> Optional[str]:
        for key in keys:
            value = tags.get(key)
            text = _first_text(value)
            if text is not None:
                return text
        return None

    def _normalize(self, tags: Any) -> Dict[str, Any]:
        normalized: Dict[str, Any] = {}
        if tags is None:
            return normalized
        for key, value in tags.items():
            if isinstance(value, list):
                values = [str(v) for v in value]
            elif hasattr(value, "value"):
                # APEv2 items; text items carry "\0"-separated lists
                values = str(value).split("\0")
            else:
                values = [str(value)]
            normalized.setdefault(key.lower(), values)
        return normalized

    def _has_cover(self, audio: Any, tags: Dict[str, Any]) -> bool:
        if getattr(audio, "pictures", None):
            return True
        return any(
            key in tags
            for key in ("metadata_block_picture", "coverart", "cover art (front)")
        )

    def parse(self, audio: Any) -> TagFields:
        tags = self._normalize(audio.tags)
        track, track_total = parse_number_pair(self._lookup(tags, "tracknumber", "track"))
        disc, disc_total = parse_number_pair(self._lookup(tags, "discnumber", "disc"))
        return TagFields(
            title=self._lookup(tags, "title"),
            artist=self._lookup(tags, "artist"),
            album=self._lookup(tags, "album"),
            album_artist=self._lookup(tags, "albumartist", "album artist", "album_artist"),
            genre=self._lookup(tags, "genre"),
            year=parse_year(self._lookup(tags, "date", "year", "originaldate")),
            track_number=track,
            track_total=track_total or parse_number(self._lookup(tags, "tracktotal", "totaltracks")),
            disc_number=disc,
            disc_total=disc_total or parse_number(self._lookup(tags, "disctotal", "totaldiscs")),
            composer=self._lookup(tags, "composer"),
            performer=self._lookup(tags, "performer"),
            work=self._lookup(tags, "work"),
            grouping=self._lookup(tags, "grouping", "contentgroup"),
            label=self._lookup(tags, "label", "organization", "publisher"),
            has_cover=self._has_cover(audio, tags),
        )


class ID3Backend(TagBackend):
    """ID3v2 frames (MP3, and WAV/AIFF files carrying an ID3 chunk)."""

    extensions = (".mp3", ".wav")

    def _text(self, tags: Any, frame_id: str) -> Optional[str]:
        frame = tags.get(frame_id)
        if frame is None:
            return None
        return _first_text(list(getattr(frame, "text", [])))

    def parse(self, audio: Any) -> TagFields:
        tags = audio.tags
        if tags is None or not isinstance(tags, ID3):
            return TagFields()
        track, track_total = parse_number_pair(self._text(tags, "TRCK"))
        disc, disc_total = parse_number_pair(self._text(tags, "TPOS"))
        year_text = self._text(tags, "TDRC") or self._text(tags, "TYER")
        return TagFields(
            title=self._text(tags, "TIT2"),
            artist=self._text(tags, "TPE1"),
            album=self._text(tags, "TALB"),
            album_artist=self._text(tags, "TPE2"),
            genre=self._text(tags, "TCON"),
            year=parse_year(year_text),
            track_number=track,
            track_total=track_total,
            disc_number=disc,
            disc_total=disc_total,
            composer=self._text(tags, "TCOM"),
            performer=self._text(tags, "TXXX:PERFORMER"),
            work=self._text(tags, "TXXX:WORK"),
            grouping=self._text(tags, "TIT1"),
            label=self._text(tags, "TPUB"),
            has_cover=bool(tags.getall("APIC")),
        )


class MP4Backend(TagBackend):
    """iTunes-style MP4 atoms."""

    extensions = (".m4a", ".mp4")

    def _text(self, tags: Any, key: str) -> Optional[str]:
        value = tags.get(key)
        if value and isinstance(value[0], bytes):
            value = [value[0].decode("utf-8", errors="replace")]
        return _first_text(value)

    def _pair(self, tags: Any, key: str) -> Tuple[Optional[int], Optional[int]]:
        value = tags.get(key)
        if not value:
            return None, None
        number, total = value[0]
        return (number or None), (total or None)

    def parse(self, audio: Any) -> TagFields:
        tags = audio.tags
        if tags is None or not hasattr(tags, "get"):
            return TagFields()
        track, track_total = self._pair(tags, "trkn")
        disc, disc_total = self._pair(tags, "disk")
        return TagFields(
            title=self._text(tags, "\xa9nam"),
            artist=self._text(tags, "\xa9ART"),
            album=self._text(tags, "\xa9alb"),
            album_artist=self._text(tags, "aART"),
            genre=self._text(tags, "\xa9gen"),
            year=parse_year(self._text(tags, "\xa9day")),
            track_number=track,
            track_total=track_total,
            disc_number=disc,
            disc_total=disc_total,
            composer=self._text(tags, "\xa9wrt"),
            performer=self._text(tags, "----:com.apple.iTunes:PERFORMER"),
            work=self._text(tags, "\xa9wrk"),
            grouping=self._text(tags, "\xa9grp"),
            label=self._text(tags, "----:com.apple.iTunes:LABEL"),
            has_cover=bool(tags.get("covr")),
        )


class TagReader:
    """Reads uniform TagFields from any supported audio file, dispatching on extension."""

    def __init__(self, backends: Optional[List[TagBackend]] = None):
        self._backends: Dict[str, TagBackend] = {}
        for backend in backends or [MappingBackend(), ID3Backend(), MP4Backend()]:
            for ext in backend.extensions:
                self._backends[ext] = backend

    def read(self, path: Path) -> TagFields:
        backend = self._backends.get(path.suffix.lower())
        if backend is None:
            raise TagReadError(path, f"no tag backend for '{path.suffix}' files")
        return backend.read(path)

    def has_cover(self, path: Path) -> bool:
        """True when the file carries embedded art; unreadable files count as no art."""
        try:
            return self.read(path).has_cover
        except TagReadError as exc:
            logger.debug(f"COVER_PROBE: {path.name} unreadable: {exc}")
            return False
