"""Staleness predicates.

Both predicates compare modification times at millisecond precision so
that a destination filesystem with coarser timestamps than the source
does not cause endless regeneration. Changes that keep the mtime within
the same millisecond (or tools that restore mtimes after editing) go
undetected; content is never hashed.
"""

import os
from pathlib import Path
from typing import Optional
from msync.domain.models import IndexEntry, SourceFile

NS_PER_MS = 1_000_000


def ns_to_ms(mtime_ns: int) -> int:
    return (mtime_ns + NS_PER_MS // 2) // NS_PER_MS


def seconds_to_ms(mtime_s: float) -> int:
    return int(round(mtime_s * 1000))


def ms_to_seconds(mtime_ms: int) -> float:
    """Unix seconds with a millisecond fraction, as stored in index.json."""
    return mtime_ms / 1000


def index_is_stale(entry: Optional[IndexEntry], source: SourceFile) -> bool:
    """True when the file has no index entry or its mtime changed since indexing."""
    if entry is None:
        return True
    return seconds_to_ms(entry.mtime) != ns_to_ms(source.mtime_ns)


def target_mtime_ns(target: Path) -> Optional[int]:
    try:
        return os.stat(target).st_mtime_ns
    except FileNotFoundError:
        return None


def artifact_is_stale(source_mtime_ns: int, target: Path) -> bool:
    """True when target is missing or older than the source."""
    existing = target_mtime_ns(target)
    if existing is None:
        return True
    return ns_to_ms(source_mtime_ns) > ns_to_ms(existing)
