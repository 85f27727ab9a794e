import os
from pathlib import Path
from typing import List, Optional
from msync.domain.errors import RootPathError


def _strip_wrapping_quotes(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ('"', "'"):
        return trimmed[1:-1]
    return trimmed


def dedupe_preserve_order(entries: List[Path]) -> List[Path]:
    seen = set()
    deduped: List[Path] = []
    for entry in entries:
        if entry not in seen:
            seen.add(entry)
            deduped.append(entry)
    return deduped


def validate_root(entry: os.PathLike) -> Path:
    """Returns the absolute root path; raises RootPathError if it is missing or not a directory."""
    path = Path(_strip_wrapping_quotes(str(entry))).expanduser()
    if not path.exists():
        raise RootPathError(path, "Directory does not exist")
    if not path.is_dir():
        raise RootPathError(path, "Path is not a directory")
    if not os.access(path, os.R_OK | os.X_OK):
        raise RootPathError(path, "Directory is not readable")
    return path.resolve()


def validate_roots(entries: List[os.PathLike]) -> List[Path]:
    """Validates every root before any work begins; duplicates are dropped."""
    if not entries:
        raise ValueError("At least one directory is required.")
    return dedupe_preserve_order([validate_root(entry) for entry in entries])


def check_not_nested(dest_root: Path, source_roots: List[Path]) -> Optional[Path]:
    """Returns the first source root that contains (or equals) dest_root, if any."""
    for root in source_roots:
        if dest_root == root or root in dest_root.parents:
            return root
    return None


def prepare_dest_root(
    entry: os.PathLike,
    source_roots: Optional[List[Path]] = None,
    dry_run: bool = False,
) -> Path:
    """Resolves the destination root, creating it unless this is a dry run.

    A destination inside one of the source roots would be scanned as
    source on the next run, so it is rejected before anything is created.
    """
    path = Path(_strip_wrapping_quotes(str(entry))).expanduser()
    if path.exists() and not path.is_dir():
        raise RootPathError(path, "Destination is not a directory")
    nested = check_not_nested(path.resolve(), source_roots or [])
    if nested is not None:
        raise RootPathError(path, f"Destination lies inside source root {nested}")
    if not path.exists() and not dry_run:
        path.mkdir(parents=True)
    return path.resolve()
