"""Packager data type definitions."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional

from packager.exceptions import InvalidManifestError
from packager.paths import validate_relative_path


class EntryType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ManifestEntry:
    """
    One item the client declares at finalize time.
    """
    type: EntryType
    relative_path: str
    total_chunks: int = 0

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIRECTORY


@dataclass(frozen=True)
class SweepReport:
    """
    Outcome of one reclamation sweep.
    """
    expired: int
    deleted: int
    failed: int
    stale_uploads: int
    duration_seconds: float


def parse_manifest(raw_entries: Iterable[Mapping[str, Any]]) -> List[ManifestEntry]:
    """
    Validate raw manifest entries and build ManifestEntry values.

    Args:
        raw_entries: Mappings with type, relative_path and total_chunks keys

    Returns:
        Entries in the order given

    Raises:
        InvalidPathError: If any path is absolute or escapes the upload root
        InvalidManifestError: If an entry is malformed, a path repeats or a
            path is nested under a file entry
    """
    entries = []
    seen = set()

    for position, raw in enumerate(raw_entries):
        try:
            entry_type = EntryType(raw.get("type"))
        except ValueError:
            raise InvalidManifestError(
                f"Entry {position} has unknown type {raw.get('type')!r}"
            ) from None

        relative_path = validate_relative_path(raw.get("relative_path"))

        if relative_path in seen:
            raise InvalidManifestError(f"Path '{relative_path}' appears more than once")
        seen.add(relative_path)

        total_chunks: Optional[int] = raw.get("total_chunks")
        if entry_type is EntryType.FILE:
            if not isinstance(total_chunks, int) or isinstance(total_chunks, bool) or total_chunks < 0:
                raise InvalidManifestError(
                    f"File entry '{relative_path}' needs a non-negative total_chunks"
                )
        else:
            total_chunks = 0

        entries.append(ManifestEntry(entry_type, relative_path, total_chunks))

    files = {entry.relative_path for entry in entries if not entry.is_directory}
    for entry in entries:
        parts = entry.relative_path.split("/")
        for depth in range(1, len(parts)):
            ancestor = "/".join(parts[:depth])
            if ancestor in files:
                raise InvalidManifestError(
                    f"Path '{entry.relative_path}' is nested under file entry '{ancestor}'"
                )

    return entries
