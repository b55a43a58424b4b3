"""Core DocShelf data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator


def path_to_uri(path: str | Path) -> str:
    """Return the ``file://`` locator used for a local path."""
    return Path(path).absolute().as_uri()


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """One indexed PDF, keyed by its path."""

    path: str
    display_name: str
    size_bytes: int
    last_modified_at: int
    source_uri: str
    last_scanned_at: int


@dataclass(frozen=True, slots=True)
class ListingEntry:
    """A row of a single-directory listing (PDF file or directory)."""

    name: str
    path: str
    size_bytes: int
    last_modified_at: int
    source_uri: str
    is_directory: bool = False


def record_to_entry(record: DocumentRecord) -> ListingEntry:
    return ListingEntry(
        name=record.display_name,
        path=record.path,
        size_bytes=record.size_bytes,
        last_modified_at=record.last_modified_at,
        source_uri=record.source_uri,
        is_directory=False,
    )


def entry_to_record(entry: ListingEntry, scanned_at: int) -> DocumentRecord:
    if entry.is_directory:
        raise ValueError(f"Directories are not indexed: {entry.path}")
    return DocumentRecord(
        path=entry.path,
        display_name=entry.name,
        size_bytes=entry.size_bytes,
        last_modified_at=entry.last_modified_at,
        source_uri=entry.source_uri,
        last_scanned_at=scanned_at,
    )


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    """Read-only view of the indexed documents.

    ``warning`` carries a non-fatal failure description when the snapshot is
    degraded (stale or empty because a refresh could not complete).
    """

    records: tuple[DocumentRecord, ...]
    snapshot_taken_at: int
    from_cache: bool = False
    warning: str | None = None

    def __iter__(self) -> Iterator[DocumentRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def paths(self) -> list[str]:
        return [record.path for record in self.records]


@dataclass(frozen=True, slots=True)
class DuplicateMember:
    path: str
    size_bytes: int
    last_modified_at: int


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    """Files sharing one full-content hash."""

    content_hash: str
    members: tuple[DuplicateMember, ...]

    def __post_init__(self) -> None:
        if len(self.members) < 2:
            raise ValueError("A duplicate group needs at least two members")
        if len({member.path for member in self.members}) != len(self.members):
            raise ValueError("Duplicate group members must have distinct paths")

    @property
    def paths(self) -> list[str]:
        return [member.path for member in self.members]

    @property
    def size_bytes(self) -> int:
        return self.members[0].size_bytes

    @property
    def reclaimable_bytes(self) -> int:
        return sum(member.size_bytes for member in self.members[1:])


@dataclass(slots=True)
class DuplicateReport:
    groups: list[DuplicateGroup] = field(default_factory=list)
    files_scanned: int = 0
    cancelled: bool = False

    @property
    def reclaimable_bytes(self) -> int:
        return sum(group.reclaimable_bytes for group in self.groups)


class RetentionPolicy(str, enum.Enum):
    KEEP_NEWEST = "keepNewest"
    KEEP_OLDEST = "keepOldest"


@dataclass(frozen=True, slots=True)
class RetentionDecision:
    content_hash: str
    policy: RetentionPolicy
    retained: str
    to_delete: frozenset[str]
    reclaimable_bytes: int


@dataclass(frozen=True, slots=True)
class PreloadEntry:
    key: str
    page_count: int
    first_page_width: int
    first_page_height: int
    thumbnail: bytes | None
    produced_at: float
