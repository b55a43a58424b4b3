"""Two-tier PDF discovery: indexed lookup first, directory walk as backstop."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, Iterable

from docshelf.models import DocumentRecord, ListingEntry, path_to_uri
from docshelf.scanner.media_index import PDF_MIME_TYPE, MediaIndex
from docshelf.scanner.walker import (
    is_storable,
    iter_pdf_paths,
    list_directory,
    stat_record,
    within_walk,
)

LOGGER = logging.getLogger(__name__)


class ScanError(OSError):
    """Raised when no scanning strategy could enumerate the root."""


class FilesystemScanner:
    """Enumerates PDF documents under a storage root."""

    def __init__(
        self,
        root: Path,
        *,
        media_index: MediaIndex | None = None,
        exclude_dirs: Iterable[str] = (),
        skip_hidden: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.media_index = media_index
        self.exclude_dirs = tuple(exclude_dirs)
        self.skip_hidden = skip_hidden
        self.clock = clock

    def scan(self) -> list[DocumentRecord]:
        """Return every PDF found, newest modification first."""
        scanned_at = int(self.clock() * 1000)

        if self.media_index is not None:
            try:
                records = self._scan_media_index(self.media_index, scanned_at)
            except Exception as exc:
                LOGGER.warning("Media index scan failed, falling back to file walk: %s", exc)
            else:
                if records:
                    LOGGER.debug("Media index scan found %d PDFs", len(records))
                    return records
                LOGGER.debug("Media index returned no PDFs, falling back to file walk")

        return self._scan_walk(scanned_at)

    def _in_scope(self, path: str) -> bool:
        """Apply the walk's root and pruning rules to an index hit."""
        absolute = Path(os.path.abspath(path))
        roots = {Path(os.path.abspath(self.root)), Path(os.path.realpath(self.root))}
        return any(
            within_walk(
                absolute, root, exclude_dirs=self.exclude_dirs, skip_hidden=self.skip_hidden
            )
            for root in roots
        )

    def _scan_media_index(self, media_index: MediaIndex, scanned_at: int) -> list[DocumentRecord]:
        root = Path(os.path.abspath(self.root))
        records: list[DocumentRecord] = []
        for entry in media_index.query(PDF_MIME_TYPE, root):
            if not self._in_scope(entry.path) or not is_storable(entry.path):
                continue
            # The index can be stale
            if not os.path.isfile(entry.path) or os.path.islink(entry.path):
                continue
            records.append(
                DocumentRecord(
                    path=entry.path,
                    display_name=entry.name or Path(entry.path).name,
                    size_bytes=entry.size_bytes,
                    last_modified_at=entry.modified_at,
                    source_uri=path_to_uri(entry.path),
                    last_scanned_at=scanned_at,
                )
            )
        return records

    def _scan_walk(self, scanned_at: int) -> list[DocumentRecord]:
        start = time.perf_counter()
        records: list[DocumentRecord] = []
        try:
            for path in iter_pdf_paths(
                self.root, exclude_dirs=self.exclude_dirs, skip_hidden=self.skip_hidden
            ):
                record = stat_record(path, scanned_at)
                if record is not None:
                    records.append(record)
        except OSError as exc:
            raise ScanError(f"Cannot scan {self.root}: {exc}") from exc

        records.sort(key=lambda record: record.last_modified_at, reverse=True)
        LOGGER.debug(
            "File walk found %d PDFs in %.0fms",
            len(records),
            (time.perf_counter() - start) * 1000,
        )
        return records

    def list_files(self, directory: Path) -> list[ListingEntry]:
        return list_directory(Path(directory), skip_hidden=self.skip_hidden)
