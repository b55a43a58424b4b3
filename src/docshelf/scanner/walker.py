"""Utility helpers for walking directories and listing PDF files."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Iterable, Iterator

from docshelf.models import DocumentRecord, ListingEntry, path_to_uri

LOGGER = logging.getLogger(__name__)

PDF_SUFFIX = ".pdf"


def is_pdf_name(name: str) -> bool:
    return name.lower().endswith(PDF_SUFFIX)


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_storable(path: str) -> bool:
    """Whether ``path`` encodes to UTF-8, which SQLite text columns require."""
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def within_walk(
    path: Path,
    root: Path,
    *,
    exclude_dirs: Iterable[str] = (),
    skip_hidden: bool = True,
) -> bool:
    """Whether walking ``root`` with the same pruning would reach ``path``."""
    try:
        relative = path.relative_to(root)
    except ValueError:
        return False
    if not relative.parts or not is_pdf_name(relative.name):
        return False
    excluded = set(exclude_dirs)
    return not any(
        name in excluded or (skip_hidden and _is_hidden(name)) for name in relative.parts[:-1]
    )


def mtime_millis(st: os.stat_result) -> int:
    return st.st_mtime_ns // 1_000_000


def iter_pdf_paths(
    root: Path,
    *,
    exclude_dirs: Iterable[str] = (),
    skip_hidden: bool = True,
) -> Iterator[Path]:
    """Yield regular PDF files under ``root``, descending into directories.

    Symlinks are not followed. Subdirectories that cannot be read are skipped;
    an unreadable root raises the underlying ``OSError``.
    """
    excluded = set(exclude_dirs)
    root = Path(root)
    # Surface a missing or unreadable root instead of yielding nothing.
    with os.scandir(root):
        pass

    def _on_error(exc: OSError) -> None:
        LOGGER.debug("Skipping unreadable directory %s: %s", exc.filename, exc)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
        dirnames[:] = sorted(
            name
            for name in dirnames
            if name not in excluded and not (skip_hidden and _is_hidden(name))
        )
        for name in sorted(filenames):
            if not is_pdf_name(name):
                continue
            path = Path(dirpath) / name
            if path.is_file() and not path.is_symlink():
                yield path


def stat_record(path: Path, scanned_at: int) -> DocumentRecord | None:
    """Build a record from filesystem metadata, or None if the file is gone or unstorable."""
    if not is_storable(str(path)):
        LOGGER.debug("Skipping %r: name is not valid UTF-8", str(path))
        return None
    try:
        st = path.stat()
    except OSError as exc:
        LOGGER.debug("Cannot stat %s: %s", path, exc)
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return DocumentRecord(
        path=str(path),
        display_name=path.name,
        size_bytes=st.st_size,
        last_modified_at=mtime_millis(st),
        source_uri=path_to_uri(path),
        last_scanned_at=scanned_at,
    )


def list_directory(directory: Path, *, skip_hidden: bool = True) -> list[ListingEntry]:
    """List directories and PDF files directly inside ``directory``.

    Directories come first, then files, each alphabetically ignoring case.
    Returns an empty list when the directory cannot be read.
    """
    entries: list[ListingEntry] = []
    try:
        with os.scandir(directory) as it:
            children = list(it)
    except OSError as exc:
        LOGGER.debug("Cannot list %s: %s", directory, exc)
        return []

    for child in children:
        if skip_hidden and _is_hidden(child.name):
            continue
        try:
            is_dir = child.is_dir()
            if not is_dir and not (child.is_file() and is_pdf_name(child.name)):
                continue
            st = child.stat()
        except OSError:
            continue
        entries.append(
            ListingEntry(
                name=child.name,
                path=child.path,
                size_bytes=0 if is_dir else st.st_size,
                last_modified_at=mtime_millis(st),
                source_uri=path_to_uri(child.path),
                is_directory=is_dir,
            )
        )

    entries.sort(key=lambda entry: (not entry.is_directory, entry.name.lower()))
    return entries
