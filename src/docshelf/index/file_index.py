"""Cache-first index of PDF documents on the device."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Iterable

from docshelf.config import STALENESS_WINDOW_SECONDS
from docshelf.index.storage import SQLiteRecordStore
from docshelf.models import DocumentRecord, IndexSnapshot, ListingEntry, path_to_uri
from docshelf.scanner.scanner import FilesystemScanner, ScanError

LOGGER = logging.getLogger(__name__)

SnapshotListener = Callable[[IndexSnapshot], None]


class FileIndex:
    """Serves the last known document list, refreshing it when stale.

    A refresh scans the filesystem, upserts every observed document and evicts
    records whose files were not observed, all in one store transaction.
    Failures never propagate: the caller gets the stale snapshot (or an empty
    one) with ``warning`` set.
    """

    def __init__(
        self,
        store: SQLiteRecordStore,
        scanner: FilesystemScanner,
        *,
        staleness_window: float = STALENESS_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.staleness_window = staleness_window
        self.clock = clock
        self._refresh_lock = threading.Lock()
        self._refreshes_started = 0
        self._last_refresh: IndexSnapshot | None = None

    def _now_millis(self) -> int:
        return int(self.clock() * 1000)

    def get_snapshot(self, force_refresh: bool = False) -> IndexSnapshot:
        if not force_refresh:
            cached = self._fresh_cache()
            if cached is not None:
                return cached

        started_before = self._refreshes_started
        with self._refresh_lock:
            # Only a refresh that started after this call may stand in for it.
            if self._refreshes_started > started_before and self._last_refresh is not None:
                LOGGER.debug("Reusing snapshot from concurrent refresh")
                return self._last_refresh

            self._refreshes_started += 1
            snapshot = self._refresh()
            self._last_refresh = snapshot
            return snapshot

    def _fresh_cache(self) -> IndexSnapshot | None:
        try:
            count = self.store.count()
            last_scan = self.store.max_last_scanned() or 0
            now = self._now_millis()
            age = now - last_scan
            if count > 0 and age < self.staleness_window * 1000:
                LOGGER.debug("Using cached files: %d entries, age: %ds", count, age // 1000)
                records = self.store.all_records()
                if records:
                    return IndexSnapshot(tuple(records), now, from_cache=True)
        except sqlite3.Error as exc:
            LOGGER.warning("Failed to read file index cache: %s", exc)
        return None

    def _refresh(self) -> IndexSnapshot:
        LOGGER.debug("Performing full filesystem scan")
        now = self._now_millis()
        try:
            records = self.scanner.scan()
        except ScanError as exc:
            LOGGER.warning("Filesystem scan failed, serving cached files: %s", exc)
            return self._degraded(str(exc))

        try:
            removed = self.store.replace_all(records)
        except (sqlite3.Error, UnicodeError) as exc:
            LOGGER.warning("Failed to persist scan results: %s", exc)
            return IndexSnapshot(tuple(records), now, warning=f"Index not persisted: {exc}")

        LOGGER.info("Cache updated with %d files (%d stale entries removed)", len(records), removed)
        return IndexSnapshot(tuple(records), now)

    def _degraded(self, reason: str) -> IndexSnapshot:
        now = self._now_millis()
        try:
            stale = self.store.all_records()
        except sqlite3.Error as exc:
            LOGGER.warning("Failed to read file index cache: %s", exc)
            stale = []
        return IndexSnapshot(tuple(stale), now, from_cache=bool(stale), warning=reason)

    def cached_records(self) -> IndexSnapshot:
        """Return whatever the store holds, without checking freshness."""
        now = self._now_millis()
        try:
            return IndexSnapshot(tuple(self.store.all_records()), now, from_cache=True)
        except sqlite3.Error as exc:
            LOGGER.warning("Failed to read file index cache: %s", exc)
            return IndexSnapshot((), now, warning=str(exc))

    def get(self, path: str) -> DocumentRecord | None:
        try:
            return self.store.get(path)
        except (sqlite3.Error, UnicodeError) as exc:
            LOGGER.warning("Failed to read %s from file index: %s", path, exc)
            return None

    def invalidate(self, path: str) -> bool:
        try:
            return self.store.delete(path)
        except (sqlite3.Error, UnicodeError) as exc:
            LOGGER.warning("Failed to invalidate %s: %s", path, exc)
            return False

    def invalidate_many(self, paths: Iterable[str]) -> int:
        try:
            return self.store.delete_many(paths)
        except (sqlite3.Error, UnicodeError) as exc:
            LOGGER.warning("Failed to invalidate paths: %s", exc)
            return 0

    def update_path_on_rename(
        self, old_path: str, new_path: str, new_name: str, new_uri: str
    ) -> bool:
        try:
            return self.store.rename(old_path, new_path, new_name, new_uri)
        except (sqlite3.Error, UnicodeError) as exc:
            LOGGER.warning("Failed to update renamed file %s: %s", old_path, exc)
            return False

    def clear(self) -> None:
        try:
            self.store.clear()
        except sqlite3.Error as exc:
            LOGGER.warning("Failed to clear file index: %s", exc)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every store change."""
        return self.store.subscribe(lambda: listener(self.cached_records()))

    def list_files(self, directory: Path) -> list[ListingEntry]:
        return self.scanner.list_files(directory)

    def rename_file(self, path: str, new_name: str) -> bool:
        """Rename a file on disk and rewrite its record; refuses to overwrite."""
        source = Path(path)
        target = source.with_name(new_name)
        if target.exists():
            LOGGER.warning("Cannot rename %s: %s already exists", source, target)
            return False
        try:
            os.rename(source, target)
        except OSError as exc:
            LOGGER.warning("Failed to rename %s: %s", source, exc)
            return False

        self.update_path_on_rename(str(source), str(target), new_name, path_to_uri(target))
        return True

    def delete_file(self, path: str) -> bool:
        """Delete a file on disk and evict its record."""
        try:
            os.remove(path)
        except OSError as exc:
            LOGGER.warning("Failed to delete %s: %s", path, exc)
            return False

        self.invalidate(path)
        return True
