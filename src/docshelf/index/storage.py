"""SQLite record store for the file index."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Sequence

from docshelf.models import DocumentRecord

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class SQLiteRecordStore:
    """Persistence layer for indexed document records.

    Writes go through a single connection guarded by a lock, one SQLite
    transaction per logical operation. Reads share a second connection behind
    their own lock; in WAL mode they see the last committed state without
    waiting for a writer.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._write_lock = threading.RLock()
        self._conn = self._connect()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._reader_conn = self._connect()
        self._read_lock = threading.Lock()
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = threading.Lock()
        self._closed = False
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._write_lock:
            self._closed = True
            with self._read_lock:
                self._reader_conn.close()
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._read_lock:
            if self._closed:
                raise sqlite3.ProgrammingError("Cannot operate on a closed store.")
            yield self._reader_conn

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    last_modified_at INTEGER NOT NULL,
                    source_uri TEXT NOT NULL,
                    last_scanned_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_documents_last_modified
                    ON documents(last_modified_at)
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_documents_last_scanned
                    ON documents(last_scanned_at)
                """
            )
            conn.execute("CREATE TEMP TABLE IF NOT EXISTS scan_paths (path TEXT PRIMARY KEY)")

    # -- change notification -------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` for committed changes; returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                LOGGER.exception("Store change listener failed")

    # -- reads ---------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> DocumentRecord:
        return DocumentRecord(
            path=row["path"],
            display_name=row["display_name"],
            size_bytes=row["size_bytes"],
            last_modified_at=row["last_modified_at"],
            source_uri=row["source_uri"],
            last_scanned_at=row["last_scanned_at"],
        )

    def all_records(self) -> List[DocumentRecord]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM documents ORDER BY last_modified_at DESC, path"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get(self, path: str) -> DocumentRecord | None:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM documents WHERE path = ?", (path,)).fetchone()
        return self._row_to_record(row) if row else None

    def count(self) -> int:
        with self._reading() as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def max_last_scanned(self) -> int | None:
        with self._reading() as conn:
            return conn.execute("SELECT MAX(last_scanned_at) FROM documents").fetchone()[0]

    # -- writes --------------------------------------------------------------

    @staticmethod
    def _upsert(conn: sqlite3.Connection, records: Iterable[DocumentRecord]) -> None:
        conn.executemany(
            """
            INSERT INTO documents(
                path, display_name, size_bytes, last_modified_at, source_uri, last_scanned_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                display_name = excluded.display_name,
                size_bytes = excluded.size_bytes,
                last_modified_at = excluded.last_modified_at,
                source_uri = excluded.source_uri,
                last_scanned_at = MAX(documents.last_scanned_at, excluded.last_scanned_at)
            """,
            [
                (
                    record.path,
                    record.display_name,
                    record.size_bytes,
                    record.last_modified_at,
                    record.source_uri,
                    record.last_scanned_at,
                )
                for record in records
            ],
        )

    @staticmethod
    def _delete_not_in(conn: sqlite3.Connection, paths: Iterable[str]) -> int:
        conn.execute("DELETE FROM temp.scan_paths")
        conn.executemany(
            "INSERT OR IGNORE INTO temp.scan_paths(path) VALUES (?)",
            [(path,) for path in paths],
        )
        removed = conn.execute(
            "DELETE FROM documents WHERE path NOT IN (SELECT path FROM temp.scan_paths)"
        ).rowcount
        conn.execute("DELETE FROM temp.scan_paths")
        return removed

    def upsert_all(self, records: Sequence[DocumentRecord]) -> None:
        with self.transaction() as conn:
            self._upsert(conn, records)
        self._notify()

    def delete(self, path: str) -> bool:
        with self.transaction() as conn:
            removed = conn.execute("DELETE FROM documents WHERE path = ?", (path,)).rowcount
        if removed:
            self._notify()
        return removed > 0

    def delete_many(self, paths: Iterable[str]) -> int:
        with self.transaction() as conn:
            removed = sum(
                conn.execute("DELETE FROM documents WHERE path = ?", (path,)).rowcount
                for path in set(paths)
            )
        if removed:
            self._notify()
        return removed

    def delete_not_in(self, paths: Iterable[str]) -> int:
        with self.transaction() as conn:
            removed = self._delete_not_in(conn, paths)
        if removed:
            self._notify()
        return removed

    def replace_all(self, records: Sequence[DocumentRecord]) -> int:
        """Upsert ``records`` and evict every other path in one transaction.

        Returns the number of evicted records.
        """
        with self.transaction() as conn:
            self._upsert(conn, records)
            removed = self._delete_not_in(conn, (record.path for record in records))
        self._notify()
        return removed

    def rename(self, old_path: str, new_path: str, new_name: str, new_uri: str) -> bool:
        with self.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM documents WHERE path = ?", (old_path,)
            ).fetchone()
            if not exists:
                return False
            if new_path != old_path:
                conn.execute("DELETE FROM documents WHERE path = ?", (new_path,))
            conn.execute(
                """
                UPDATE documents
                SET path = ?, display_name = ?, source_uri = ?
                WHERE path = ?
                """,
                (new_path, new_name, new_uri, old_path),
            )
        self._notify()
        return True

    def clear(self) -> int:
        with self.transaction() as conn:
            removed = conn.execute("DELETE FROM documents").rowcount
        self._notify()
        return removed
