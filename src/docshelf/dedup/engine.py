"""Three-phase duplicate detection.

Expensive work is only applied to files that survived cheaper filters:

1. group by exact byte size,
2. group by a digest of the head and tail of the file,
3. group by a digest of the complete contents.

Groups left with a single member are dropped after every phase.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, TypeVar

from docshelf.dedup.hashing import PARTIAL_CHUNK_BYTES, compute_full_hash, compute_partial_hash
from docshelf.models import DuplicateGroup, DuplicateMember, DuplicateReport
from docshelf.scanner.walker import iter_pdf_paths, mtime_millis

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class _Cancelled(Exception):
    pass


def _multi_member(groups: Dict[K, List[DuplicateMember]]) -> Dict[K, List[DuplicateMember]]:
    return {key: members for key, members in groups.items() if len(members) > 1}


class DuplicateEngine:
    """Finds content-identical PDFs under a root directory."""

    def __init__(
        self,
        *,
        workers: int = 4,
        partial_chunk_bytes: int = PARTIAL_CHUNK_BYTES,
        exclude_dirs: Iterable[str] = (),
        skip_hidden: bool = True,
    ) -> None:
        self.workers = max(1, workers)
        self.partial_chunk_bytes = partial_chunk_bytes
        self.exclude_dirs = tuple(exclude_dirs)
        self.skip_hidden = skip_hidden

    def find_duplicates(
        self, root: Path, cancel_event: threading.Event | None = None
    ) -> DuplicateReport:
        cancel_event = cancel_event or threading.Event()
        start = time.perf_counter()
        try:
            by_size, scanned = self._phase1_sizes(Path(root), cancel_event)
            LOGGER.debug("Phase 1: %d files, %d candidate size groups", scanned, len(by_size))

            by_partial = self._phase2_partial(by_size, cancel_event)
            LOGGER.debug("Phase 2: %d candidate partial hash groups", len(by_partial))

            by_full = self._phase3_full(by_partial, cancel_event)
        except _Cancelled:
            LOGGER.info("Duplicate scan of %s cancelled", root)
            return DuplicateReport(cancelled=True)

        groups = [
            DuplicateGroup(
                content_hash=content_hash,
                members=tuple(sorted(members, key=lambda member: member.path)),
            )
            for content_hash, members in sorted(by_full.items())
        ]
        LOGGER.info(
            "Found %d duplicate groups among %d PDFs in %.0fms",
            len(groups),
            scanned,
            (time.perf_counter() - start) * 1000,
        )
        return DuplicateReport(groups=groups, files_scanned=scanned)

    @staticmethod
    def _check(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise _Cancelled()

    def _phase1_sizes(
        self, root: Path, cancel_event: threading.Event
    ) -> tuple[Dict[int, List[DuplicateMember]], int]:
        by_size: Dict[int, List[DuplicateMember]] = defaultdict(list)
        seen: set[tuple[int, int]] = set()
        scanned = 0
        try:
            paths = iter_pdf_paths(root, exclude_dirs=self.exclude_dirs, skip_hidden=self.skip_hidden)
            for path in paths:
                self._check(cancel_event)
                try:
                    st = path.stat()
                except OSError:
                    continue
                # The same file reached twice must not match itself.
                identity = (st.st_dev, st.st_ino)
                if identity in seen:
                    continue
                seen.add(identity)
                scanned += 1
                by_size[st.st_size].append(
                    DuplicateMember(
                        path=str(path),
                        size_bytes=st.st_size,
                        last_modified_at=mtime_millis(st),
                    )
                )
        except OSError as exc:
            LOGGER.warning("Cannot walk %s: %s", root, exc)
        return _multi_member(by_size), scanned

    def _hash_all(
        self,
        members: Sequence[DuplicateMember],
        digest: Callable[[Path], str],
        cancel_event: threading.Event,
    ) -> List[tuple[DuplicateMember, str]]:
        def work(member: DuplicateMember) -> tuple[DuplicateMember, str | None]:
            if cancel_event.is_set():
                return member, None
            try:
                return member, digest(Path(member.path))
            except OSError as exc:
                LOGGER.debug("Dropping unreadable file %s: %s", member.path, exc)
                return member, None

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            results = list(executor.map(work, members))
        self._check(cancel_event)
        return [(member, value) for member, value in results if value is not None]

    def _phase2_partial(
        self, by_size: Dict[int, List[DuplicateMember]], cancel_event: threading.Event
    ) -> Dict[tuple[int, str], List[DuplicateMember]]:
        candidates = [member for members in by_size.values() for member in members]
        grouped: Dict[tuple[int, str], List[DuplicateMember]] = defaultdict(list)
        hashed = self._hash_all(
            candidates,
            lambda path: compute_partial_hash(path, self.partial_chunk_bytes),
            cancel_event,
        )
        for member, partial in hashed:
            grouped[(member.size_bytes, partial)].append(member)
        return _multi_member(grouped)

    def _phase3_full(
        self,
        by_partial: Dict[tuple[int, str], List[DuplicateMember]],
        cancel_event: threading.Event,
    ) -> Dict[str, List[DuplicateMember]]:
        candidates = [member for members in by_partial.values() for member in members]
        grouped: Dict[str, List[DuplicateMember]] = defaultdict(list)
        for member, full in self._hash_all(candidates, compute_full_hash, cancel_event):
            grouped[full].append(member)
        # Members of a group must also agree on size
        return {
            content_hash: members
            for content_hash, members in _multi_member(grouped).items()
            if len({member.size_bytes for member in members}) == 1
        }
