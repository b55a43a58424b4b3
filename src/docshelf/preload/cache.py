"""Predictive preloading of document previews.

When the user shows intent to open a document (long press, hover, focus) the
cache starts producing a preview in the background. Only one production runs
per cache: a new request cancels the previous one, whatever its key.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Protocol
from urllib.parse import urlparse
from urllib.request import url2pathname

from docshelf.config import PRELOAD_DELAY_SECONDS, PRELOAD_TTL_SECONDS
from docshelf.models import PreloadEntry
from docshelf.preload.rendering import open_document

LOGGER = logging.getLogger(__name__)


class PreviewDocument(Protocol):
    @property
    def page_count(self) -> int: ...

    def first_page_size(self) -> tuple[int, int]: ...

    def render_thumbnail(self, width: int) -> bytes: ...

    def close(self) -> None: ...


DocumentOpener = Callable[[Path], PreviewDocument]


def key_to_path(key: str) -> Path:
    """Resolve a document key, either a ``file://`` URI or a plain path."""
    if key.startswith("file://"):
        return Path(url2pathname(urlparse(key).path))
    return Path(key)


class PreloadTask:
    """Handle of one background production."""

    def __init__(self, key: str) -> None:
        self.key = key
        self.cancel_event = threading.Event()
        self.future: Future[None] | None = None

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def wait(self, timeout: float | None = None) -> None:
        if self.future is not None:
            self.future.result(timeout=timeout)


class PreloadCache:
    def __init__(
        self,
        opener: DocumentOpener = open_document,
        *,
        ttl: float = PRELOAD_TTL_SECONDS,
        delay: float = PRELOAD_DELAY_SECONDS,
        thumbnail_width: int = 150,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.opener = opener
        self.ttl = ttl
        self.delay = delay
        self.thumbnail_width = thumbnail_width
        self.clock = clock
        self._entries: Dict[str, PreloadEntry] = {}
        self._lock = threading.Lock()
        self._current: PreloadTask | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="preload")

    def __enter__(self) -> "PreloadCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    @property
    def producing_key(self) -> str | None:
        """Key being produced, or None when idle."""
        with self._lock:
            return self._current.key if self._current is not None else None

    def request_preload(self, key: str) -> PreloadTask | None:
        """Start producing ``key``, preempting any production in flight.

        Returns None when ``key`` is already cached or already being produced.
        """
        with self._lock:
            if self._fresh(key) is not None:
                return None
            if self._current is not None and self._current.key == key:
                return None
            if self._current is not None:
                self._current.cancel()

            task = PreloadTask(key)
            self._current = task
            task.future = self._executor.submit(self._produce, task)
            return task

    def _produce(self, task: PreloadTask) -> None:
        try:
            # Skip quick taps
            if task.cancel_event.wait(self.delay):
                return

            path = key_to_path(task.key)
            if not path.is_file():
                LOGGER.debug("Not preloading missing file %s", path)
                return

            LOGGER.debug("Preloading: %s", task.key)
            entry = self._build_entry(task, path)
            if entry is None:
                return

            with self._lock:
                if task.cancelled:
                    return
                self._entries[task.key] = entry
            LOGGER.debug("Preloaded: %s, pages: %d", task.key, entry.page_count)
        except Exception as exc:
            LOGGER.warning("Preload failed for %s: %s", task.key, exc)
        finally:
            with self._lock:
                if self._current is task:
                    self._current = None

    def _build_entry(self, task: PreloadTask, path: Path) -> PreloadEntry | None:
        if task.cancelled:
            return None
        doc = self.opener(path)
        try:
            page_count = doc.page_count
            if task.cancelled:
                return None
            width, height = doc.first_page_size()
            if task.cancelled:
                return None
            try:
                thumbnail: bytes | None = doc.render_thumbnail(self.thumbnail_width)
            except Exception as exc:
                LOGGER.warning("Failed to render thumbnail for %s: %s", path, exc)
                thumbnail = None
        finally:
            doc.close()

        if task.cancelled:
            return None
        return PreloadEntry(
            key=task.key,
            page_count=page_count,
            first_page_width=width,
            first_page_height=height,
            thumbnail=thumbnail,
            produced_at=self.clock(),
        )

    def _fresh(self, key: str) -> PreloadEntry | None:
        entry = self._entries.get(key)
        if entry is not None and self.clock() - entry.produced_at < self.ttl:
            return entry
        self._entries.pop(key, None)
        return None

    def get_preloaded(self, key: str) -> PreloadEntry | None:
        """Return the entry for ``key`` if still fresh, evicting it otherwise."""
        with self._lock:
            return self._fresh(key)

    def clear_preloaded(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            if self._current is not None:
                self._current.cancel()
                self._current = None
            self._entries.clear()

    def dispose(self) -> None:
        self.clear_all()
        self._executor.shutdown(wait=False, cancel_futures=True)
