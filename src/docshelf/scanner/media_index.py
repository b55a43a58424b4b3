"""System-maintained file index used as the scanning fast path.

The index answers "which files are PDFs" without walking unrelated
directories. Its answers may be stale, so callers must confirm that each
hit still exists.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from docshelf.scanner.walker import is_pdf_name, mtime_millis

LOGGER = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class MediaIndexUnavailable(RuntimeError):
    """Raised when the platform index cannot be queried."""


@dataclass(frozen=True, slots=True)
class MediaEntry:
    name: str
    path: str
    size_bytes: int
    modified_at: int


class MediaIndex(Protocol):
    def query(self, mime_type: str, root: Path | None = None) -> list[MediaEntry]:
        """Return entries of ``mime_type`` under ``root``, newest modification first."""
        ...


_POSIX_REGEX_SPECIAL = set(".^$*+?()[]{}|\\")


def _locate_pattern(root: Path | None) -> str:
    """POSIX regex matching PDF paths, anchored under ``root`` when given."""
    if root is None:
        return r"\.pdf$"
    prefix = "".join("\\" + char if char in _POSIX_REGEX_SPECIAL else char for char in str(root))
    return "^" + prefix.rstrip("/") + r"/.*\.pdf$"


class SystemMediaIndex:
    """Query Spotlight on macOS or the locate database on Linux."""

    def __init__(self, *, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def _command(self, mime_type: str, root: Path | None = None) -> list[str]:
        if mime_type != PDF_MIME_TYPE:
            raise MediaIndexUnavailable(f"Unsupported mime type: {mime_type}")

        if sys.platform == "darwin":
            mdfind = shutil.which("mdfind")
            if mdfind:
                scope = ["-onlyin", str(root)] if root is not None else []
                return [mdfind, *scope, "kMDItemContentType == 'com.adobe.pdf'"]
        elif os.name == "posix":
            for name in ("plocate", "locate"):
                locate = shutil.which(name)
                if locate:
                    return [locate, "--existing", "--ignore-case", "--regex", _locate_pattern(root)]
        raise MediaIndexUnavailable(f"No media index available on {sys.platform}")

    def query(self, mime_type: str, root: Path | None = None) -> list[MediaEntry]:
        command = self._command(mime_type, root)
        LOGGER.debug("Querying media index: %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise MediaIndexUnavailable(f"Media index query failed: {exc}") from exc

        # locate exits with 1 when nothing matched
        if completed.returncode not in (0, 1):
            raise MediaIndexUnavailable(
                f"Media index exited with {completed.returncode}: {completed.stderr.strip()}"
            )

        entries: list[MediaEntry] = []
        for line in completed.stdout.splitlines():
            path = line.strip()
            if not path or not is_pdf_name(path):
                continue
            try:
                st = os.stat(path)
            except OSError:
                continue
            entries.append(
                MediaEntry(
                    name=Path(path).name,
                    path=path,
                    size_bytes=st.st_size,
                    modified_at=mtime_millis(st),
                )
            )

        entries.sort(key=lambda entry: entry.modified_at, reverse=True)
        return entries
