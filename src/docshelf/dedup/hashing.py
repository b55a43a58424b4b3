"""Content digests used to confirm file equality."""

from __future__ import annotations

import hashlib
from pathlib import Path

PARTIAL_CHUNK_BYTES = 4096
READ_CHUNK_BYTES = 1 << 20


def compute_partial_hash(path: Path, chunk_size: int = PARTIAL_CHUNK_BYTES) -> str:
    """Hash the first ``chunk_size`` bytes, plus the last ``chunk_size`` for larger files.

    The tail is only read when the file is bigger than two chunks, so small
    files are hashed exactly once.
    """
    md5 = hashlib.md5()
    with Path(path).open("rb") as handle:
        size = handle.seek(0, 2)
        handle.seek(0)
        md5.update(handle.read(chunk_size))
        if size > chunk_size * 2:
            handle.seek(size - chunk_size)
            md5.update(handle.read(chunk_size))
    return md5.hexdigest()


def compute_full_hash(path: Path) -> str:
    """Compute the MD5 of the complete file contents."""
    md5 = hashlib.md5()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(READ_CHUNK_BYTES), b""):
            md5.update(chunk)
    return md5.hexdigest()
