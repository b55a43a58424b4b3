"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

STALENESS_WINDOW_SECONDS = 5 * 60
PRELOAD_TTL_SECONDS = 30.0
PRELOAD_DELAY_SECONDS = 0.15


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "DocShelf" / "docshelf.db"

    # When running as a frozen app (PyInstaller bundle)
    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/docshelf.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    scan_root: Path = field(default_factory=Path.home)
    staleness_window: float = STALENESS_WINDOW_SECONDS
    preload_ttl: float = PRELOAD_TTL_SECONDS
    preload_delay: float = PRELOAD_DELAY_SECONDS
    thumbnail_width: int = 150
    partial_hash_bytes: int = 4096
    hash_workers: int = 4
    exclude_dirs: tuple[str, ...] = ()
    media_index_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.hash_workers < 1:
            raise ValueError("hash_workers must be at least 1")
        if self.partial_hash_bytes < 1:
            raise ValueError("partial_hash_bytes must be positive")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
