"""Command line interface for DocShelf."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from docshelf.config import AppConfig
from docshelf.dedup.engine import DuplicateEngine
from docshelf.dedup.retention import decide, remove_files
from docshelf.index.file_index import FileIndex
from docshelf.index.storage import SQLiteRecordStore
from docshelf.models import RetentionPolicy
from docshelf.preload.cache import PreloadCache
from docshelf.preload.rendering import open_document
from docshelf.scanner.media_index import SystemMediaIndex
from docshelf.scanner.scanner import FilesystemScanner


console = Console()
app = typer.Typer(help="DocShelf - find, index and deduplicate local PDFs")

POLICIES = {"newest": RetentionPolicy.KEEP_NEWEST, "oldest": RetentionPolicy.KEEP_OLDEST}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _format_time(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def _open_index(db: Optional[Path], root: Optional[Path], no_media_index: bool) -> FileIndex:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    if root is not None:
        config.scan_root = root
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    media_index = None if no_media_index else SystemMediaIndex(timeout=config.media_index_timeout)
    scanner = FilesystemScanner(
        config.scan_root,
        media_index=media_index,
        exclude_dirs=config.exclude_dirs,
    )
    store = SQLiteRecordStore(resolved_db)
    return FileIndex(store, scanner, staleness_window=config.staleness_window)


@app.command()
def scan(
    root: Optional[Path] = typer.Option(None, "--root", help="Storage root to walk", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cached snapshot"),
    no_media_index: bool = typer.Option(
        False, "--no-media-index", help="Skip the system file index and walk directly"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """List indexed PDFs, rescanning when the cache is stale."""
    _setup_logging(verbose)
    index = _open_index(db, root, no_media_index)
    try:
        snapshot = index.get_snapshot(force_refresh=refresh)
    finally:
        index.store.close()

    if snapshot.warning:
        console.print(f"[yellow]Warning: {snapshot.warning}[/yellow]")
    if not len(snapshot):
        console.print("[yellow]No PDFs found.[/yellow]")
        return

    table = Table(title=f"{len(snapshot)} PDFs" + (" (cached)" if snapshot.from_cache else ""))
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Path")
    for record in snapshot:
        table.add_row(
            record.display_name,
            _format_size(record.size_bytes),
            _format_time(record.last_modified_at),
            record.path,
        )
    console.print(table)


@app.command()
def ls(
    directory: Path = typer.Argument(..., help="Directory to list", resolve_path=True),
) -> None:
    """List folders and PDFs directly inside a directory."""
    scanner = FilesystemScanner(directory)
    entries = scanner.list_files(directory)
    if not entries:
        console.print("[yellow]Nothing to show.[/yellow]")
        return

    table = Table(title=str(directory))
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for entry in entries:
        name = f"[bold]{entry.name}/[/bold]" if entry.is_directory else entry.name
        size = "" if entry.is_directory else _format_size(entry.size_bytes)
        table.add_row(name, size, _format_time(entry.last_modified_at))
    console.print(table)


@app.command()
def duplicates(
    root: Path = typer.Argument(..., help="Directory to search for duplicates", resolve_path=True),
    keep: str = typer.Option("newest", "--keep", help="Copy to keep: newest or oldest"),
    delete: bool = typer.Option(False, "--delete", help="Delete every copy except the kept one"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    workers: int = typer.Option(AppConfig().hash_workers, min=1, help="Hashing threads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Find content-identical PDFs and optionally remove the extra copies."""
    _setup_logging(verbose)
    policy = POLICIES.get(keep.lower())
    if policy is None:
        raise typer.BadParameter("--keep must be 'newest' or 'oldest'")

    config = AppConfig(hash_workers=workers)
    engine = DuplicateEngine(
        workers=config.hash_workers,
        partial_chunk_bytes=config.partial_hash_bytes,
        exclude_dirs=config.exclude_dirs,
    )
    report = engine.find_duplicates(root)
    if not report.groups:
        console.print(f"No duplicates among {report.files_scanned} PDFs.")
        return

    decisions = [decide(group, policy) for group in report.groups]
    for group, decision in zip(report.groups, decisions):
        table = Table(title=f"{group.content_hash[:12]}  {_format_size(group.size_bytes)}")
        table.add_column("Action")
        table.add_column("Modified")
        table.add_column("Path")
        for member in group.members:
            action = "keep" if member.path == decision.retained else "[red]delete[/red]"
            table.add_row(action, _format_time(member.last_modified_at), member.path)
        console.print(table)

    to_delete = sorted(path for decision in decisions for path in decision.to_delete)
    reclaimable = sum(decision.reclaimable_bytes for decision in decisions)
    console.print(
        f"{len(report.groups)} duplicate groups, {len(to_delete)} extra copies, "
        f"{_format_size(reclaimable)} reclaimable."
    )
    if not delete:
        return
    if not yes and not typer.confirm(f"Delete {len(to_delete)} files?"):
        raise typer.Abort()

    removed = remove_files(to_delete)
    index = _open_index(db, None, True)
    try:
        index.invalidate_many(removed)
    finally:
        index.store.close()
    console.print(f"Deleted {len(removed)} of {len(to_delete)} files.")


@app.command()
def rename(
    path: Path = typer.Argument(..., help="PDF to rename", resolve_path=True),
    new_name: str = typer.Argument(..., help="New file name"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Rename a PDF and update its index entry."""
    index = _open_index(db, None, True)
    try:
        renamed = index.rename_file(str(path), new_name)
    finally:
        index.store.close()
    if not renamed:
        console.print(f"[red]Could not rename {path}.[/red]")
        raise typer.Exit(code=1)
    console.print(f"Renamed to {path.with_name(new_name)}")


@app.command()
def preview(
    path: Path = typer.Argument(..., help="PDF to preview", exists=True, dir_okay=False, resolve_path=True),
    thumbnail: Optional[Path] = typer.Option(None, "--thumbnail", help="Write the first page as a PNG file"),
    width: int = typer.Option(AppConfig().thumbnail_width, "--width", min=1, help="Thumbnail width in pixels"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show page count and first page size of a PDF."""
    _setup_logging(verbose)
    config = AppConfig(thumbnail_width=width)
    key = str(path)
    with PreloadCache(
        open_document,
        ttl=config.preload_ttl,
        delay=config.preload_delay,
        thumbnail_width=config.thumbnail_width,
    ) as cache:
        task = cache.request_preload(key)
        if task is not None:
            task.wait()
        entry = cache.get_preloaded(key)

    if entry is None:
        console.print(f"[red]Could not open {path}.[/red]")
        raise typer.Exit(code=1)
    console.print(
        f"{path.name}: {entry.page_count} pages, "
        f"first page {entry.first_page_width} x {entry.first_page_height}"
    )
    if thumbnail is not None and entry.thumbnail is not None:
        thumbnail.write_bytes(entry.thumbnail)
        console.print(f"Thumbnail written to {thumbnail}")


@app.command("clear-cache")
def clear_cache(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Forget every indexed PDF without touching the files."""
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to clear.[/yellow]")
        return

    store = SQLiteRecordStore(resolved_db)
    try:
        removed = store.clear()
    finally:
        store.close()
    console.print(f"Removed {removed} cached entries.")
