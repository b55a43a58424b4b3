"""Filesystem and media-index scanning."""
