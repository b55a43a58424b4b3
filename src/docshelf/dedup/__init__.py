"""Content-based duplicate detection and retention."""
