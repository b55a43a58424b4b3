"""Persistent file index."""
