"""Cursor persistence for incremental extraction."""

from .progress import InMemoryProgressStore, ProgressStore, SqliteProgressStore

__all__ = ["InMemoryProgressStore", "ProgressStore", "SqliteProgressStore"]
