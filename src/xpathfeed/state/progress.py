"""Pagination cursor persistence between extraction invocations."""

from __future__ import annotations

import logging
from pathlib import Path
import sqlite3
from typing import Protocol, runtime_checkable

from xpathfeed.extraction.models import PaginationState

logger = logging.getLogger(__name__)

PRAGMA_BUSY_TIMEOUT_MS = 5000


@runtime_checkable
class ProgressStore(Protocol):
    """Cursor storage bound to one document identity."""

    def get(self) -> PaginationState:
        """Return the stored cursor, or a fresh one for an unseen document."""

    def set(self, state: PaginationState) -> None:
        """Persist the cursor."""

    def report_progress(self, total: int, pointer: int) -> None:
        """Publish overall progress for progress displays."""


class InMemoryProgressStore:
    """Process-local cursor store, mostly useful for tests and one-shot runs."""

    def __init__(self, state: PaginationState | None = None) -> None:
        self._state = state or PaginationState()
        self.reports: list[tuple[int, int]] = []

    def get(self) -> PaginationState:
        return PaginationState(total=self._state.total, pointer=self._state.pointer)

    def set(self, state: PaginationState) -> None:
        self._state = PaginationState(total=state.total, pointer=state.pointer)

    def report_progress(self, total: int, pointer: int) -> None:
        self.reports.append((total, pointer))

    def reset(self) -> None:
        self._state = PaginationState()


def apply_runtime_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA journal_mode=WAL;")
    connection.execute(f"PRAGMA busy_timeout={PRAGMA_BUSY_TIMEOUT_MS};")
    connection.execute("PRAGMA synchronous=NORMAL;")


def ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS extraction_state (
            source_id TEXT PRIMARY KEY,
            total INTEGER,
            pointer INTEGER NOT NULL DEFAULT 0 CHECK(pointer >= 0),
            progress REAL NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        """
    )


class SqliteProgressStore:
    """SQLite-backed cursor store for one ``source_id``."""

    def __init__(self, db_path: str | Path, source_id: str) -> None:
        if not source_id:
            raise ValueError("source_id cannot be empty")
        self._db_path = Path(db_path)
        self._source_id = source_id
        self._connection = sqlite3.connect(str(self._db_path))
        self._connection.row_factory = sqlite3.Row
        apply_runtime_pragmas(self._connection)
        ensure_schema(self._connection)

    @property
    def source_id(self) -> str:
        return self._source_id

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "SqliteProgressStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get(self) -> PaginationState:
        row = self._connection.execute(
            "SELECT total, pointer FROM extraction_state WHERE source_id = ?",
            (self._source_id,),
        ).fetchone()
        if row is None:
            return PaginationState()
        total = row["total"]
        return PaginationState(total=int(total) if total is not None else None, pointer=int(row["pointer"]))

    def set(self, state: PaginationState) -> None:
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO extraction_state(source_id, total, pointer)
                VALUES(?, ?, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    total=excluded.total,
                    pointer=excluded.pointer,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (self._source_id, state.total, state.pointer),
            )

    def report_progress(self, total: int, pointer: int) -> None:
        progress = 1.0 if total == 0 else pointer / total
        with self._connection:
            self._connection.execute(
                "UPDATE extraction_state SET progress = ? WHERE source_id = ?",
                (progress, self._source_id),
            )
        logger.info("Extraction progress for %s: %d/%d", self._source_id, pointer, total)

    def get_progress(self) -> float:
        row = self._connection.execute(
            "SELECT progress FROM extraction_state WHERE source_id = ?",
            (self._source_id,),
        ).fetchone()
        return float(row["progress"]) if row is not None else 0.0

    def reset(self) -> None:
        """Forget the cursor so the next run starts the document over."""

        with self._connection:
            self._connection.execute(
                "DELETE FROM extraction_state WHERE source_id = ?",
                (self._source_id,),
            )
