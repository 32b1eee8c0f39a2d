from __future__ import annotations

from pathlib import Path

import pytest

from xpathfeed.extraction.models import PaginationState
from xpathfeed.state.progress import InMemoryProgressStore, ProgressStore, SqliteProgressStore


def test_sqlite_store_returns_fresh_state_for_unseen_source(tmp_path: Path) -> None:
    with SqliteProgressStore(tmp_path / "state.db", "doc-a") as store:
        assert store.get() == PaginationState()
        assert store.get_progress() == 0.0


def test_sqlite_store_upserts_and_persists_across_connections(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    with SqliteProgressStore(db_path, "doc-a") as store:
        store.set(PaginationState(total=5, pointer=2))
        store.set(PaginationState(total=5, pointer=4))

    with SqliteProgressStore(db_path, "doc-a") as store:
        assert store.get() == PaginationState(total=5, pointer=4)


def test_sqlite_store_isolates_sources(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    with SqliteProgressStore(db_path, "doc-a") as first, SqliteProgressStore(db_path, "doc-b") as second:
        first.set(PaginationState(total=3, pointer=3))

        assert second.get() == PaginationState()
        assert first.get().is_complete


def test_sqlite_store_reports_progress_fraction(tmp_path: Path) -> None:
    with SqliteProgressStore(tmp_path / "state.db", "doc-a") as store:
        store.set(PaginationState(total=5, pointer=2))
        store.report_progress(5, 2)
        assert store.get_progress() == pytest.approx(0.4)

        store.set(PaginationState(total=0, pointer=0))
        store.report_progress(0, 0)
        assert store.get_progress() == 1.0


def test_sqlite_store_reset_forgets_cursor(tmp_path: Path) -> None:
    with SqliteProgressStore(tmp_path / "state.db", "doc-a") as store:
        store.set(PaginationState(total=5, pointer=5))
        store.reset()

        assert store.get() == PaginationState()


def test_sqlite_store_requires_source_id(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SqliteProgressStore(tmp_path / "state.db", "")


def test_in_memory_store_copies_state() -> None:
    store = InMemoryProgressStore(PaginationState(total=4, pointer=1))

    state = store.get()
    state.pointer = 3

    assert store.get() == PaginationState(total=4, pointer=1)
    store.reset()
    assert store.get() == PaginationState()


def test_stores_satisfy_protocol(tmp_path: Path) -> None:
    with SqliteProgressStore(tmp_path / "state.db", "doc-a") as store:
        assert isinstance(store, ProgressStore)
    assert isinstance(InMemoryProgressStore(), ProgressStore)


def test_pagination_state_validates_pointer() -> None:
    with pytest.raises(ValueError):
        PaginationState(total=2, pointer=3)
    with pytest.raises(ValueError):
        PaginationState(pointer=-1)

    assert PaginationState(total=4, pointer=1).progress == 0.25
    assert PaginationState(total=0, pointer=0).progress == 1.0
    assert PaginationState().progress == 0.0
