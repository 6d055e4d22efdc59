"""Tests for the SQLite index store."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from blobmirror.remote import RemoteItem
from blobmirror.state import IndexRecord, IndexStore


class TestIndexStoreCreation:
    """Tests for IndexStore initialization."""

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        """Should create parent directories and the database file."""
        db_path = tmp_path / "nested" / "dir" / "index.sqlite"
        store = IndexStore(db_path)
        assert db_path.exists()
        assert store.path == db_path
        store.close()

    def test_reopens_existing_db(
        self, tmp_path: Path, make_item: Callable[..., RemoteItem]
    ) -> None:
        """Records should survive closing and reopening."""
        db_path = tmp_path / "index.sqlite"
        with IndexStore(db_path) as store:
            store.get_or_create(make_item("a.txt"))

        with IndexStore(db_path) as store:
            record = store.get_record("bucket/a.txt")
            assert record is not None
            assert record.remote_path == "/bucket/a.txt"


class TestRecordOperations:
    """Tests for record CRUD."""

    def test_get_missing_record(self, index: IndexStore) -> None:
        assert index.get_record("nope") is None

    def test_get_or_create_inserts_never_downloaded(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        """A new record mirrors the remote item but is not downloaded yet."""
        item = make_item("dir/f.txt", b"abc")
        record = index.get_or_create(item)

        assert record.local_name == "bucket/dir/f.txt"
        assert record.size == 3
        assert record.remote_hash == item.content_hash
        assert record.last_modified == item.last_modified
        assert record.last_downloaded is None
        assert not record.exists
        assert index.count() == 1

    def test_get_or_create_returns_existing(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        """Should return the stored record instead of inserting again."""
        item = make_item("f.txt")
        record = index.get_or_create(item)
        record.mark_downloaded(item)
        index.update(record)

        again = index.get_or_create(make_item("f.txt", b"changed"))
        assert again.exists
        assert again.size == item.size
        assert index.count() == 1

    def test_insert_if_absent(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        record = IndexRecord.from_remote(make_item("f.txt"))
        assert index.insert_if_absent(record) is True
        assert index.insert_if_absent(record) is False
        assert index.count() == 1

    def test_update_persists_all_fields(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        record = index.get_or_create(make_item("f.txt"))
        when = datetime(2024, 6, 1, 10, 0, 0, 123, tzinfo=UTC)
        record.size = 99
        record.remote_hash = "h2"
        record.last_downloaded = when
        record.delete_detected = when
        index.update(record)

        stored = index.get_record(record.local_name)
        assert stored == record

    def test_list_all_excludes_tombstones(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        """Tombstoned records are listed only on request."""
        index.get_or_create(make_item("b.txt"))
        dead = index.get_or_create(make_item("a.txt"))
        dead.delete_detected = datetime(2024, 1, 1, tzinfo=UTC)
        index.update(dead)

        assert [r.local_name for r in index.list_all()] == ["bucket/b.txt"]
        assert [r.local_name for r in index.list_all(exclude_deleted=False)] == [
            "bucket/a.txt",
            "bucket/b.txt",
        ]


class TestBatching:
    """Tests for begin_batch / end_batch."""

    def test_nested_begin_is_noop(self, index: IndexStore) -> None:
        assert index.begin_batch() is True
        assert index.begin_batch() is False
        assert index.end_batch() is True
        assert index.end_batch() is False

    def test_batch_commits_on_close(
        self, tmp_path: Path, make_item: Callable[..., RemoteItem]
    ) -> None:
        """Closing the store should commit an open batch."""
        db_path = tmp_path / "index.sqlite"
        store = IndexStore(db_path)
        store.begin_batch()
        store.get_or_create(make_item("f.txt"))
        store.close()

        with IndexStore(db_path) as reopened:
            assert reopened.count() == 1

    def test_concurrent_writers(
        self, index: IndexStore, make_item: Callable[..., RemoteItem]
    ) -> None:
        """Records created from many threads inside a batch are all kept."""
        index.begin_batch()

        def worker(n: int) -> None:
            for i in range(25):
                index.get_or_create(make_item(f"t{n}/f{i}.txt"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        index.end_batch()

        assert index.count() == 200


class TestIndexRecord:
    """Tests for IndexRecord helpers."""

    def test_mark_downloaded_clears_tombstone(
        self, make_item: Callable[..., RemoteItem]
    ) -> None:
        item = make_item("f.txt", b"new content")
        record = IndexRecord.from_remote(make_item("f.txt", b"old"))
        record.delete_detected = datetime(2024, 1, 1, tzinfo=UTC)

        record.mark_downloaded(item)

        assert record.exists
        assert record.delete_detected is None
        assert record.size == item.size
        assert record.content_hash == item.content_hash
