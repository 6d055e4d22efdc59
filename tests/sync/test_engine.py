"""End-to-end tests for the mirror engine against a local source."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from blobmirror.core.config import MirrorConfig
from blobmirror.core.naming import FLAG_DELETED, FLAG_MODIFIED
from blobmirror.core.timestamps import file_mtime, utc_now
from blobmirror.remote import LocalFSSource, RemoteItem
from blobmirror.state import IndexStore
from blobmirror.sync import MirrorEngine, PoolState
from blobmirror.sync.types import RunResult

CONTAINER = "bucket"
OLD_TIME = datetime(2020, 5, 17, 8, 30, 12, 345678, tzinfo=UTC)


class FailingSource(LocalFSSource):
    """Local source whose listing breaks after the first page."""

    def enumerate(self, container: str) -> Iterator[list[RemoteItem]]:
        pages = super().enumerate(container)
        yield next(pages)
        raise ConnectionError("listing interrupted")


@pytest.fixture
def config(local_root: Path) -> MirrorConfig:
    return MirrorConfig(local_root=local_root, container=CONTAINER, max_transfers=4)


@pytest.fixture
def remote(remote_root: Path, write_file: Callable[..., Path]) -> Callable[..., Path]:
    """Write an object into the remote container."""

    def _put(key: str, content: bytes = b"hello", mtime=OLD_TIME) -> Path:
        return write_file(remote_root / CONTAINER / key, content, mtime)

    return _put


def run_once(config: MirrorConfig, source: LocalFSSource) -> RunResult:
    return MirrorEngine(config, source).run()


def names(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir())


class TestMirrorRun:
    """Tests for complete runs."""

    def test_first_run_downloads_everything(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        remote("a.txt", b"alpha")
        remote("dir/sub/b.txt", b"bravo!")

        result = run_once(config, LocalFSSource(remote_root))

        assert result.exit_code == 0
        assert result.enumeration_ok
        assert result.deletions_checked
        assert result.stats.total.count == 2
        assert result.stats.new.count == 2
        assert result.stats.downloaded.count == 2
        assert result.stats.downloaded.size == 11
        b = local_root / CONTAINER / "dir" / "sub" / "b.txt"
        assert b.read_bytes() == b"bravo!"
        assert file_mtime(b) == OLD_TIME

    def test_second_run_is_idempotent(
        self,
        config: MirrorConfig,
        remote_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        """Nothing is transferred when the remote did not change."""
        remote("a.txt", b"alpha")
        remote("b.txt", b"bravo")
        source = LocalFSSource(remote_root)
        run_once(config, source)

        result = run_once(config, source)

        assert result.stats.downloaded.count == 0
        assert result.stats.up_to_date.count == 2
        assert result.stats.deleted.count == 0
        assert result.stats.local.count == 2

    def test_modified_object_archives_old_copy(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        remote("a.txt", b"version one")
        source = LocalFSSource(remote_root)
        run_once(config, source)

        remote("a.txt", b"version two!", utc_now().replace(microsecond=0))
        result = run_once(config, source)

        assert result.stats.modified.count == 1
        folder = local_root / CONTAINER
        assert (folder / "a.txt").read_bytes() == b"version two!"
        archived = [n for n in names(folder) if FLAG_MODIFIED in n]
        assert len(archived) == 1
        assert (folder / archived[0]).read_bytes() == b"version one"

    def test_deleted_object_is_tombstoned(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        remote("keep.txt")
        gone = remote("gone.txt", b"bye")
        source = LocalFSSource(remote_root)
        run_once(config, source)

        gone.unlink()
        result = run_once(config, source)

        assert result.deletions_checked
        assert result.stats.deleted.count == 1
        folder = local_root / CONTAINER
        assert "gone.txt" not in names(folder)
        assert any(n.startswith("gone.txt" + FLAG_DELETED) for n in names(folder))

        with IndexStore(config.index_path) as index:
            assert index.get_record(f"{CONTAINER}/gone.txt").delete_detected is not None
            assert index.get_record(f"{CONTAINER}/keep.txt").delete_detected is None

    def test_reappearing_object_clears_tombstone(
        self,
        config: MirrorConfig,
        remote_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        item = remote("back.txt", b"again")
        source = LocalFSSource(remote_root)
        run_once(config, source)
        item.unlink()
        run_once(config, source)

        remote("back.txt", b"again", utc_now().replace(microsecond=0))
        result = run_once(config, source)

        assert result.stats.modified.count == 1
        assert result.stats.downloaded.count == 1
        with IndexStore(config.index_path) as index:
            assert index.get_record(f"{CONTAINER}/back.txt").delete_detected is None

    def test_stray_local_file_is_tombstoned(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        write_file: Callable[..., Path],
        remote: Callable[..., Path],
    ) -> None:
        remote("a.txt")
        write_file(local_root / CONTAINER / "stray.txt", b"local only")

        result = run_once(config, LocalFSSource(remote_root))

        assert result.stats.deleted.count == 1
        assert any(
            n.startswith("stray.txt" + FLAG_DELETED) for n in names(local_root / CONTAINER)
        )

    def test_cutoff_skips_recent_objects(
        self,
        local_root: Path,
        remote_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        """Objects past the cutoff are ignored and not tombstoned."""
        remote("old.txt")
        remote("new.txt", b"fresh", utc_now())
        config = MirrorConfig(
            local_root=local_root,
            container=CONTAINER,
            ignore_modified_after=utc_now() - timedelta(days=1),
        )

        result = run_once(config, LocalFSSource(remote_root))

        assert result.stats.ignored.count == 1
        assert result.stats.deleted.count == 0
        assert names(local_root / CONTAINER) == ["old.txt"]


class TestFailures:
    """Tests for listing and item failures."""

    def test_listing_failure_is_fatal(
        self,
        local_root: Path,
        remote_root: Path,
        write_file: Callable[..., Path],
        remote: Callable[..., Path],
    ) -> None:
        """Queued jobs finish, deletions are skipped and the exit code is 1."""
        for key in ("a.txt", "b.txt", "c.txt"):
            remote(key)
        stray = write_file(local_root / CONTAINER / "stray.txt")
        config = MirrorConfig(local_root=local_root, container=CONTAINER)

        result = run_once(config, FailingSource(remote_root, page_size=2))

        assert result.exit_code == 1
        assert "listing interrupted" in result.fatal_error
        assert not result.deletions_checked
        assert result.stats.downloaded.count == 2
        assert stray.exists()

    def test_missing_container_is_fatal(
        self, config: MirrorConfig, tmp_path: Path
    ) -> None:
        result = run_once(config, LocalFSSource(tmp_path / "nowhere"))
        assert result.exit_code == 1
        assert result.stats.exceptions.value == 1

    def test_item_error_skips_deletions(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        write_file: Callable[..., Path],
        remote: Callable[..., Path],
    ) -> None:
        """One failing item keeps the run going but disables deletion checks."""
        remote("good.txt")
        remote("bad.txt")
        stray = write_file(local_root / CONTAINER / "stray.txt")
        engine = MirrorEngine(config, LocalFSSource(remote_root))
        process = engine.classifier.process

        def flaky(item: RemoteItem):
            if item.key == "bad.txt":
                raise ValueError("broken item")
            return process(item)

        with patch.object(engine.classifier, "process", side_effect=flaky):
            result = engine.run()

        assert result.exit_code == 0
        assert not result.enumeration_ok
        assert not result.deletions_checked
        assert result.stats.exceptions.value == 1
        assert result.errors == ["/bucket/bad.txt: broken item"]
        assert (local_root / CONTAINER / "good.txt").exists()
        assert stray.exists()

    def test_empty_listing_skips_deletions(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        """An emptied container leaves the mirror untouched."""
        objects = [remote(f"f{i}.txt") for i in range(3)]
        source = LocalFSSource(remote_root)
        run_once(config, source)
        for path in objects:
            path.unlink()

        result = run_once(config, source)

        assert result.exit_code == 0
        assert not result.enumeration_ok
        assert not result.deletions_checked
        assert result.stats.deleted.count == 0
        assert names(local_root / CONTAINER) == ["f0.txt", "f1.txt", "f2.txt"]

    def test_reconciler_failure_waits_for_transfers(
        self,
        config: MirrorConfig,
        remote_root: Path,
        local_root: Path,
        remote: Callable[..., Path],
    ) -> None:
        """Queued transfers finish before the index is closed."""
        remote("a.txt")
        remote("b.txt")
        engine = MirrorEngine(config, LocalFSSource(remote_root))

        with patch.object(
            engine.reconciler, "run", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(sqlite3.OperationalError):
                engine.run()

        assert engine.pool.state == PoolState.STOPPED
        assert engine.pool.completed_count == 2
        assert engine.stats.downloaded.count == 2
        assert (local_root / CONTAINER / "b.txt").exists()
