"""Shared fixtures for blobmirror tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from blobmirror.core.hashing import compute_bytes_md5
from blobmirror.core.timestamps import set_file_mtime, utc_now
from blobmirror.remote import RemoteItem
from blobmirror.state import IndexStore

CONTAINER = "bucket"

# Fixed instant well outside any recency window
OLD_TIME = datetime(2020, 5, 17, 8, 30, 12, 345678, tzinfo=UTC)


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """Root of a LocalFSSource with one empty container."""
    root = tmp_path / "remote"
    (root / CONTAINER).mkdir(parents=True)
    return root


@pytest.fixture
def local_root(tmp_path: Path) -> Path:
    """Root of the local mirror."""
    root = tmp_path / "mirror"
    root.mkdir()
    return root


@pytest.fixture
def index(tmp_path: Path) -> Iterator[IndexStore]:
    """Index store in a temporary directory."""
    store = IndexStore(tmp_path / "index" / "test.sqlite")
    yield store
    store.close()


@pytest.fixture
def write_file() -> Callable[..., Path]:
    """Create a file with content and an optional mtime."""

    def _write(path: Path, content: bytes = b"hello", mtime: datetime | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime is not None:
            set_file_mtime(path, mtime)
        return path

    return _write


@pytest.fixture
def make_item() -> Callable[..., RemoteItem]:
    """Build a RemoteItem describing the given content."""

    def _make(
        key: str = "dir/file.txt",
        content: bytes = b"hello",
        last_modified: datetime = OLD_TIME,
        container: str = CONTAINER,
    ) -> RemoteItem:
        return RemoteItem(
            path=f"/{container}/{key}",
            size=len(content),
            content_hash=compute_bytes_md5(content),
            last_modified=last_modified,
        )

    return _make


@pytest.fixture
def recent_time() -> datetime:
    """An instant inside the default recency windows (one hour ago)."""
    return (utc_now() - timedelta(hours=1)).replace(microsecond=0)


@pytest.fixture(autouse=True)
def reset_blobmirror_logger() -> Iterator[None]:
    """Undo handlers installed by the CLI so caplog keeps working."""
    yield
    logger = logging.getLogger("blobmirror")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
