"""File state probes.

This module provides:
- FileState: Capability set {exists, size, content_hash, last_modified}
- DiskFileState: FileState of a path on disk, hash computed lazily once
- is_same / diff_string: Generic comparison of two FileState snapshots

RemoteItem and IndexRecord satisfy FileState too, so any pair of remote,
index and disk snapshots can be compared with is_same().
"""

from __future__ import annotations

import contextlib
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from blobmirror.core.hashing import compute_file_md5
from blobmirror.core.timestamps import from_ns, set_file_mtime

logger = logging.getLogger(__name__)


class FileState(Protocol):
    """Observed state of a file-like object."""

    @property
    def exists(self) -> bool: ...

    @property
    def size(self) -> int: ...

    @property
    def content_hash(self) -> str: ...

    @property
    def last_modified(self) -> datetime: ...


def is_same(x: FileState, y: FileState) -> bool:
    """Check if two snapshots describe the same content.

    Same means existence, size, hash and modification time all equal.
    """
    return (
        x.exists == y.exists
        and x.size == y.size
        and x.content_hash == y.content_hash
        and x.last_modified == y.last_modified
    )


def diff_string(x: FileState, y: FileState) -> str:
    """Describe where two snapshots differ (for log messages)."""
    parts = []
    for label, a, b in (
        ("Exists", x.exists, y.exists),
        ("Size", x.size, y.size),
        ("Hash", x.content_hash, y.content_hash),
        ("LastModified", x.last_modified, y.last_modified),
    ):
        part = f"{label}: {a}"
        if a != b:
            part += f" vs {b}"
        parts.append(part)
    return ", ".join(parts)


class DiskFileState:
    """FileState backed by a path on disk.

    Metadata is read from one stat() call taken at construction or refresh().
    The content hash is computed on first access and kept until refresh().
    """

    def __init__(self, path: Path) -> None:
        """Initialize the probe.

        Args:
            path: Absolute path of the file.
        """
        self._path = Path(path)
        self._lock = threading.Lock()
        self._hash: str | None = None
        self._exists = False
        self._size = -1
        self._mtime: datetime | None = None
        self.refresh()

    @property
    def path(self) -> Path:
        """Probed path."""
        return self._path

    def refresh(self) -> None:
        """Observe the file again, dropping the cached hash."""
        with self._lock:
            self._hash = None
            try:
                stat = self._path.stat()
            except FileNotFoundError:
                self._exists = False
                self._size = -1
                self._mtime = None
                return
            self._exists = self._path.is_file()
            self._size = stat.st_size if self._exists else -1
            self._mtime = from_ns(stat.st_mtime_ns) if self._exists else None

    @property
    def exists(self) -> bool:
        """Whether a regular file exists at the path."""
        return self._exists

    @property
    def size(self) -> int:
        """File size, -1 when absent."""
        return self._size

    @property
    def last_modified(self) -> datetime | None:
        """Modification time, None when absent."""
        return self._mtime

    @property
    def content_hash(self) -> str:
        """MD5 of the content, computed once per observation ("" when absent)."""
        with self._lock:
            if self._hash is None:
                if not self._exists:
                    return ""
                self._hash = compute_file_md5(self._path)
            return self._hash

    def set_last_modified(self, value: datetime) -> None:
        """Set the file's modification time if it differs."""
        if not self._exists or self._mtime == value:
            return
        set_file_mtime(self._path, value)
        with self._lock:
            self._mtime = value

    def delete(self) -> None:
        """Delete the file if it exists."""
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()
        self.refresh()

    def __repr__(self) -> str:
        return f"DiskFileState({self._path}, exists={self._exists}, size={self._size})"
