"""Index store: durable record of what was last synchronized.

This module provides:
- IndexRecord: One persisted row, keyed by local name
- IndexStore: SQLite-based store shared by classification and transfer threads

Architecture:
    One row per destination path (local name). Rows are created the first
    time a remote item maps to a local name, updated after every successful
    classification shortcut or transfer, and never removed: a row whose
    object disappeared remotely is tombstoned by setting delete_detected.

    A row is considered "downloaded" (exists) only once last_downloaded is
    set, so an item whose transfer failed is classified as new again on the
    next run.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from blobmirror.core.timestamps import from_iso, to_iso, utc_now

if TYPE_CHECKING:
    from blobmirror.remote import RemoteItem

logger = logging.getLogger(__name__)


@dataclass
class IndexRecord:
    """Persisted state of one mirrored file.

    Attributes:
        local_name: Relative local path, unique key.
        remote_path: Remote path the file was mirrored from.
        last_modified: Modification time last recorded (UTC).
        size: Size last recorded.
        remote_hash: Content hash last recorded.
        last_downloaded: When content was last materialized (None = never).
        delete_detected: When the remote object was found missing (None = live).
    """

    local_name: str
    remote_path: str
    last_modified: datetime
    size: int
    remote_hash: str
    last_downloaded: datetime | None = None
    delete_detected: datetime | None = None

    @classmethod
    def from_remote(cls, item: RemoteItem, local_name: str | None = None) -> IndexRecord:
        """Create a never-downloaded record for a remote item."""
        return cls(
            local_name=local_name or item.local_name,
            remote_path=item.path,
            last_modified=item.last_modified,
            size=item.size,
            remote_hash=item.content_hash,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> IndexRecord:
        """Create IndexRecord from database row."""
        return cls(
            local_name=row["local_name"],
            remote_path=row["remote_path"],
            last_modified=from_iso(row["last_modified"]),
            size=row["size"],
            remote_hash=row["remote_hash"],
            last_downloaded=from_iso(row["last_downloaded"]),
            delete_detected=from_iso(row["delete_detected"]),
        )

    # FileState view of the record

    @property
    def exists(self) -> bool:
        """A record describes existing content once it has been downloaded."""
        return self.last_downloaded is not None

    @property
    def content_hash(self) -> str:
        """Recorded content hash."""
        return self.remote_hash

    def update_from_remote(self, item: RemoteItem) -> None:
        """Take over remote metadata (path, size, hash, mtime)."""
        self.remote_path = item.path
        self.last_modified = item.last_modified
        self.size = item.size
        self.remote_hash = item.content_hash

    def mark_downloaded(self, item: RemoteItem, when: datetime | None = None) -> None:
        """Record that the item's content is now materialized locally.

        Also clears a stale tombstone.
        """
        self.update_from_remote(item)
        self.last_downloaded = when or utc_now()
        self.delete_detected = None

    def __str__(self) -> str:
        return "|".join(str(v) for v in (
            self.remote_path,
            self.size,
            self.last_modified,
            self.remote_hash,
            self.last_downloaded,
            self.delete_detected,
        ))


class IndexStore:
    """SQLite-based index of mirrored files.

    One connection is shared by all threads; every statement runs under a
    re-entrant lock. Writes issued between begin_batch() and end_batch()
    share one transaction.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the index database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._in_batch = False

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS files (
                local_name TEXT PRIMARY KEY,
                remote_path TEXT NOT NULL,
                last_modified TEXT NOT NULL,
                size INTEGER NOT NULL,
                remote_hash TEXT NOT NULL,
                last_downloaded TEXT,
                delete_detected TEXT
            );
        """)

    def close(self) -> None:
        """Commit any open batch and close the connection."""
        with self._lock:
            self.end_batch()
            self._conn.close()

    def __enter__(self) -> IndexStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def path(self) -> Path:
        """Location of the database file."""
        return self._db_path

    # === Batching ===

    def begin_batch(self) -> bool:
        """Open a transaction grouping the following writes.

        Returns:
            True if a batch was started, False if one is already open.
        """
        with self._lock:
            if self._in_batch:
                return False
            self._conn.execute("BEGIN")
            self._in_batch = True
            return True

    def end_batch(self) -> bool:
        """Commit the open batch.

        Returns:
            True if a batch was committed, False if none was open.
        """
        with self._lock:
            if not self._in_batch:
                return False
            self._conn.execute("COMMIT")
            self._in_batch = False
            return True

    # === Record operations ===

    def get_record(self, local_name: str) -> IndexRecord | None:
        """Get a record by local name.

        Args:
            local_name: Relative local path.

        Returns:
            IndexRecord if found, None otherwise.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM files WHERE local_name = ?",
                (local_name,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return IndexRecord.from_row(row)

    def insert_if_absent(self, record: IndexRecord) -> bool:
        """Insert a record unless its local name is already present.

        Returns:
            True if the record was inserted.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO files (
                    local_name, remote_path, last_modified, size, remote_hash,
                    last_downloaded, delete_detected
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                self._values(record),
            )
            return cursor.rowcount == 1

    def get_or_create(self, item: RemoteItem, local_name: str | None = None) -> IndexRecord:
        """Get the record of a remote item, inserting a new one if absent.

        Args:
            item: Remote item being classified.
            local_name: Local name (derived from the item when None).

        Returns:
            The stored record, or the freshly inserted never-downloaded one.
        """
        local_name = local_name or item.local_name
        with self._lock:
            record = self.get_record(local_name)
            if record is not None:
                return record
            record = IndexRecord.from_remote(item, local_name)
            self.insert_if_absent(record)
            logger.debug(f"New index record: {local_name}")
            return record

    def update(self, record: IndexRecord) -> None:
        """Persist all fields of an existing record."""
        values = self._values(record)
        with self._lock:
            self._conn.execute(
                """
                UPDATE files
                SET remote_path = ?, last_modified = ?, size = ?, remote_hash = ?,
                    last_downloaded = ?, delete_detected = ?
                WHERE local_name = ?
                """,
                (*values[1:], values[0]),
            )

    def list_all(self, exclude_deleted: bool = True) -> list[IndexRecord]:
        """List records.

        Args:
            exclude_deleted: Skip tombstoned records.

        Returns:
            List of IndexRecord, ordered by local name.
        """
        query = "SELECT * FROM files"
        if exclude_deleted:
            query += " WHERE delete_detected IS NULL"
        query += " ORDER BY local_name"
        with self._lock:
            rows = self._conn.execute(query).fetchall()
        return [IndexRecord.from_row(row) for row in rows]

    def count(self) -> int:
        """Number of records, tombstoned ones included."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM files").fetchone()
        return int(row[0])

    @staticmethod
    def _values(record: IndexRecord) -> tuple[object, ...]:
        return (
            record.local_name,
            record.remote_path,
            to_iso(record.last_modified),
            record.size,
            record.remote_hash,
            to_iso(record.last_downloaded),
            to_iso(record.delete_detected),
        )
