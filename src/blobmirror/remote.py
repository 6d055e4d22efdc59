"""Remote item sources.

This module provides:
- RemoteItem: Immutable snapshot of one remote object
- RemoteSource: Abstract interface for listing and fetching remote objects
- LocalFSSource: Directory-backed source for development and testing
- S3Source: S3-compatible object store (AWS, OVH, MinIO, ...)
- create_source: Factory building a source from configuration
"""

from __future__ import annotations

import contextlib
import logging
import math
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from blobmirror.core.errors import ObjectNotFoundError
from blobmirror.core.hashing import (
    compute_file_md5,
    compute_file_multipart_etag,
    multipart_parts,
)
from blobmirror.core.naming import TEMP_SUFFIX, local_name_for
from blobmirror.core.timestamps import ensure_utc, from_ns

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5000

MIB = 1024 * 1024

# Part sizes tried when the store does not report the first part size;
# boto3 and the AWS CLI use 8 MiB, other tools 5 to 128 MiB
COMMON_PART_SIZES = tuple(n * MIB for n in (8, 5, 16, 15, 10, 32, 64, 100, 128))


@dataclass(frozen=True)
class RemoteItem:
    """A content object as reported by the remote listing.

    Attributes:
        path: Remote path, /<container>/<key>.
        size: Content length in bytes.
        content_hash: Hex MD5 digest of the content, or a multipart ETag
            ("<hex>-<parts>") for objects uploaded in parts.
        last_modified: Last modification time (UTC).
    """

    path: str
    size: int
    content_hash: str
    last_modified: datetime

    @property
    def exists(self) -> bool:
        """Listed items always exist."""
        return True

    @property
    def container(self) -> str:
        """Container part of the path."""
        return self.path.lstrip("/").split("/", 1)[0]

    @property
    def key(self) -> str:
        """Object key within its container."""
        return self.path.lstrip("/").split("/", 1)[1]

    @property
    def local_name(self) -> str:
        """Relative local name (index key) of this item."""
        return local_name_for(self.path)

    def __str__(self) -> str:
        return "|".join(
            (self.path, str(self.size), self.last_modified.isoformat(), self.content_hash)
        )


class RemoteSource(ABC):
    """Abstract interface for a remote object store."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of the remote."""

    @abstractmethod
    def enumerate(self, container: str) -> Iterator[list[RemoteItem]]:
        """Lazily list a container, one batch per listing page.

        The sequence is finite and not restartable.

        Args:
            container: Container (bucket) to list.

        Yields:
            Batches of RemoteItem.
        """

    @abstractmethod
    def _fetch(self, item: RemoteItem, target: Path) -> None:
        """Write the content of an item to target.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
        """

    def local_hash(self, item: RemoteItem, path: Path) -> str:
        """Hash a local file the way this source hashes the item.

        Args:
            item: Item the file should hold.
            path: Local file.

        Returns:
            A digest comparable with item.content_hash.
        """
        return compute_file_md5(path)

    def download(self, item: RemoteItem, dest: Path) -> None:
        """Download an item with an atomic write.

        Content goes to a temporary file next to dest which is renamed over
        dest on success and removed on failure.

        Args:
            item: Item to download.
            dest: Final local path.

        Raises:
            ObjectNotFoundError: If the object vanished since listing.
            OSError: On local filesystem errors.
        """
        tmp_path = dest.with_name(dest.name + TEMP_SUFFIX)
        logger.debug(f"Downloading {item.path} -> {dest}")
        try:
            self._fetch(item, tmp_path)
            os.replace(tmp_path, dest)
        except Exception:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise


class LocalFSSource(RemoteSource):
    """Directory tree exposed as an object store.

    Each sub-directory of root is a container; files are objects whose key is
    their '/'-separated path below the container directory.
    """

    def __init__(self, root: Path | str, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        """Initialize the source.

        Args:
            root: Directory holding one sub-directory per container.
            page_size: Maximum number of items per batch.
        """
        self._root = Path(root).resolve()
        self._page_size = page_size

    @property
    def location(self) -> str:
        """Return the source directory."""
        return f"Local filesystem: {self._root}"

    def enumerate(self, container: str) -> Iterator[list[RemoteItem]]:
        """List files below the container directory, sorted per directory."""
        base = self._root / container
        if not base.is_dir():
            raise ObjectNotFoundError(f"Container not found: {container}")

        batch: list[RemoteItem] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                try:
                    stat = path.stat()
                    content_hash = compute_file_md5(path)
                except FileNotFoundError:
                    continue
                key = path.relative_to(base).as_posix()
                batch.append(RemoteItem(
                    path=f"/{container}/{key}",
                    size=stat.st_size,
                    content_hash=content_hash,
                    last_modified=from_ns(stat.st_mtime_ns),
                ))
                if len(batch) >= self._page_size:
                    yield batch
                    batch = []
        if batch:
            yield batch

    def _fetch(self, item: RemoteItem, target: Path) -> None:
        """Copy the object file."""
        source = self._root / item.container / item.key
        try:
            shutil.copyfile(source, target)
        except FileNotFoundError as e:
            if not source.exists():
                raise ObjectNotFoundError(f"Object not found: {item.path}") from e
            raise


def normalize_etag(etag: str | None) -> str:
    """Strip quotes from an ETag and lower-case it."""
    if not etag:
        return ""
    return etag.strip().strip('"').lower()


class S3Source(RemoteSource):
    """S3-compatible object store (AWS, OVH, MinIO, etc.)."""

    def __init__(
        self,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        page_size: int = 1000,
    ) -> None:
        """Initialize the S3 source.

        Args:
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
            page_size: Listing page size (S3 caps pages at 1000 keys).
        """
        import boto3

        self._endpoint_url = endpoint_url
        self._page_size = page_size
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 endpoint."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}"
        return "S3: AWS"

    def enumerate(self, container: str) -> Iterator[list[RemoteItem]]:
        """List the bucket page by page."""
        paginator = self._client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=container,
            PaginationConfig={"PageSize": self._page_size},
        )
        for page in pages:
            batch = [
                RemoteItem(
                    path=f"/{container}/{obj['Key']}",
                    size=obj["Size"],
                    content_hash=normalize_etag(obj.get("ETag")),
                    last_modified=ensure_utc(obj["LastModified"]),
                )
                for obj in page.get("Contents", [])
                if not obj["Key"].endswith("/")
            ]
            logger.debug(f"Listed page of {len(batch)} objects from {container}")
            if batch:
                yield batch

    def _fetch(self, item: RemoteItem, target: Path) -> None:
        """Download the object with boto3's managed transfer."""
        from botocore.exceptions import ClientError

        try:
            self._client.download_file(item.container, item.key, str(target))
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                raise ObjectNotFoundError(f"Object not found: {item.path}") from e
            raise

    def local_hash(self, item: RemoteItem, path: Path) -> str:
        """Hash a local file, as a multipart ETag when the object has one.

        The part size is taken from the first part of the object; when the
        store does not report it, common part sizes giving the same number
        of parts are tried.
        """
        parts = multipart_parts(item.content_hash)
        if parts is None:
            return compute_file_md5(path)

        etag = ""
        for part_size in self._part_sizes(item, parts):
            etag = compute_file_multipart_etag(path, part_size)
            if etag == item.content_hash:
                break
        return etag

    def _part_sizes(self, item: RemoteItem, parts: int) -> Iterator[int]:
        """Yield candidate part sizes splitting the item into parts pieces."""
        candidates = [self._first_part_size(item), *COMMON_PART_SIZES]
        # Even split rounded up to a whole MiB
        candidates.append(max(math.ceil(item.size / parts / MIB), 1) * MIB)

        seen: set[int] = set()
        for size in candidates:
            if not size or size in seen:
                continue
            seen.add(size)
            if math.ceil(item.size / size) == parts:
                yield size

    def _first_part_size(self, item: RemoteItem) -> int | None:
        from botocore.exceptions import ClientError

        try:
            head = self._client.head_object(
                Bucket=item.container, Key=item.key, PartNumber=1
            )
        except ClientError as e:
            logger.debug(f"No part size for {item.path}: {e}")
            return None
        size = head.get("ContentLength")
        if not size or size >= item.size:
            return None
        return int(size)


def create_source(config: dict[str, Any]) -> RemoteSource:
    """Factory function to create a remote source from configuration.

    Args:
        config: Source configuration dict with keys:
            - type: "local" or "s3"
            - For local: root
            - For S3: endpoint_url, access_key, secret_key, region

    Returns:
        Configured RemoteSource instance.

    Raises:
        ValueError: If the source type is unknown or misconfigured.
    """
    source_type = config.get("type") or "local"

    if source_type == "local":
        root = config.get("root")
        if not root:
            raise ValueError("Local source requires 'root' configuration")
        return LocalFSSource(root)

    if source_type == "s3":
        return S3Source(
            endpoint_url=config.get("endpoint_url"),
            access_key=config.get("access_key"),
            secret_key=config.get("secret_key"),
            region=config.get("region") or "us-east-1",
        )

    raise ValueError(f"Unknown source type: {source_type}")
