"""Content hashing for mirrored files."""

from __future__ import annotations

import hashlib
from pathlib import Path

HASH_BLOCK_SIZE = 128 * 1024


def compute_file_md5(path: Path) -> str:
    """Compute the MD5 digest of a file.

    Reads the file in blocks to handle large files efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Hexadecimal MD5 digest, the same encoding object stores use for ETags.
    """
    hasher = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()


def compute_bytes_md5(data: bytes) -> str:
    """Compute the hexadecimal MD5 digest of in-memory content."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def multipart_parts(etag: str) -> int | None:
    """Get the part count of a multipart ETag ("<hex>-<parts>").

    Returns:
        The number of parts, or None for a plain MD5 ETag.
    """
    digest, sep, parts = etag.rpartition("-")
    if not sep or not digest or not parts.isdigit():
        return None
    return int(parts)


def compute_file_multipart_etag(path: Path, part_size: int) -> str:
    """Compute the ETag S3 assigns to a file uploaded in parts.

    The ETag is the MD5 of the concatenated binary MD5 digests of each part,
    followed by "-<number of parts>".

    Args:
        path: Path to the file to hash.
        part_size: Size of every part but the last.

    Returns:
        Multipart ETag, e.g. "0e2b...f9-3".
    """
    digests: list[bytes] = []
    with open(path, "rb") as f:
        while True:
            hasher = hashlib.md5(usedforsecurity=False)
            remaining = part_size
            read = 0
            while remaining > 0:
                block = f.read(min(HASH_BLOCK_SIZE, remaining))
                if not block:
                    break
                hasher.update(block)
                read += len(block)
                remaining -= len(block)
            if read == 0:
                break
            digests.append(hasher.digest())
            if remaining > 0:
                break
    combined = hashlib.md5(b"".join(digests), usedforsecurity=False).hexdigest()
    return f"{combined}-{len(digests)}"
