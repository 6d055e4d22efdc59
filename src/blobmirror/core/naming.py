"""Local file naming for mirrored items.

This module provides:
- escape_invalid_chars: --NAME-- escaping of characters not allowed on disk
- local_name_for: Map a remote path to its local name (index key)
- Marker names for superseded (MODIFIED) and tombstoned (DELETED) files

The escaping is one-way; no decoder exists.
"""

from __future__ import annotations

from datetime import datetime

from blobmirror.core.timestamps import marker_time

CHAR_REPLACEMENTS: dict[str, str] = {
    '"': "QUOTE",
    "<": "LT",
    ">": "GT",
    "|": "PIPE",
    ":": "COLON",
    "*": "STAR",
    "?": "QUESTIONMARK",
}

FLAG_MODIFIED = "[MODIFIED "
FLAG_DELETED = "[DELETED "
FLAG_END = "]"
EMPTY_PLACEHOLDER_SUFFIX = ".empty"

# Path segments that would leave the mirror directory when joined
DOT_SEGMENTS: dict[str, str] = {
    ".": "--DOT--",
    "..": "--DOTDOT--",
}

# Partial downloads; never treated as mirrored content
TEMP_SUFFIX = ".blobmirror-partial"


def escape_invalid_chars(path: str) -> str:
    """Replace characters invalid in local filenames with --NAME-- tokens.

    Args:
        path: Path that may contain invalid characters.

    Returns:
        The escaped path.

    Raises:
        ValueError: If the path holds a control character (no replacement).
    """
    parts: list[str] = []
    for index, char in enumerate(path):
        replacement = CHAR_REPLACEMENTS.get(char)
        if replacement is not None:
            parts.append(f"--{replacement}--")
        elif ord(char) < 32:
            raise ValueError(
                f"Filename {path!r} contains invalid char {char!r} @{index} and has no replacement"
            )
        else:
            parts.append(char)
    return "".join(parts)


def local_name_for(remote_path: str) -> str:
    """Derive the local name (relative, '/'-separated) of a remote path.

    Args:
        remote_path: Remote path in the form /<container>/<key>.

    Returns:
        Escaped local name, e.g. "container/dir/file--COLON--1.txt". "." and
        ".." segments are escaped too, so the name always stays below the
        mirror root.
    """
    while "//" in remote_path:
        remote_path = remote_path.replace("//", "/")
    segments = [
        DOT_SEGMENTS.get(segment, segment)
        for segment in remote_path.lstrip("/").split("/")
    ]
    return escape_invalid_chars("/".join(segments))


def modified_marker(name: str, when: datetime) -> str:
    """Name of an archived, superseded copy of a file."""
    return f"{name}{FLAG_MODIFIED}{marker_time(when)}{FLAG_END}"


def deleted_marker(name: str, when: datetime) -> str:
    """Name of a tombstoned file."""
    return f"{name}{FLAG_DELETED}{marker_time(when)}{FLAG_END}"


def has_marker(name: str) -> bool:
    """Check if a filename already carries a MODIFIED or DELETED marker."""
    return FLAG_MODIFIED in name or FLAG_DELETED in name
