"""Core module - Shared configuration, errors, naming and formatting."""

from blobmirror.core.config import (
    DEFAULT_CLASSIFY_WORKERS,
    DEFAULT_FORCE_MISSING_WINDOW,
    DEFAULT_MAX_TRANSFERS,
    DEFAULT_RECENT_MODIFIED_THRESHOLD,
    MirrorConfig,
)
from blobmirror.core.errors import EnumerationError, MirrorError, ObjectNotFoundError
from blobmirror.core.formatting import format_count, format_size
from blobmirror.core.hashing import (
    compute_bytes_md5,
    compute_file_md5,
    compute_file_multipart_etag,
    multipart_parts,
)
from blobmirror.core.naming import (
    deleted_marker,
    escape_invalid_chars,
    has_marker,
    local_name_for,
    modified_marker,
)
from blobmirror.core.timestamps import marker_time, utc_now

__all__ = [
    # Config
    "DEFAULT_CLASSIFY_WORKERS",
    "DEFAULT_FORCE_MISSING_WINDOW",
    "DEFAULT_MAX_TRANSFERS",
    "DEFAULT_RECENT_MODIFIED_THRESHOLD",
    "MirrorConfig",
    # Errors
    "EnumerationError",
    "MirrorError",
    "ObjectNotFoundError",
    # Formatting
    "format_count",
    "format_size",
    # Hashing
    "compute_bytes_md5",
    "compute_file_md5",
    "compute_file_multipart_etag",
    "multipart_parts",
    # Naming
    "deleted_marker",
    "escape_invalid_chars",
    "has_marker",
    "local_name_for",
    "modified_marker",
    # Timestamps
    "marker_time",
    "utc_now",
]
