"""Well-known trivial content.

Remote objects whose (size, hash) identify trivially empty payloads are
never transferred: the index is stamped as downloaded without moving data.
The table is data only so it can be tested and extended on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from blobmirror.sync.probe import FileState

logger = logging.getLogger(__name__)

EMPTY_MD5 = "d41d8cd98f00b204e9800998ecf8427e"

# Largest object still accepted with the empty-payload digest
EMPTY_HASH_MAX_SIZE = 1024 * 1024


@dataclass(frozen=True)
class WellKnownEntry:
    """One trivial payload, matched by exact size or by a size ceiling."""

    content_hash: str
    description: str
    size: int | None = None
    max_size: int | None = None

    def matches(self, size: int, content_hash: str) -> bool:
        if content_hash != self.content_hash:
            return False
        if self.size is not None:
            return size == self.size
        return self.max_size is not None and size < self.max_size


WELL_KNOWN_CONTENT: tuple[WellKnownEntry, ...] = (
    WellKnownEntry(EMPTY_MD5, "empty payload", size=0),
    # Some stores report the empty digest for small objects uploaded without content hash
    WellKnownEntry(EMPTY_MD5, "empty digest", max_size=EMPTY_HASH_MAX_SIZE),
    WellKnownEntry("d751713988987e9331980363e24189ce", "[]", size=2),
    WellKnownEntry("99914b932bd37a50b983c5e7c90ae93b", "{}", size=2),
    WellKnownEntry("399fc6670871474cd7ce0458401fd299", '[""]', size=4),
)


def find_well_known(
    size: int,
    content_hash: str,
    table: tuple[WellKnownEntry, ...] = WELL_KNOWN_CONTENT,
) -> WellKnownEntry | None:
    """Look up a (size, hash) pair in the table."""
    for entry in table:
        if entry.matches(size, content_hash):
            return entry
    return None


def is_well_known(
    state: FileState,
    table: tuple[WellKnownEntry, ...] = WELL_KNOWN_CONTENT,
) -> bool:
    """Check if a snapshot holds well-known trivial content."""
    entry = find_well_known(state.size, state.content_hash, table)
    if entry is None and state.size == 0:
        logger.warning(f"Zero size item with unknown hash {state.content_hash}")
    return entry is not None
