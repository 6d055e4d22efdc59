"""Exception classes shared across blobmirror."""

from __future__ import annotations


class MirrorError(Exception):
    """Base exception for mirror errors."""


class ObjectNotFoundError(MirrorError):
    """Raised when a listed object no longer exists on the remote.

    Happens when an object is deleted between listing and transfer.
    """


class EnumerationError(MirrorError):
    """Fatal failure while listing the remote container.

    Attributes:
        scanned: Number of items scanned before the failure.
    """

    def __init__(self, message: str, scanned: int = 0) -> None:
        super().__init__(message)
        self.scanned = scanned
