"""Error taxonomy shared by the store, the gateway and the sync engine."""
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for failures surfaced by TaskSync components."""

    kind = "sync"

    def __init__(self, message: str = "", *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class TransportError(SyncError):
    """The remote store is unreachable or refused to answer. Always retryable."""

    kind = "transport"


class ValidationError(SyncError):
    """The remote store rejected the payload."""

    kind = "validation"


class NotFoundError(SyncError):
    """The remote record no longer exists."""

    kind = "not_found"


class StorageError(SyncError):
    """Local persistence failed; the current operation is aborted."""

    kind = "storage"


__all__ = [
    "NotFoundError",
    "StorageError",
    "SyncError",
    "TransportError",
    "ValidationError",
]
