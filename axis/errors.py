"""
axis.errors — Failure Taxonomy
===============================

Every failure the sync core can report derives from :class:`SyncError`.

- :class:`ValidationFailure`   — malformed input, rejected before any write.
- :class:`RemoteWriteFailure`  — the store rejected or timed out a write.
- :class:`RemoteReadFailure`   — a read or resync fetch failed.
- :class:`LogWriteFailure`     — an event-log append failed (diagnostics only).
"""

from __future__ import annotations

__all__ = [
    "LogWriteFailure",
    "RemoteFailure",
    "RemoteReadFailure",
    "RemoteWriteFailure",
    "SyncError",
    "ValidationFailure",
]


class SyncError(Exception):
    """Base class for all sync-core failures."""


class ValidationFailure(SyncError, ValueError):
    """Input violates an entity's structural constraints."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class RemoteFailure(SyncError):
    """A call to the authoritative store did not succeed."""

    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.cause = cause


class RemoteWriteFailure(RemoteFailure):
    """The store rejected or timed out a write.  The cache is untouched."""


class RemoteReadFailure(RemoteFailure):
    """A read failed.  The last-known-good snapshot is retained."""


class LogWriteFailure(RemoteFailure):
    """An event-log append failed.  Recorded, never surfaced or retried."""
