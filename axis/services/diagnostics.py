"""
axis.services.diagnostics — Diagnostics Ring Buffer
====================================================

A thread-safe ring buffer for failures that are absorbed instead of
raised: event-log append failures and, when the logging handler is
installed, every warning-or-worse record from the ``axis`` loggers.

No persistence; entries are lost on restart.  ``GET /api/diagnostics``
reads the tail.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import UTC, datetime

DEFAULT_CAPACITY = 500


class DiagnosticEntry:
    """One captured failure or log record."""
    __slots__ = ("timestamp", "level", "source", "message", "kind")

    def __init__(self, timestamp: str, level: str, source: str, message: str, kind: str):
        self.timestamp = timestamp
        self.level = level
        self.source = source
        self.message = message
        self.kind = kind

    def to_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "source": self.source,
            "message": self.message,
            "kind": self.kind,
        }


class DiagnosticsBuffer:
    """Thread-safe ring buffer backed by :class:`collections.deque`."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[DiagnosticEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: DiagnosticEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def record(self, error: BaseException, *, source: str = "axis", level: str = "WARNING") -> None:
        """Record an absorbed exception, keyed by its class name."""
        self.append(DiagnosticEntry(
            timestamp=datetime.now(UTC).isoformat(),
            level=level,
            source=source,
            message=str(error),
            kind=type(error).__name__,
        ))

    def get_entries(
        self,
        tail: int = 200,
        level: str | None = None,
        kind: str | None = None,
    ) -> list[dict[str, str]]:
        """Return the most recent *tail* entries, optionally filtered."""
        min_level = getattr(logging, level.upper(), 0) if level else 0

        with self._lock:
            snapshot = list(self._entries)

        results: list[dict[str, str]] = []
        for entry in snapshot:
            if min_level and getattr(logging, entry.level, 0) < min_level:
                continue
            if kind and entry.kind != kind:
                continue
            results.append(entry.to_dict())

        if tail and len(results) > tail:
            results = results[-tail:]
        return results

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class DiagnosticsHandler(logging.Handler):
    """Logging handler that appends records to a :class:`DiagnosticsBuffer`."""

    def __init__(self, buffer: DiagnosticsBuffer, level: int = logging.WARNING) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._buffer.append(DiagnosticEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname,
                source=record.name,
                message=self.format(record) if self.formatter else record.getMessage(),
                kind="log",
            ))
        except Exception:
            self.handleError(record)


def install_handler(
    buffer: DiagnosticsBuffer,
    level: int = logging.WARNING,
    logger_name: str = "axis",
) -> DiagnosticsHandler:
    """Attach a :class:`DiagnosticsHandler` for *buffer* to the *logger_name* logger."""
    handler = DiagnosticsHandler(buffer, level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger(logger_name).addHandler(handler)
    return handler
