"""
axis.services.event_log — Non-Blocking Audit Trail Writer
==========================================================

Mutations call :meth:`EventLogWriter.enqueue`, which never awaits.  A
named background task drains the queue, inserting one ``events`` row per
entry.  A confirmed append is placed at the front of the cached events
list (capped); a failed append becomes a
:class:`~axis.errors.LogWriteFailure` in the diagnostics buffer and is
never retried or surfaced to the mutation's caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from axis.constants import EVENTS
from axis.database.models import EventType, Severity
from axis.errors import LogWriteFailure, RemoteWriteFailure

if TYPE_CHECKING:
    from axis.engine.cache import LocalCache
    from axis.services.diagnostics import DiagnosticsBuffer
    from axis.services.remote_store import RemoteStoreClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingEvent:
    type: EventType
    message: str
    severity: Severity
    related_jobber_id: str | None = None

    def as_values(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
            "related_jobber_id": self.related_jobber_id,
            "is_read": False,
        }


class EventLogWriter:
    """Background queue of event-log appends.

    - ``enqueue()`` is synchronous and returns immediately.
    - ``start()`` spawns the drain task on the running loop.
    - ``flush()`` waits until every queued entry has been attempted.
    - ``stop()`` flushes, then cancels the drain task.
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        cache: LocalCache,
        diagnostics: DiagnosticsBuffer,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._diagnostics = diagnostics
        self._queue: asyncio.Queue[PendingEvent] = asyncio.Queue()
        self._drain_task: asyncio.Task | None = None
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(
        self,
        event_type: EventType,
        message: str,
        severity: Severity,
        related_jobber_id: str | None = None,
    ) -> None:
        """Queue one audit entry; never blocks the caller."""
        self._queue.put_nowait(PendingEvent(event_type, message, severity, related_jobber_id))

    def start(self) -> None:
        """Start the background drain task."""
        if self.running:
            return
        self._drain_task = asyncio.get_running_loop().create_task(
            self._drain_loop(), name="axis-event-log",
        )
        logger.info("Event log writer started")

    async def flush(self) -> None:
        """Wait until every queued entry has been written or recorded as failed."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._drain_task is None:
            return
        if self.running:
            await self.flush()
        task, self._drain_task = self._drain_task, None
        task.cancel()
        await asyncio.wait({task})
        logger.info("Event log writer stopped")

    async def _drain_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.write(event)
            finally:
                self._queue.task_done()

    async def write(self, event: PendingEvent) -> None:
        """Append one entry.  Failures are recorded, not raised."""
        try:
            snapshot = await self._remote.insert(EVENTS, event.as_values())
        except Exception as exc:
            if not isinstance(exc, RemoteWriteFailure):
                logger.exception("Unexpected error appending event log entry")
            self.failures += 1
            failure = LogWriteFailure(
                f"event log append failed ({event.type.value}: {event.message}): {exc}",
                collection=EVENTS,
                cause=exc,
            )
            self._diagnostics.record(failure, source=__name__)
            logger.warning("%s", failure)
            return
        self._cache.insert_one(EVENTS, snapshot)
