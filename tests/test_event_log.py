"""
tests/test_event_log.py — Background Event Log Writer
======================================================
"""

from __future__ import annotations

import asyncio

from conftest import make_event

from axis.constants import EVENTS
from axis.database.models import EventType, Severity
from axis.engine.cache import LocalCache
from axis.services.diagnostics import DiagnosticsBuffer
from axis.services.event_log import EventLogWriter


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


class TestEventLogWriter:
    def test_enqueue_does_not_write_until_drained(self, fake_remote):
        async def _inner():
            writer = EventLogWriter(fake_remote, LocalCache(), DiagnosticsBuffer())
            writer.enqueue(EventType.ALERT, "queued", Severity.LOW)
            assert writer.pending == 1
            assert fake_remote.calls == []
        run_async(_inner())

    def test_success_inserted_at_front(self, fake_remote):
        cache = LocalCache()
        cache.replace_all(EVENTS, [make_event(id="old")])

        async def _inner():
            writer = EventLogWriter(fake_remote, cache, DiagnosticsBuffer())
            writer.start()
            writer.enqueue(EventType.GRADE_CHANGE, "graded", Severity.MEDIUM, "jobber-1")
            await writer.flush()
            await writer.stop()

        run_async(_inner())

        events = cache.get(EVENTS)
        assert [e.message for e in events][0] == "graded"
        assert events[0].related_jobber_id == "jobber-1"
        assert events[1].id == "old"

    def test_cap_respected(self, fake_remote):
        cache = LocalCache(event_log_limit=2)

        async def _inner():
            writer = EventLogWriter(fake_remote, cache, DiagnosticsBuffer())
            writer.start()
            for i in range(4):
                writer.enqueue(EventType.ALERT, f"e{i}", Severity.LOW)
            await writer.stop()

        run_async(_inner())
        assert [e.message for e in cache.get(EVENTS)] == ["e3", "e2"]

    def test_failure_recorded_not_raised(self, fake_remote):
        cache = LocalCache()
        diagnostics = DiagnosticsBuffer()
        fake_remote.fail_on("insert", EVENTS)

        async def _inner():
            writer = EventLogWriter(fake_remote, cache, diagnostics)
            writer.start()
            writer.enqueue(EventType.ALERT, "lost", Severity.HIGH)
            await writer.flush()
            assert writer.running
            await writer.stop()
            return writer

        writer = run_async(_inner())

        assert cache.get(EVENTS) == []
        assert writer.failures == 1
        entries = diagnostics.get_entries(kind="LogWriteFailure")
        assert len(entries) == 1
        assert "lost" in entries[0]["message"]

    def test_failure_not_retried(self, fake_remote):
        fake_remote.fail_on("insert", EVENTS)

        async def _inner():
            writer = EventLogWriter(fake_remote, LocalCache(), DiagnosticsBuffer())
            writer.start()
            writer.enqueue(EventType.ALERT, "once", Severity.LOW)
            await writer.stop()

        run_async(_inner())
        assert fake_remote.calls.count(("insert", EVENTS)) == 1

    def test_stop_without_start(self, fake_remote):
        async def _inner():
            writer = EventLogWriter(fake_remote, LocalCache(), DiagnosticsBuffer())
            await writer.stop()
            assert writer.running is False
        run_async(_inner())

    def test_unexpected_error_does_not_stop_writer(self, fake_remote):
        cache = LocalCache()
        diagnostics = DiagnosticsBuffer()
        fake_remote.fail_on("insert", EVENTS, RuntimeError("boom"))

        async def _inner():
            writer = EventLogWriter(fake_remote, cache, diagnostics)
            writer.start()
            writer.enqueue(EventType.ALERT, "first", Severity.LOW)
            await asyncio.wait_for(writer.flush(), timeout=1)
            fake_remote.clear_failures()
            writer.enqueue(EventType.ALERT, "second", Severity.LOW)
            await asyncio.wait_for(writer.flush(), timeout=1)
            running = writer.running
            await writer.stop()
            return writer, running

        writer, running = run_async(_inner())

        assert running is True
        assert writer.failures == 1
        assert [e.message for e in cache.get(EVENTS)] == ["second"]
        entries = diagnostics.get_entries(kind="LogWriteFailure")
        assert len(entries) == 1
        assert "boom" in entries[0]["message"]
