"""
axis.services.invalidation — Push-Driven Full Resynchronization
================================================================

Any change notification for a watched collection (profiles, projects,
broadcasts, events) schedules a *full* resync: every collection is
fetched concurrently and each one that succeeded replaces its cache
container.  A failing fetch keeps that collection's previous snapshot.

Scheduling is a dirty flag drained by a single task:

  - at most one resync is in flight at any time;
  - triggers arriving while a cycle runs coalesce into exactly one
    follow-up cycle;
  - an optional debounce window absorbs bursts before a cycle starts.

The push channel is PostgreSQL ``LISTEN/NOTIFY`` on ``axis_changes``.
:class:`PgNotifyListener` owns a background ``psycopg2`` connection and
marshals payloads onto the event loop; it never touches the cache.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import select as _select
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from axis.constants import (
    BROADCASTS,
    COLLECTIONS,
    DEFAULT_RESYNC_DEBOUNCE,
    EVENTS,
    NOTIFICATIONS,
    PROFILES,
    PROJECTS,
    WATCHED_COLLECTIONS,
)
from axis.errors import RemoteReadFailure

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from axis.engine.cache import LocalCache
    from axis.services.remote_store import RemoteStoreClient
    from axis.services.sync_store import IdentityProvider

logger = logging.getLogger(__name__)

# The PG channel carrying collection change notifications
NOTIFY_CHANNEL = "axis_changes"

# Collection names accepted in a NOTIFY payload.
ALLOWED_NOTIFY_COLLECTIONS: frozenset[str] = frozenset(COLLECTIONS)

CHANGE_KINDS: frozenset[str] = frozenset({"INSERT", "UPDATE", "DELETE"})


# ---------------------------------------------------------------------------
# NOTIFY emission / parsing
# ---------------------------------------------------------------------------
def notify_before_commit(session: Session, collection: str, change: str = "UPDATE") -> None:
    """Queue a NOTIFY in the current transaction (fires atomically on commit).

    A no-op on non-PostgreSQL backends, which have no push channel.

    Parameters
    ----------
    session : Session
        The active SQLAlchemy session (must not yet be committed).
    collection : str
        Must be in :data:`ALLOWED_NOTIFY_COLLECTIONS`.
    change : str
        One of ``INSERT``, ``UPDATE``, ``DELETE``.
    """
    if collection not in ALLOWED_NOTIFY_COLLECTIONS:
        raise ValueError(
            f"Invalid collection for NOTIFY: '{collection}'. "
            f"Allowed: {sorted(ALLOWED_NOTIFY_COLLECTIONS)}"
        )
    if change not in CHANGE_KINDS:
        raise ValueError(f"Invalid change kind for NOTIFY: '{change}'")
    if session.get_bind().dialect.name != "postgresql":
        return
    payload = json.dumps({"collection": collection, "change": change})
    session.execute(
        text("SELECT pg_notify(:channel, :payload)"),
        {"channel": NOTIFY_CHANNEL, "payload": payload},
    )


def parse_notify_payload(raw: str | None) -> str | None:
    """Extract the collection name from a NOTIFY payload.

    Accepts ``{"collection": "...", "change": "..."}`` JSON or a bare
    collection name.  Returns ``None`` for an unusable payload.
    """
    raw = (raw or "").strip()
    if not raw:
        return None
    if raw.startswith("{"):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid NOTIFY payload (bad JSON): %s", raw)
            return None
        collection = data.get("collection") if isinstance(data, dict) else None
        if not isinstance(collection, str):
            logger.warning("NOTIFY payload missing 'collection': %s", raw)
            return None
        return collection.strip().lower()
    return raw.lower()


# ---------------------------------------------------------------------------
# Subscriber
# ---------------------------------------------------------------------------
class InvalidationSubscriber:
    """Coalescing full-resync scheduler.

    Usage::

        subscriber = InvalidationSubscriber(remote, cache, identity)
        subscriber.handle_notify('{"collection": "projects", "change": "UPDATE"}')
        await subscriber.request_resync()   # explicit "refresh all"
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        cache: LocalCache,
        identity: IdentityProvider,
        *,
        debounce: float = DEFAULT_RESYNC_DEBOUNCE,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._identity = identity
        self.debounce = debounce
        self._dirty = False
        self._task: asyncio.Task | None = None
        # Futures resolved by the next cycle to *start* after they were added.
        self._waiters: list[asyncio.Future] = []
        self.cycles_completed = 0

    @property
    def resync_in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------
    def handle_notify(self, payload: str | None) -> bool:
        """Entry point for raw push-channel payloads."""
        collection = parse_notify_payload(payload)
        if collection is None:
            return False
        return self.invalidate(collection)

    def invalidate(self, collection: str) -> bool:
        """Schedule a resync if *collection* is watched.  Returns True if scheduled."""
        if collection not in ALLOWED_NOTIFY_COLLECTIONS:
            logger.warning("Unknown collection in change notification: %s — ignoring", collection)
            return False
        if collection not in WATCHED_COLLECTIONS:
            logger.debug("Change on unwatched collection '%s' ignored", collection)
            return False
        logger.debug("Invalidation for '%s'", collection)
        self._schedule()
        return True

    def request_resync(self) -> asyncio.Future:
        """Schedule a resync and return a future resolved when it completes.

        Must be called from the event loop thread.
        """
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)
        self._schedule()
        return waiter

    def _schedule(self) -> None:
        self._dirty = True
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._drain(), name="axis-resync",
            )

    # -------------------------------------------------------------------
    # Cycle loop
    # -------------------------------------------------------------------
    async def _drain(self) -> None:
        while self._dirty:
            self._dirty = False
            if self.debounce > 0:
                await asyncio.sleep(self.debounce)
                # Triggers during the debounce window join this cycle.
                self._dirty = False
            waiters, self._waiters = self._waiters, []
            try:
                await self._resync()
            except asyncio.CancelledError:
                # The cycle never completed; its waiters must not see success.
                for waiter in waiters:
                    if not waiter.done():
                        waiter.cancel()
                raise
            except Exception:
                logger.exception("Resync cycle crashed")
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(None)

    async def _resync(self) -> None:
        identity = self._identity.current()
        fetches: dict[str, Any] = {
            PROFILES: self._remote.list(PROFILES),
            PROJECTS: self._remote.list(PROJECTS),
            BROADCASTS: self._remote.list(BROADCASTS),
            NOTIFICATIONS: (
                self._remote.list(NOTIFICATIONS, user_id=identity.user_id)
                if identity is not None else _empty()
            ),
            EVENTS: self._remote.list(EVENTS),
        }
        results = await asyncio.gather(*fetches.values(), return_exceptions=True)

        failed = []
        for collection, result in zip(fetches, results):
            if isinstance(result, RemoteReadFailure):
                logger.warning("Resync of '%s' failed, keeping previous snapshot: %s",
                               collection, result)
                failed.append(collection)
            elif isinstance(result, BaseException):
                logger.error("Resync of '%s' failed unexpectedly", collection,
                             exc_info=result)
                failed.append(collection)
            else:
                self._cache.replace_all(collection, result)

        self.cycles_completed += 1
        if failed:
            logger.info("Resync #%d done with %d failed collection(s): %s",
                        self.cycles_completed, len(failed), ", ".join(failed))
        else:
            logger.debug("Resync #%d done", self.cycles_completed)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def wait_idle(self) -> None:
        """Wait until no resync is scheduled or running."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def cancel(self) -> None:
        """Cancel any in-flight resync and release pending waiters."""
        self._dirty = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()


async def _empty() -> list:
    return []


# ---------------------------------------------------------------------------
# PG LISTEN thread
# ---------------------------------------------------------------------------
class PgNotifyListener:
    """Background thread that LISTENs on :data:`NOTIFY_CHANNEL`.

    Uses a raw psycopg2 connection + ``select()`` so the event loop is
    never blocked.  Reconnects with exponential backoff + jitter and
    gives up (``listener_failed``) after *max_reconnect_attempts*.
    Payloads are handed to *on_notify* on *loop*.
    """

    def __init__(
        self,
        engine: Engine,
        on_notify: Callable[[str], Any],
        loop: asyncio.AbstractEventLoop,
        *,
        max_reconnect_attempts: int = 10,
        base_backoff: float = 1.0,
        max_backoff: float = 60.0,
    ) -> None:
        self._engine = engine
        self._on_notify = on_notify
        self._loop = loop
        self.max_reconnect_attempts = max_reconnect_attempts
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self._shutdown_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._healthy = False
        self._failed = False

    @property
    def listener_healthy(self) -> bool:
        """Return True if the LISTEN thread is alive and connected."""
        return self._healthy and not self._failed

    @property
    def listener_failed(self) -> bool:
        """Return True if the listener exhausted reconnect attempts."""
        return self._failed

    def start(self) -> None:
        thread = threading.Thread(target=self._run, daemon=True, name="axis-notify-listener")
        self._thread = thread
        thread.start()
        logger.info("PG NOTIFY listener thread started")

    def stop(self) -> None:
        """Signal the listener thread to stop and wait for it to exit."""
        self._shutdown_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5)
            logger.info("PG NOTIFY listener thread stopped")

    def backoff_for(self, attempt: int) -> float:
        backoff = min(self.base_backoff * (2 ** (attempt - 1)), self.max_backoff)
        return backoff + random.uniform(0, backoff * 0.5)

    def _dispatch(self, payload: str) -> None:
        try:
            self._loop.call_soon_threadsafe(self._on_notify, payload)
        except RuntimeError:
            logger.warning("Event loop closed; dropping NOTIFY payload %s", payload)

    def _run(self) -> None:
        import psycopg2

        # str(engine.url) masks the password; psycopg2 needs the real one.
        raw_url = self._engine.url.render_as_string(hide_password=False)
        dsn = raw_url.replace("postgresql+psycopg2://", "postgresql://")
        attempt = 0

        while not self._shutdown_event.is_set():
            conn = None
            try:
                conn = psycopg2.connect(dsn)
                conn.set_isolation_level(0)  # autocommit
                cur = conn.cursor()
                cur.execute(f"LISTEN {NOTIFY_CHANNEL};")
                logger.info("PG LISTEN started on channel '%s'", NOTIFY_CHANNEL)

                attempt = 0
                self._healthy = True

                while not self._shutdown_event.is_set():
                    if _select.select([conn], [], [], 5.0) == ([], [], []):
                        continue
                    conn.poll()
                    while conn.notifies:
                        notify = conn.notifies.pop(0)
                        logger.debug("NOTIFY received: %s", notify.payload)
                        self._dispatch(notify.payload or "")

            except (psycopg2.Error, OSError):
                self._healthy = False
                attempt += 1

                if attempt >= self.max_reconnect_attempts:
                    logger.critical(
                        "PG LISTEN exhausted %d retries. Push invalidation disabled.",
                        self.max_reconnect_attempts,
                    )
                    self._failed = True
                    break

                wait = self.backoff_for(attempt)
                logger.exception(
                    "PG LISTEN connection lost (attempt %d/%d). Reconnecting in %.1fs…",
                    attempt, self.max_reconnect_attempts, wait,
                )
                if self._shutdown_event.wait(timeout=wait):
                    break
            finally:
                self._healthy = False
                if conn is not None:
                    try:
                        conn.close()
                    except psycopg2.Error:
                        logger.debug("Error closing LISTEN connection", exc_info=True)
