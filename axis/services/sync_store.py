"""
axis.services.sync_store — Composition Root
============================================

:class:`SyncStore` wires the local cache, mutation coordinator,
invalidation subscriber and event-log writer around one
:class:`~axis.services.remote_store.RemoteStoreClient`, and owns their
lifecycle.  No module-level state: every session builds its own store.

Usage::

    store = SyncStore(remote, StaticIdentity(Identity(user_id, Role.ADMIN)))
    await store.init()                     # start event log, first full load
    store.attach_listener(engine)          # optional PG push channel

    projects = store.projects
    await store.mutations.update_project(pid, {"price": "$40"})

    await store.dispose()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from axis.constants import (
    BROADCASTS,
    DEFAULT_RESYNC_DEBOUNCE,
    EVENT_LOG_LIMIT,
    EVENTS,
    NEUTRAL_SCORE,
    NOTIFICATIONS,
    PROFILES,
    PROJECTS,
)
from axis.database.models import Role
from axis.engine.cache import LocalCache, Subscriber
from axis.engine.validation import require_id
from axis.errors import ValidationFailure
from axis.services.diagnostics import DiagnosticsBuffer
from axis.services.event_log import EventLogWriter
from axis.services.invalidation import InvalidationSubscriber, PgNotifyListener
from axis.services.mutation_service import MutationCoordinator

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from axis.engine.entities import (
        BroadcastSnapshot,
        EventSnapshot,
        NotificationSnapshot,
        ProfileSnapshot,
        ProjectSnapshot,
    )
    from axis.services.remote_store import RemoteStoreClient
    from axis.services.scoring_service import TextScoringClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Identity:
    user_id: str
    role: Role


class IdentityProvider(Protocol):
    def current(self) -> Identity | None: ...


class StaticIdentity:
    """Identity fixed for the lifetime of the session (from config)."""

    def __init__(self, identity: Identity | None) -> None:
        self._identity = identity

    def current(self) -> Identity | None:
        return self._identity


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class SyncStore:
    def __init__(
        self,
        remote: RemoteStoreClient,
        identity: IdentityProvider,
        *,
        scorer: TextScoringClient | None = None,
        event_log_limit: int = EVENT_LOG_LIMIT,
        resync_debounce: float = DEFAULT_RESYNC_DEBOUNCE,
        diagnostics: DiagnosticsBuffer | None = None,
    ) -> None:
        self.remote = remote
        self.identity = identity
        self.scorer = scorer
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsBuffer()
        self.cache = LocalCache(event_log_limit=event_log_limit)
        self.event_log = EventLogWriter(remote, self.cache, self.diagnostics)
        self.invalidation = InvalidationSubscriber(
            remote, self.cache, identity, debounce=resync_debounce,
        )
        self.mutations = MutationCoordinator(remote, self.cache, self.event_log, identity)
        self.listener: PgNotifyListener | None = None
        self._initialized = False

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def init(self) -> None:
        """Start the event-log writer and perform the first full load."""
        if self._initialized:
            return
        self.event_log.start()
        await self.invalidation.request_resync()
        self._initialized = True
        logger.info(
            "Sync store ready: %d profiles, %d projects, %d events",
            len(self.profiles), len(self.projects), len(self.events),
        )

    async def dispose(self) -> None:
        """Stop the listener, cancel resyncs, drain the event log, clear the cache."""
        if self.listener is not None:
            await asyncio.to_thread(self.listener.stop)
            self.listener = None
        await self.invalidation.cancel()
        await self.event_log.stop()
        self.cache.clear()
        self._initialized = False
        logger.info("Sync store disposed")

    def attach_listener(self, engine: Engine) -> PgNotifyListener:
        """Start the PostgreSQL push channel feeding this store's invalidations."""
        if self.listener is not None:
            return self.listener
        listener = PgNotifyListener(
            engine, self.invalidation.handle_notify, asyncio.get_running_loop(),
        )
        listener.start()
        self.listener = listener
        return listener

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @property
    def profiles(self) -> list[ProfileSnapshot]:
        return self.cache.get(PROFILES)

    @property
    def projects(self) -> list[ProjectSnapshot]:
        return self.cache.get(PROJECTS)

    @property
    def broadcasts(self) -> list[BroadcastSnapshot]:
        return self.cache.get(BROADCASTS)

    @property
    def notifications(self) -> list[NotificationSnapshot]:
        return self.cache.get(NOTIFICATIONS)

    @property
    def events(self) -> list[EventSnapshot]:
        return self.cache.get(EVENTS)

    def find(self, collection: str, entity_id: str) -> Any | None:
        return self.cache.find(collection, entity_id)

    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        return self.cache.subscribe(collection, callback)

    async def refresh_all(self) -> None:
        """Explicit "refresh all": joins (or schedules) a coalesced resync."""
        await self.invalidation.request_resync()

    # -------------------------------------------------------------------
    # Text scoring
    # -------------------------------------------------------------------
    async def rate_proof_text(self, text: str) -> int:
        """Rate *text* 1–5; neutral when no scorer is configured."""
        if self.scorer is None:
            return NEUTRAL_SCORE
        return await self.scorer.rate(text)

    async def auto_grade_proof(self, profile_id: str, proof_id: str) -> ProfileSnapshot:
        """Rate a cached proof's text and grade it with the result."""
        require_id(profile_id, "profile_id")
        require_id(proof_id, "proof_id")
        profile = self.cache.find(PROFILES, profile_id)
        proof = profile.find_proof(proof_id) if profile is not None else None
        if proof is None:
            raise ValidationFailure(
                f"Proof {proof_id} of profile {profile_id} is not loaded", field="proof_id",
            )
        rating = await self.rate_proof_text(proof.rating_text())
        logger.info("Auto-grading proof %s with rating %d", proof_id, rating)
        return await self.mutations.grade_proof(profile_id, proof_id, rating)
