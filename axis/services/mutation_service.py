"""
axis.services.mutation_service — Confirm-then-Apply Mutation Coordinator
=========================================================================

Every mutating operation follows the same pattern:
  1. Validate input (``ValidationFailure`` before any store I/O)
  2. Issue the remote write and await confirmation
  3. On failure: propagate ``RemoteWriteFailure``; the cache is untouched
  4. On success: reconcile the cache from the *confirmed* payload
  5. Optionally enqueue an event-log entry (never awaited)

Nothing is patched optimistically, so a concurrent resync can never be
clobbered by, or clobber, a write that later fails.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from axis.constants import (
    BROADCASTS,
    EVENTS,
    GRADE_POINTS,
    NOTIFICATIONS,
    PROFILES,
    PROJECTS,
    PROOFS,
)
from axis.database.models import BroadcastPriority, EventType, ProofStatus, Severity
from axis.engine.entities import (
    BroadcastSnapshot,
    ProfileSnapshot,
    ProjectSnapshot,
    ProofSnapshot,
    shallow_fields,
)
from axis.engine.validation import (
    require_id,
    validate_broadcast,
    validate_event,
    validate_grade,
    validate_profile_patch,
    validate_project_data,
    validate_proof_submission,
)
from axis.errors import RemoteReadFailure, RemoteWriteFailure, ValidationFailure

if TYPE_CHECKING:
    from axis.engine.cache import LocalCache
    from axis.services.event_log import EventLogWriter
    from axis.services.remote_store import RemoteStoreClient
    from axis.services.sync_store import IdentityProvider

logger = logging.getLogger(__name__)


class MutationCoordinator:
    """All writes the presentation layer can trigger.

    Usage::

        mutations = MutationCoordinator(remote, cache, event_log, identity)
        profile = await mutations.grade_proof(profile_id, proof_id, 4)
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        cache: LocalCache,
        event_log: EventLogWriter,
        identity: IdentityProvider,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._event_log = event_log
        self._identity = identity

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _apply_confirmed(self, collection: str, snapshot: Any) -> None:
        """Patch the cached entity from a confirmed payload (insert if absent)."""
        if self._cache.patch_one(collection, snapshot.id, shallow_fields(snapshot)) is None:
            self._cache.insert_one(collection, snapshot)

    def _owner_of(self, proof_id: str) -> ProfileSnapshot | None:
        for profile in self._cache.get(PROFILES):
            if profile.find_proof(proof_id) is not None:
                return profile
        return None

    def _current_user_id(self) -> str | None:
        identity = self._identity.current()
        return identity.user_id if identity is not None else None

    # -------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------
    async def update_profile(self, profile_id: str, partial: Mapping[str, Any]) -> ProfileSnapshot:
        require_id(profile_id, "profile_id")
        clean = validate_profile_patch(partial)
        snapshot = await self._remote.update(PROFILES, profile_id, clean)
        self._apply_confirmed(PROFILES, snapshot)
        return snapshot

    async def delete_profile(self, profile_id: str) -> None:
        """Purge a profile remotely and locally (its proofs cascade)."""
        require_id(profile_id, "profile_id")
        cached = self._cache.find(PROFILES, profile_id)
        await self._remote.delete(PROFILES, profile_id)
        self._cache.remove_one(PROFILES, profile_id)
        label = (cached.name or cached.handle) if cached is not None else profile_id
        self._event_log.enqueue(
            EventType.ALERT, f"Profile purged: {label}", Severity.HIGH, profile_id,
        )

    async def refresh_profile(self, profile_id: str) -> ProfileSnapshot | None:
        """Re-read one profile (with proofs) and reconcile the cache.

        A profile that no longer exists remotely is dropped from the cache.
        Read failures propagate as ``RemoteReadFailure``.
        """
        require_id(profile_id, "profile_id")
        snapshot = await self._remote.get(PROFILES, profile_id)
        if snapshot is None:
            self._cache.remove_one(PROFILES, profile_id)
            return None
        self._apply_confirmed(PROFILES, snapshot)
        return snapshot

    # -------------------------------------------------------------------
    # Proofs & grading
    # -------------------------------------------------------------------
    async def grade_proof(self, profile_id: str, proof_id: str, score: int) -> ProfileSnapshot:
        """Score a pending proof and accumulate ``score × 10`` onto the profile.

        The starting score is read from the store, not the cache.  The
        proof and the profile's new ``atis_score``/``rank`` are written in
        one remote transaction, so a failure leaves the proof pending and
        the grade can be retried.
        """
        require_id(profile_id, "profile_id")
        require_id(proof_id, "proof_id")
        score = validate_grade(score)

        try:
            profile = await self._remote.get(PROFILES, profile_id)
        except RemoteReadFailure as exc:
            raise RemoteWriteFailure(
                f"grade_proof: could not read profile {profile_id}: {exc}",
                collection=PROFILES, cause=exc,
            ) from exc
        if profile is None:
            raise ValidationFailure(f"Profile {profile_id} does not exist", field="profile_id")
        proof = profile.find_proof(proof_id)
        if proof is None:
            raise ValidationFailure(
                f"Proof {proof_id} does not belong to profile {profile_id}", field="proof_id",
            )
        if proof.is_scored:
            raise ValidationFailure(f"Proof {proof_id} is already scored", field="proof_id")

        written = await self._remote.grade(profile_id, proof_id, score)
        if written is None:
            raise ValidationFailure(
                f"Proof {proof_id} was scored or moved while grading", field="proof_id",
            )
        result, updated = written.result, written.profile
        if result.promoted:
            logger.info(
                "Profile %s moved %s → %s (ATIS %d → %d)",
                profile_id, result.previous_rank.value, result.rank.value,
                result.previous_score, result.atis_score,
            )

        self._apply_confirmed(PROFILES, updated)
        self._event_log.enqueue(
            EventType.GRADE_CHANGE,
            f"Proof '{proof.title}' graded {score}/5 (+{score * GRADE_POINTS} ATIS)",
            Severity.MEDIUM,
            profile_id,
        )
        return updated

    async def submit_proof(self, profile_id: str, data: Mapping[str, Any]) -> ProofSnapshot:
        require_id(profile_id, "profile_id")
        values = validate_proof_submission(data)
        values.update(jobber_id=profile_id, status=ProofStatus.PENDING, admin_score=0)

        proof = await self._remote.insert(PROOFS, values)

        owner = self._cache.find(PROFILES, profile_id)
        if owner is not None:
            rest = tuple(p for p in owner.proofs if p.id != proof.id)
            self._cache.patch_one(PROFILES, profile_id, {"proofs": (proof, *rest)})
        self._event_log.enqueue(
            EventType.SUBMISSION, f"New proof submitted: {proof.title}", Severity.LOW, profile_id,
        )
        return proof

    async def delete_proof(self, proof_id: str) -> None:
        require_id(proof_id, "proof_id")
        owner = self._owner_of(proof_id)
        await self._remote.delete(PROOFS, proof_id)

        related = None
        if owner is not None:
            related = owner.id
            remaining = tuple(p for p in owner.proofs if p.id != proof_id)
            self._cache.patch_one(PROFILES, owner.id, {"proofs": remaining})
        self._event_log.enqueue(
            EventType.ALERT, f"Proof deleted: {proof_id}", Severity.HIGH, related,
        )

    # -------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------
    async def create_project(self, data: Mapping[str, Any]) -> ProjectSnapshot:
        values = validate_project_data(data)
        if values.get("created_by") is None:
            values["created_by"] = self._current_user_id()
        project = await self._remote.insert(PROJECTS, values)
        self._cache.insert_one(PROJECTS, project)
        self._event_log.enqueue(
            EventType.ALERT, f"Project created: {project.title}", Severity.MEDIUM,
        )
        return project

    async def update_project(self, project_id: str, partial: Mapping[str, Any]) -> ProjectSnapshot:
        require_id(project_id, "project_id")
        values = validate_project_data(partial, partial=True)
        project = await self._remote.update(PROJECTS, project_id, values)
        self._apply_confirmed(PROJECTS, project)
        self._event_log.enqueue(
            EventType.ALERT, f"Project updated: {project.title}", Severity.LOW,
        )
        return project

    async def delete_project(self, project_id: str) -> None:
        require_id(project_id, "project_id")
        cached = self._cache.find(PROJECTS, project_id)
        await self._remote.delete(PROJECTS, project_id)
        self._cache.remove_one(PROJECTS, project_id)
        label = cached.title if cached is not None else project_id
        self._event_log.enqueue(
            EventType.ALERT, f"Project deleted: {label}", Severity.HIGH,
        )

    # -------------------------------------------------------------------
    # Broadcasts
    # -------------------------------------------------------------------
    async def create_broadcast(
        self,
        message: str,
        priority: BroadcastPriority | str = BroadcastPriority.NORMAL,
        author_id: str | None = None,
    ) -> BroadcastSnapshot:
        message, priority = validate_broadcast(message, priority)
        author_id = author_id or self._current_user_id()
        require_id(author_id, "author_id")

        broadcast = await self._remote.insert(
            BROADCASTS, {"message": message, "priority": priority, "author_id": author_id},
        )
        self._cache.insert_one(BROADCASTS, broadcast)
        self._event_log.enqueue(
            EventType.ALERT, f"Broadcast sent ({priority.value})", Severity.HIGH, author_id,
        )
        return broadcast

    async def delete_broadcast(self, broadcast_id: str) -> None:
        require_id(broadcast_id, "broadcast_id")
        await self._remote.delete(BROADCASTS, broadcast_id)
        self._cache.remove_one(BROADCASTS, broadcast_id)

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------
    async def mark_all_notifications_read(self, user_id: str) -> int:
        """Mark every unread notification of *user_id* read.  Returns the count."""
        require_id(user_id, "user_id")
        rows = await self._remote.update_where(
            NOTIFICATIONS, {"user_id": user_id, "is_read": False}, {"is_read": True},
        )
        if rows:
            confirmed = {row.id: row for row in rows}
            merged = [confirmed.get(n.id, n) for n in self._cache.get(NOTIFICATIONS)]
            self._cache.replace_all(NOTIFICATIONS, merged)
        return len(rows)

    async def clear_notifications(self, user_id: str) -> int:
        """Delete every notification of *user_id*.  Returns the count."""
        require_id(user_id, "user_id")
        count = await self._remote.delete_where(NOTIFICATIONS, {"user_id": user_id})
        kept = [n for n in self._cache.get(NOTIFICATIONS) if n.user_id != user_id]
        self._cache.replace_all(NOTIFICATIONS, kept)
        return count

    async def delete_notification(self, notification_id: str) -> None:
        require_id(notification_id, "notification_id")
        await self._remote.delete(NOTIFICATIONS, notification_id)
        self._cache.remove_one(NOTIFICATIONS, notification_id)

    # -------------------------------------------------------------------
    # Event log
    # -------------------------------------------------------------------
    def log_event(
        self,
        event_type: EventType | str,
        message: str,
        severity: Severity | str = Severity.LOW,
        related_jobber_id: str | None = None,
    ) -> None:
        """Queue a manual audit entry.  Returns immediately."""
        event_type, message, severity = validate_event(event_type, message, severity)
        if related_jobber_id is not None:
            require_id(related_jobber_id, "related_jobber_id")
        self._event_log.enqueue(event_type, message, severity, related_jobber_id)

    async def delete_event(self, event_id: str) -> None:
        require_id(event_id, "event_id")
        await self._remote.delete(EVENTS, event_id)
        self._cache.remove_one(EVENTS, event_id)
