"""
axis.engine.entities — Immutable Cache Snapshots
=================================================

Every entity held by the :class:`~axis.engine.cache.LocalCache` is a
frozen snapshot of the last successful remote read or write.  Snapshots
are built from ORM rows *inside* the session that loaded them, so the
cache never holds live ORM state.

Proofs are embedded in their owning :class:`ProfileSnapshot`; there is
no top-level proofs collection in the mirror.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from axis.database.models import (
    Broadcast,
    BroadcastPriority,
    EventType,
    Notification,
    NotificationType,
    Profile,
    ProfileStatus,
    Project,
    Proof,
    ProofStatus,
    Rank,
    Role,
    Severity,
    SystemEvent,
)
from axis.engine.reputation import reconcile_rank

__all__ = [
    "BroadcastSnapshot",
    "EventSnapshot",
    "NotificationSnapshot",
    "ProfileSnapshot",
    "ProjectSnapshot",
    "ProofSnapshot",
    "broadcast_from_row",
    "event_from_row",
    "notification_from_row",
    "profile_from_row",
    "project_from_row",
    "proof_from_row",
    "shallow_fields",
]


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProofSnapshot:
    id: str
    jobber_id: str
    type: str
    title: str
    url: str
    status: ProofStatus = ProofStatus.PENDING
    admin_score: int = 0
    company: str | None = None
    description: str | None = None
    niche: str | None = None
    created_at: datetime | None = None

    @property
    def is_scored(self) -> bool:
        return self.status == ProofStatus.SCORED

    def rating_text(self) -> str:
        """Text handed to the scoring service for automated grading."""
        parts = [self.title, self.company, self.description, self.url]
        return "\n".join(p for p in parts if p)


@dataclass(frozen=True, slots=True)
class ProfileSnapshot:
    """A personnel record with its proofs embedded, newest first."""

    id: str
    role: Role
    status: ProfileStatus
    atis_score: int
    rank: Rank
    trust_modifier: int = 0
    name: str = ""
    handle: str = ""
    email: str = ""
    avatar_url: str = ""
    justification: str = ""
    followers: int = 0
    dynamic_attributes: dict[str, Any] = field(default_factory=dict)
    proofs: tuple[ProofSnapshot, ...] = ()
    created_at: datetime | None = None

    def find_proof(self, proof_id: str) -> ProofSnapshot | None:
        for proof in self.proofs:
            if proof.id == proof_id:
                return proof
        return None


@dataclass(frozen=True, slots=True)
class ProjectSnapshot:
    id: str
    title: str
    price: str = ""
    niche: str = ""
    link: str = ""
    description: str = ""
    created_by: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BroadcastSnapshot:
    id: str
    message: str
    priority: BroadcastPriority
    author_id: str
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NotificationSnapshot:
    id: str
    user_id: str
    is_read: bool
    message: str = ""
    type: NotificationType = NotificationType.SYSTEM
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class EventSnapshot:
    id: str
    type: EventType
    severity: Severity
    message: str = ""
    related_jobber_id: str | None = None
    is_read: bool = False
    created_at: datetime | None = None


def shallow_fields(entity: Any) -> dict[str, Any]:
    """Field → value mapping of a snapshot without recursing into children.

    Unlike :func:`dataclasses.asdict`, embedded proofs stay snapshots, so
    the result can be fed straight back into ``LocalCache.patch_one``.
    """
    return {f.name: getattr(entity, f.name) for f in fields(entity)}


# ---------------------------------------------------------------------------
# Row → snapshot converters (call inside the loading session)
# ---------------------------------------------------------------------------
def proof_from_row(row: Proof) -> ProofSnapshot:
    return ProofSnapshot(
        id=row.id,
        jobber_id=row.jobber_id,
        type=row.type,
        title=row.title,
        url=row.url,
        status=ProofStatus(row.status),
        admin_score=row.admin_score or 0,
        company=row.company,
        description=row.description,
        niche=row.niche,
        created_at=row.created_at,
    )


def profile_from_row(row: Profile) -> ProfileSnapshot:
    """Convert a profile row, re-deriving its rank from ``atis_score``.

    The stored rank is a cache of the derivation; a disagreeing value is
    corrected here rather than trusted.
    """
    score = row.atis_score or 0
    return ProfileSnapshot(
        id=row.id,
        role=Role(row.role),
        status=ProfileStatus(row.status),
        atis_score=score,
        rank=reconcile_rank(score, row.rank, profile_id=row.id),
        trust_modifier=row.trust_modifier or 0,
        name=row.name,
        handle=row.handle,
        email=row.email,
        avatar_url=row.avatar_url,
        justification=row.justification,
        followers=row.followers or 0,
        dynamic_attributes=dict(row.dynamic_data or {}),
        proofs=tuple(proof_from_row(p) for p in row.proofs),
        created_at=row.created_at,
    )


def project_from_row(row: Project) -> ProjectSnapshot:
    return ProjectSnapshot(
        id=row.id,
        title=row.title,
        price=row.price,
        niche=row.niche,
        link=row.link,
        description=row.description,
        created_by=row.created_by,
        created_at=row.created_at,
    )


def broadcast_from_row(row: Broadcast) -> BroadcastSnapshot:
    return BroadcastSnapshot(
        id=row.id,
        message=row.message,
        priority=BroadcastPriority(row.priority),
        author_id=row.author_id,
        created_at=row.created_at,
    )


def notification_from_row(row: Notification) -> NotificationSnapshot:
    return NotificationSnapshot(
        id=row.id,
        user_id=row.user_id,
        is_read=bool(row.is_read),
        message=row.message,
        type=NotificationType(row.type),
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
    )


def event_from_row(row: SystemEvent) -> EventSnapshot:
    return EventSnapshot(
        id=row.id,
        type=EventType(row.type),
        severity=Severity(row.severity),
        message=row.message,
        related_jobber_id=row.related_jobber_id,
        is_read=bool(row.is_read),
        created_at=row.created_at,
    )
