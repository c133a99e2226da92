"""
axis.database.models — SQLAlchemy 2.0 Data Models
===================================================

Schema of the authoritative AXIS store.  The sync core never holds these
ORM objects in its cache; rows are converted to immutable snapshots
(:mod:`axis.engine.entities`) inside the session that loaded them.

Tables:
- profiles       — Personnel records (role, reputation, rank)
- proofs         — Submitted evidence-of-work, owned by a profile
- projects       — Campaigns available to jobbers
- broadcasts     — Administrator directives pushed to everyone
- notifications  — Per-user in-app notifications
- events         — Append-only system audit trail
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all AXIS ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    JOBBER = "JOBBER"


class ProfileStatus(enum.StrEnum):
    ACTIVE = "active"
    PROBATION = "probation"
    SUSPENDED = "suspended"


class Rank(enum.StrEnum):
    """Reputation tiers, lowest first."""
    IRON = "IRON"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"


class ProofStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    SCORED = "scored"
    FLAGGED = "flagged"


class BroadcastPriority(enum.StrEnum):
    NORMAL = "normal"
    URGENT = "urgent"


class NotificationType(enum.StrEnum):
    CAMPAIGN = "campaign"
    MESSAGE = "message"
    SYSTEM = "system"


class EventType(enum.StrEnum):
    """Kinds of entries in the system audit trail."""
    SUBMISSION = "submission"
    ALERT = "alert"
    GRADE_CHANGE = "grade_change"


class Severity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Profiles — one row per registered member
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    handle: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    avatar_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.JOBBER.value)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProfileStatus.ACTIVE.value
    )
    atis_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[str] = mapped_column(String(10), nullable=False, default=Rank.IRON.value)
    trust_modifier: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    justification: Mapped[str] = mapped_column(Text, nullable=False, default="")
    followers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dynamic_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    proofs: Mapped[list[Proof]] = relationship(
        back_populates="jobber",
        cascade="all, delete-orphan",
        order_by="Proof.created_at.desc()",
    )

    __table_args__ = (
        Index("ix_profiles_atis_score", "atis_score"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} handle={self.handle!r} rank={self.rank}>"


# ---------------------------------------------------------------------------
# Proofs — evidence-of-work, graded once by an administrator
# ---------------------------------------------------------------------------
class Proof(Base):
    __tablename__ = "proofs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    jobber_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    company: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    niche: Mapped[str | None] = mapped_column(String(100), nullable=True)
    admin_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProofStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    jobber: Mapped[Profile] = relationship(back_populates="proofs")

    __table_args__ = (
        Index("ix_proofs_jobber_status", "jobber_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Proof id={self.id} jobber={self.jobber_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Projects — campaigns
# ---------------------------------------------------------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    link: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    niche: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Broadcasts — administrator directives
# ---------------------------------------------------------------------------
class Broadcast(Base):
    __tablename__ = "broadcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=BroadcastPriority.NORMAL.value
    )
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Broadcast id={self.id} priority={self.priority}>"


# ---------------------------------------------------------------------------
# Notifications — per-user inbox
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NotificationType.SYSTEM.value
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} read={self.is_read}>"


# ---------------------------------------------------------------------------
# Events — append-only system audit trail
# ---------------------------------------------------------------------------
class SystemEvent(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    severity: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Severity.LOW.value
    )
    related_jobber_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SystemEvent id={self.id} type={self.type} severity={self.severity}>"
