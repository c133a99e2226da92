"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from datetime import UTC, datetime
from typing import Any

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles

from axis.constants import (
    BROADCASTS,
    EVENTS,
    NOTIFICATIONS,
    PROFILES,
    PROJECTS,
    PROOFS,
)
from axis.database.models import (
    Base,
    BroadcastPriority,
    EventType,
    NotificationType,
    ProfileStatus,
    ProofStatus,
    Rank,
    Role,
    Severity,
)
from axis.engine.entities import (
    BroadcastSnapshot,
    EventSnapshot,
    NotificationSnapshot,
    ProfileSnapshot,
    ProjectSnapshot,
    ProofSnapshot,
)
from axis.engine.reputation import apply_grade
from axis.errors import RemoteReadFailure, RemoteWriteFailure
from axis.services.remote_store import GradeWrite


@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all AXIS tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Snapshot factories
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(UTC)


def make_proof(**overrides: Any) -> ProofSnapshot:
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "jobber_id": "jobber-1",
        "type": "video",
        "title": "Launch recap",
        "url": "https://example.test/proof",
        "status": ProofStatus.PENDING,
        "admin_score": 0,
        "created_at": _now(),
    }
    values.update(overrides)
    return ProofSnapshot(**values)


def make_profile(**overrides: Any) -> ProfileSnapshot:
    values: dict[str, Any] = {
        "id": "jobber-1",
        "role": Role.JOBBER,
        "status": ProfileStatus.ACTIVE,
        "atis_score": 0,
        "rank": Rank.IRON,
        "name": "Jo Jobber",
        "handle": "jojo",
        "created_at": _now(),
    }
    values.update(overrides)
    return ProfileSnapshot(**values)


def make_project(**overrides: Any) -> ProjectSnapshot:
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "title": "Spring campaign",
        "price": "$100",
        "niche": "fitness",
        "created_at": _now(),
    }
    values.update(overrides)
    return ProjectSnapshot(**values)


# ---------------------------------------------------------------------------
# In-memory remote store
# ---------------------------------------------------------------------------
class FakeRemote:
    """Async in-memory stand-in for :class:`RemoteStoreClient`.

    - ``fail_on(op, collection)`` makes matching calls raise.
    - ``list_gate`` (an :class:`asyncio.Event`) holds every ``list`` call
      open until set, so tests can trigger invalidations mid-resync.
    - ``max_lists_in_flight`` records the peak number of concurrent
      resyncs (five lists per resync).
    """

    _READ_OPS = frozenset({"list", "get"})

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Any]] = {
            name: {} for name in (PROFILES, PROOFS, PROJECTS, BROADCASTS, NOTIFICATIONS, EVENTS)
        }
        self._failures: dict[tuple[str, str | None], BaseException | None] = {}
        self.calls: list[tuple[str, str]] = []
        self.list_gate: asyncio.Event | None = None
        self.lists_in_flight = 0
        self.max_lists_in_flight = 0
        self.list_calls: dict[str, int] = {}

    # -- setup helpers ------------------------------------------------------
    def seed(self, collection: str, *items: Any) -> None:
        for item in items:
            if collection == PROFILES:
                for proof in item.proofs:
                    self.tables[PROOFS][proof.id] = proof
                item = dataclasses.replace(item, proofs=())
            self.tables[collection][item.id] = item

    def fail_on(self, op: str, collection: str | None = None, exc: BaseException | None = None) -> None:
        self._failures[(op, collection)] = exc

    def clear_failures(self) -> None:
        self._failures.clear()

    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] not in self._READ_OPS]

    def _check(self, op: str, collection: str) -> None:
        self.calls.append((op, collection))
        for key in ((op, collection), (op, None)):
            if key in self._failures:
                exc = self._failures[key]
                if exc is None:
                    cls = RemoteReadFailure if op in self._READ_OPS else RemoteWriteFailure
                    exc = cls(f"{op} {collection} failed (injected)", collection=collection)
                raise exc

    def _assemble(self, collection: str, item: Any) -> Any:
        if collection != PROFILES:
            return item
        proofs = sorted(
            (p for p in self.tables[PROOFS].values() if p.jobber_id == item.id),
            key=lambda p: p.created_at, reverse=True,
        )
        return dataclasses.replace(item, proofs=tuple(proofs))

    @staticmethod
    def _matches(item: Any, filters: dict[str, Any]) -> bool:
        return all(getattr(item, k) == v for k, v in filters.items())

    # -- RemoteStoreClient surface -----------------------------------------
    async def list(self, collection: str, **filters: Any) -> list[Any]:
        self.list_calls[collection] = self.list_calls.get(collection, 0) + 1
        self.lists_in_flight += 1
        self.max_lists_in_flight = max(self.max_lists_in_flight, self.lists_in_flight)
        try:
            if self.list_gate is not None:
                await self.list_gate.wait()
            else:
                await asyncio.sleep(0)
            self._check("list", collection)
            items = [
                self._assemble(collection, i)
                for i in self.tables[collection].values()
                if self._matches(i, filters)
            ]
            return sorted(items, key=lambda i: i.created_at, reverse=True)
        finally:
            self.lists_in_flight -= 1

    async def get(self, collection: str, entity_id: str) -> Any | None:
        self._check("get", collection)
        item = self.tables[collection].get(entity_id)
        return self._assemble(collection, item) if item is not None else None

    async def insert(self, collection: str, values: dict[str, Any]) -> Any:
        self._check("insert", collection)
        values = dict(values)
        values.setdefault("id", str(uuid.uuid4()))
        values.setdefault("created_at", _now())
        if collection == EVENTS:
            values.setdefault("is_read", False)
        if collection == NOTIFICATIONS:
            values.setdefault("type", NotificationType.SYSTEM)
        cls = {
            PROOFS: ProofSnapshot,
            PROJECTS: ProjectSnapshot,
            BROADCASTS: BroadcastSnapshot,
            NOTIFICATIONS: NotificationSnapshot,
            EVENTS: EventSnapshot,
            PROFILES: ProfileSnapshot,
        }[collection]
        item = cls(**values)
        self.tables[collection][item.id] = item
        return self._assemble(collection, item)

    async def update(self, collection: str, entity_id: str, values: dict[str, Any]) -> Any:
        self._check("update", collection)
        current = self.tables[collection].get(entity_id)
        if current is None:
            raise RemoteWriteFailure(f"update {collection}/{entity_id}: no such row",
                                     collection=collection)
        item = dataclasses.replace(current, **values)
        self.tables[collection][entity_id] = item
        return self._assemble(collection, item)

    async def delete(self, collection: str, entity_id: str) -> bool:
        self._check("delete", collection)
        return self.tables[collection].pop(entity_id, None) is not None

    async def update_where(self, collection: str, filters: dict[str, Any], values: dict[str, Any]) -> list[Any]:
        self._check("update_where", collection)
        updated = []
        for key, item in list(self.tables[collection].items()):
            if self._matches(item, filters):
                item = dataclasses.replace(item, **values)
                self.tables[collection][key] = item
                updated.append(item)
        return updated

    async def delete_where(self, collection: str, filters: dict[str, Any]) -> int:
        self._check("delete_where", collection)
        doomed = [k for k, i in self.tables[collection].items() if self._matches(i, filters)]
        for key in doomed:
            del self.tables[collection][key]
        return len(doomed)

    async def grade(self, profile_id: str, proof_id: str, score: int) -> GradeWrite | None:
        self._check("grade", PROFILES)
        profile = self.tables[PROFILES].get(profile_id)
        proof = self.tables[PROOFS].get(proof_id)
        if profile is None or proof is None or proof.jobber_id != profile_id or proof.is_scored:
            return None
        result = apply_grade(profile.atis_score, score)
        proof = dataclasses.replace(proof, admin_score=score, status=ProofStatus.SCORED)
        profile = dataclasses.replace(profile, atis_score=result.atis_score, rank=result.rank)
        self.tables[PROOFS][proof_id] = proof
        self.tables[PROFILES][profile_id] = profile
        return GradeWrite(self._assemble(PROFILES, profile), proof, result)


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def identity():
    from axis.services.sync_store import Identity, StaticIdentity

    return StaticIdentity(Identity("admin-1", Role.SUPER_ADMIN))


def make_event(**overrides: Any) -> EventSnapshot:
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "type": EventType.ALERT,
        "severity": Severity.LOW,
        "message": "something happened",
        "created_at": _now(),
    }
    values.update(overrides)
    return EventSnapshot(**values)


def make_broadcast(**overrides: Any) -> BroadcastSnapshot:
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "message": "All hands",
        "priority": BroadcastPriority.NORMAL,
        "author_id": "admin-1",
        "created_at": _now(),
    }
    values.update(overrides)
    return BroadcastSnapshot(**values)


def make_notification(**overrides: Any) -> NotificationSnapshot:
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "user_id": "admin-1",
        "is_read": False,
        "message": "ping",
        "created_at": _now(),
    }
    values.update(overrides)
    return NotificationSnapshot(**values)
