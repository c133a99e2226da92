"""
tests/test_remote_store.py — RemoteStoreClient against in-memory SQLite
========================================================================

Exercises the CRUD façade end to end (worker thread, session, snapshot
conversion) and the failure translation at its boundary.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from axis.constants import EVENTS, NOTIFICATIONS, PROFILES, PROJECTS, PROOFS
from axis.database.engine import get_session
from axis.database.models import (
    EventType,
    Notification,
    Profile,
    Project,
    Proof,
    ProofStatus,
    Rank,
    Severity,
    SystemEvent,
)
from axis.engine.entities import ProfileSnapshot, ProjectSnapshot
from axis.errors import RemoteReadFailure, RemoteWriteFailure
from axis.services.remote_store import RemoteStoreClient


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def remote(db_engine):
    return RemoteStoreClient(db_engine, timeout=5, event_log_limit=3)


@pytest.fixture
def seeded(db_engine):
    """One profile (stored rank stale on purpose) with two proofs, one project."""
    now = datetime.now(UTC)
    with get_session(db_engine) as session:
        session.add(Profile(id="p1", name="Jo", handle="jojo", atis_score=320, rank="IRON"))
        session.add(Proof(id="pr-old", jobber_id="p1", type="video", title="Old",
                          url="u1", created_at=now - timedelta(days=1)))
        session.add(Proof(id="pr-new", jobber_id="p1", type="post", title="New",
                          url="u2", created_at=now))
        session.add(Project(id="proj-1", title="Launch", price="$10"))
    return db_engine


class TestReads:
    def test_list_profiles_embeds_proofs(self, remote, seeded):
        profiles = run_async(remote.list(PROFILES))
        assert len(profiles) == 1
        profile = profiles[0]
        assert isinstance(profile, ProfileSnapshot)
        assert [p.id for p in profile.proofs] == ["pr-new", "pr-old"]

    def test_rank_rederived_on_load(self, remote, seeded):
        profile = run_async(remote.get(PROFILES, "p1"))
        assert profile.atis_score == 320
        assert profile.rank == Rank.SILVER

    def test_get_missing_returns_none(self, remote, seeded):
        assert run_async(remote.get(PROJECTS, "nope")) is None

    def test_list_with_filters(self, remote, db_engine):
        with get_session(db_engine) as session:
            session.add(Notification(id="n1", user_id="u1", message="a"))
            session.add(Notification(id="n2", user_id="u2", message="b"))
        rows = run_async(remote.list(NOTIFICATIONS, user_id="u1"))
        assert [n.id for n in rows] == ["n1"]

    def test_events_newest_first_and_capped(self, remote, db_engine):
        base = datetime.now(UTC)
        with get_session(db_engine) as session:
            for i in range(5):
                session.add(SystemEvent(
                    id=f"e{i}", type="alert", severity="low", message=str(i),
                    created_at=base + timedelta(seconds=i),
                ))
        events = run_async(remote.list(EVENTS))
        assert [e.id for e in events] == ["e4", "e3", "e2"]

    def test_unknown_collection_is_read_failure(self, remote):
        with pytest.raises(RemoteReadFailure):
            run_async(remote.list("widgets"))

    def test_database_error_wrapped(self, remote, db_engine):
        Project.__table__.drop(db_engine)
        with pytest.raises(RemoteReadFailure) as exc_info:
            run_async(remote.list(PROJECTS))
        assert exc_info.value.collection == PROJECTS
        assert exc_info.value.__cause__ is not None

    def test_timeout_becomes_read_failure(self, db_engine):
        remote = RemoteStoreClient(db_engine, timeout=0.05)

        async def _slow(func, *args, **kwargs):
            await asyncio.sleep(1)

        with patch("axis.services.remote_store.run_db", _slow):
            with pytest.raises(RemoteReadFailure, match="timed out") as exc_info:
                run_async(remote.list(PROJECTS))
        assert isinstance(exc_info.value.cause, TimeoutError)


class TestWrites:
    def test_insert_applies_server_defaults(self, remote, seeded):
        project = run_async(remote.insert(PROJECTS, {"title": "New campaign"}))
        assert isinstance(project, ProjectSnapshot)
        assert project.id
        assert project.created_at is not None
        assert project.price == ""

    def test_insert_proof_visible_on_profile(self, remote, seeded):
        proof = run_async(remote.insert(PROOFS, {
            "jobber_id": "p1", "type": "video", "title": "Fresh", "url": "u3",
            "status": ProofStatus.PENDING, "admin_score": 0,
        }))
        profile = run_async(remote.get(PROFILES, "p1"))
        assert profile.find_proof(proof.id) is not None

    def test_insert_event(self, remote, seeded):
        event = run_async(remote.insert(EVENTS, {
            "type": EventType.ALERT, "message": "hi", "severity": Severity.HIGH,
        }))
        assert event.type == EventType.ALERT
        assert event.is_read is False

    def test_update_returns_confirmed_snapshot(self, remote, seeded):
        project = run_async(remote.update(PROJECTS, "proj-1", {"price": "$40"}))
        assert project.price == "$40"
        assert project.title == "Launch"

    def test_update_profile_alias(self, remote, seeded):
        profile = run_async(remote.update(PROFILES, "p1", {"dynamic_attributes": {"tier": "a"}}))
        assert profile.dynamic_attributes == {"tier": "a"}

    def test_update_missing_row_fails(self, remote, seeded):
        with pytest.raises(RemoteWriteFailure, match="no such row"):
            run_async(remote.update(PROJECTS, "ghost", {"price": "$1"}))

    def test_update_unknown_column_fails(self, remote, seeded):
        with pytest.raises(RemoteWriteFailure):
            run_async(remote.update(PROJECTS, "proj-1", {"colour": "red"}))
        # Nothing was written.
        assert run_async(remote.get(PROJECTS, "proj-1")).title == "Launch"

    def test_delete_is_idempotent(self, remote, seeded):
        assert run_async(remote.delete(PROJECTS, "proj-1")) is True
        assert run_async(remote.delete(PROJECTS, "proj-1")) is False

    def test_delete_profile_cascades_proofs(self, remote, seeded):
        run_async(remote.delete(PROFILES, "p1"))
        assert run_async(remote.get(PROOFS, "pr-new")) is None

    def test_update_where_and_delete_where(self, remote, db_engine):
        with get_session(db_engine) as session:
            session.add(Notification(id="n1", user_id="u1"))
            session.add(Notification(id="n2", user_id="u1", is_read=True))
            session.add(Notification(id="n3", user_id="u2"))

        updated = run_async(remote.update_where(
            NOTIFICATIONS, {"user_id": "u1", "is_read": False}, {"is_read": True},
        ))
        assert [n.id for n in updated] == ["n1"]
        assert all(n.is_read for n in updated)

        assert run_async(remote.delete_where(NOTIFICATIONS, {"user_id": "u1"})) == 2
        remaining = run_async(remote.list(NOTIFICATIONS))
        assert [n.id for n in remaining] == ["n3"]

    def test_delete_where_requires_filters(self, remote):
        with pytest.raises(RemoteWriteFailure):
            run_async(remote.delete_where(NOTIFICATIONS, {}))


class TestGrade:
    def test_proof_and_profile_written_together(self, remote, seeded):
        written = run_async(remote.grade("p1", "pr-new", 2))

        assert written.profile.atis_score == 340
        assert written.profile.rank == Rank.SILVER
        assert written.proof.status == ProofStatus.SCORED
        assert written.profile.find_proof("pr-new").admin_score == 2
        assert written.result.previous_score == 320

    def test_failure_rolls_back_both_rows(self, remote, seeded):
        with patch("axis.services.remote_store.profile_from_row", side_effect=ValueError("boom")):
            with pytest.raises(RemoteWriteFailure):
                run_async(remote.grade("p1", "pr-new", 4))

        assert run_async(remote.get(PROOFS, "pr-new")).status == ProofStatus.PENDING
        assert run_async(remote.get(PROFILES, "p1")).atis_score == 320

        written = run_async(remote.grade("p1", "pr-new", 4))
        assert written.profile.atis_score == 360

    def test_scored_proof_not_regraded(self, remote, seeded):
        run_async(remote.grade("p1", "pr-old", 5))
        assert run_async(remote.grade("p1", "pr-old", 5)) is None
        assert run_async(remote.get(PROFILES, "p1")).atis_score == 370

    @pytest.mark.parametrize("profile_id, proof_id", [("ghost", "pr-new"), ("p1", "ghost")])
    def test_missing_rows(self, remote, seeded, profile_id, proof_id):
        assert run_async(remote.grade(profile_id, proof_id, 3)) is None

    def test_foreign_proof(self, remote, seeded, db_engine):
        with get_session(db_engine) as session:
            session.add(Profile(id="p2", name="Other"))
        assert run_async(remote.grade("p2", "pr-new", 3)) is None
        assert run_async(remote.get(PROFILES, "p2")).atis_score == 0
