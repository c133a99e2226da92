"""
axis.services.remote_store — Remote Store Client
=================================================

Typed CRUD façade over the authoritative store.  Holds no local state.

Every public method is a coroutine that ships a synchronous SQLAlchemy
unit of work to a worker thread (:func:`~axis.database.engine.run_db`),
bounds it with a timeout, and converts rows to immutable snapshots
before the session closes.  Library exceptions never leak past this
boundary: reads raise :class:`~axis.errors.RemoteReadFailure`, writes
raise :class:`~axis.errors.RemoteWriteFailure`.

No call is retried here; retrying is the caller's decision.

On PostgreSQL every write also emits ``NOTIFY axis_changes`` inside its
transaction so other sessions resync when it commits.

.. note::

    A timed-out call is abandoned, not cancelled: the worker thread may
    still commit afterwards.  The store stays authoritative and the next
    resync picks the outcome up.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from axis.constants import (
    BROADCASTS,
    DEFAULT_REMOTE_TIMEOUT,
    EVENT_LOG_LIMIT,
    EVENTS,
    NOTIFICATIONS,
    PROFILES,
    PROJECTS,
    PROOFS,
)
from axis.database.engine import get_session, run_db
from axis.database.models import (
    Base,
    Broadcast,
    Notification,
    Profile,
    Project,
    Proof,
    ProofStatus,
    SystemEvent,
)
from axis.engine.entities import (
    ProfileSnapshot,
    ProofSnapshot,
    broadcast_from_row,
    event_from_row,
    notification_from_row,
    profile_from_row,
    project_from_row,
    proof_from_row,
)
from axis.engine.reputation import GradeResult, apply_grade
from axis.errors import RemoteFailure, RemoteReadFailure, RemoteWriteFailure
from axis.services.invalidation import notify_before_commit

logger = logging.getLogger(__name__)

# collection → (ORM model, row → snapshot converter)
COLLECTION_MODELS: dict[str, tuple[type[Base], Callable[[Any], Any]]] = {
    PROFILES: (Profile, profile_from_row),
    PROOFS: (Proof, proof_from_row),
    PROJECTS: (Project, project_from_row),
    BROADCASTS: (Broadcast, broadcast_from_row),
    NOTIFICATIONS: (Notification, notification_from_row),
    EVENTS: (SystemEvent, event_from_row),
}

# Snapshot field name → ORM attribute name, where they differ.
_ATTRIBUTE_ALIASES: dict[str, dict[str, str]] = {
    PROFILES: {"dynamic_attributes": "dynamic_data"},
    NOTIFICATIONS: {"metadata": "metadata_"},
}

# Proof changes surface through their owning profile.
_NOTIFY_AS: dict[str, str] = {PROOFS: PROFILES}

# Exceptions that mean "the store did not answer properly".
_REMOTE_ERRORS = (SQLAlchemyError, TimeoutError, OSError, ValueError)


@dataclass(frozen=True, slots=True)
class GradeWrite:
    """Confirmed outcome of :meth:`RemoteStoreClient.grade`."""

    profile: ProfileSnapshot
    proof: ProofSnapshot
    result: GradeResult


class RemoteStoreClient:
    """Per-collection ``list``/``get``/``insert``/``update``/``delete``.

    Usage::

        remote = RemoteStoreClient(engine, timeout=10)
        profiles = await remote.list("profiles")
        project = await remote.insert("projects", {"title": "Launch"})
        await remote.update("projects", project.id, {"price": "$40"})
    """

    def __init__(
        self,
        engine: Engine,
        *,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
        event_log_limit: int = EVENT_LOG_LIMIT,
    ) -> None:
        self.engine = engine
        self.timeout = timeout
        self.event_log_limit = event_log_limit

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def list(self, collection: str, **filters: Any) -> list[Any]:
        """Fetch a whole collection (optionally filtered by equality)."""
        return await self._call(
            RemoteReadFailure, collection, f"list {collection}",
            self._list_sync, collection, filters,
        )

    async def get(self, collection: str, entity_id: str) -> Any | None:
        """Fetch one entity, or ``None`` if it does not exist."""
        return await self._call(
            RemoteReadFailure, collection, f"get {collection}/{entity_id}",
            self._get_sync, collection, entity_id,
        )

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    async def insert(self, collection: str, values: Mapping[str, Any]) -> Any:
        """Insert a row and return the stored snapshot (server defaults applied)."""
        return await self._call(
            RemoteWriteFailure, collection, f"insert {collection}",
            self._insert_sync, collection, dict(values),
        )

    async def update(self, collection: str, entity_id: str, values: Mapping[str, Any]) -> Any:
        """Update one row and return the stored snapshot.

        Raises :class:`RemoteWriteFailure` if the row does not exist.
        """
        result = await self._call(
            RemoteWriteFailure, collection, f"update {collection}/{entity_id}",
            self._update_sync, collection, entity_id, dict(values),
        )
        if result is None:
            raise RemoteWriteFailure(
                f"update {collection}/{entity_id}: no such row", collection=collection,
            )
        return result

    async def delete(self, collection: str, entity_id: str) -> bool:
        """Delete one row.  Deleting an absent row succeeds and returns False."""
        return await self._call(
            RemoteWriteFailure, collection, f"delete {collection}/{entity_id}",
            self._delete_sync, collection, entity_id,
        )

    async def update_where(
        self, collection: str, filters: Mapping[str, Any], values: Mapping[str, Any],
    ) -> list[Any]:
        """Update every row matching *filters*; return the stored snapshots."""
        return await self._call(
            RemoteWriteFailure, collection, f"bulk update {collection}",
            self._update_where_sync, collection, dict(filters), dict(values),
        )

    async def delete_where(self, collection: str, filters: Mapping[str, Any]) -> int:
        """Delete every row matching *filters*; return the row count."""
        if not filters:
            raise RemoteWriteFailure(
                f"bulk delete {collection}: refusing to delete without filters",
                collection=collection,
            )
        return await self._call(
            RemoteWriteFailure, collection, f"bulk delete {collection}",
            self._delete_where_sync, collection, dict(filters),
        )

    async def grade(self, profile_id: str, proof_id: str, score: int) -> GradeWrite | None:
        """Score a pending proof and accumulate onto its profile in one transaction.

        The proof's ``admin_score``/``status`` and the profile's
        ``atis_score``/``rank`` commit together or not at all.  Returns
        ``None`` without writing when the profile or proof is missing, the
        proof belongs to another profile, or it is already scored.
        *score* must already be validated.
        """
        return await self._call(
            RemoteWriteFailure, PROFILES, f"grade {PROFILES}/{profile_id} proof {proof_id}",
            self._grade_sync, profile_id, proof_id, score,
        )

    # -------------------------------------------------------------------
    # Boundary: timeout + exception translation
    # -------------------------------------------------------------------
    async def _call(
        self,
        failure: type[RemoteFailure],
        collection: str,
        description: str,
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        try:
            return await asyncio.wait_for(run_db(func, *args), timeout=self.timeout)
        except TimeoutError as exc:
            logger.warning("%s timed out after %.1fs", description, self.timeout)
            raise failure(
                f"{description} timed out after {self.timeout:.1f}s",
                collection=collection, cause=exc,
            ) from exc
        except _REMOTE_ERRORS as exc:
            logger.warning("%s failed: %s", description, exc)
            raise failure(
                f"{description} failed: {exc}", collection=collection, cause=exc,
            ) from exc

    # -------------------------------------------------------------------
    # Synchronous units of work (run on worker threads)
    # -------------------------------------------------------------------
    @staticmethod
    def _model(collection: str) -> tuple[type[Base], Callable[[Any], Any]]:
        try:
            return COLLECTION_MODELS[collection]
        except KeyError:
            raise ValueError(f"Unknown remote collection: '{collection}'") from None

    @staticmethod
    def _attr(collection: str, model: type[Base], name: str) -> str:
        attr = _ATTRIBUTE_ALIASES.get(collection, {}).get(name, name)
        if attr not in model.__mapper__.column_attrs:
            raise ValueError(f"{collection} has no column '{name}'")
        return attr

    def _where(self, collection: str, model: type[Base], stmt, filters: Mapping[str, Any]):
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, self._attr(collection, model, name)) == value)
        return stmt

    def _apply(self, collection: str, row: Any, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            setattr(row, self._attr(collection, type(row), name), value)

    def _select(self, collection: str, model: type[Base]):
        stmt = select(model)
        if collection == PROFILES:
            stmt = stmt.options(selectinload(Profile.proofs)).order_by(Profile.created_at)
        elif collection == EVENTS:
            stmt = stmt.order_by(SystemEvent.created_at.desc()).limit(self.event_log_limit)
        else:
            stmt = stmt.order_by(model.created_at.desc())
        return stmt

    def _notify(self, session: Session, collection: str, change: str) -> None:
        notify_before_commit(session, _NOTIFY_AS.get(collection, collection), change)

    def _list_sync(self, collection: str, filters: dict[str, Any]) -> list[Any]:
        model, convert = self._model(collection)
        stmt = self._where(collection, model, self._select(collection, model), filters)
        with get_session(self.engine) as session:
            return [convert(row) for row in session.scalars(stmt).all()]

    def _get_sync(self, collection: str, entity_id: str) -> Any | None:
        model, convert = self._model(collection)
        with get_session(self.engine) as session:
            row = session.get(model, entity_id)
            return convert(row) if row is not None else None

    def _insert_sync(self, collection: str, values: dict[str, Any]) -> Any:
        model, convert = self._model(collection)
        with get_session(self.engine) as session:
            row = model()
            self._apply(collection, row, values)
            session.add(row)
            session.flush()
            session.refresh(row)
            snapshot = convert(row)
            self._notify(session, collection, "INSERT")
        return snapshot

    def _update_sync(self, collection: str, entity_id: str, values: dict[str, Any]) -> Any | None:
        model, convert = self._model(collection)
        with get_session(self.engine) as session:
            row = session.get(model, entity_id)
            if row is None:
                return None
            self._apply(collection, row, values)
            session.flush()
            snapshot = convert(row)
            self._notify(session, collection, "UPDATE")
        return snapshot

    def _delete_sync(self, collection: str, entity_id: str) -> bool:
        model, _ = self._model(collection)
        with get_session(self.engine) as session:
            row = session.get(model, entity_id)
            if row is None:
                return False
            session.delete(row)
            self._notify(session, collection, "DELETE")
        return True

    def _update_where_sync(
        self, collection: str, filters: dict[str, Any], values: dict[str, Any],
    ) -> list[Any]:
        model, convert = self._model(collection)
        stmt = self._where(collection, model, self._select(collection, model), filters)
        with get_session(self.engine) as session:
            rows = session.scalars(stmt).all()
            for row in rows:
                self._apply(collection, row, values)
            session.flush()
            snapshots = [convert(row) for row in rows]
            if rows:
                self._notify(session, collection, "UPDATE")
        return snapshots

    def _delete_where_sync(self, collection: str, filters: dict[str, Any]) -> int:
        model, _ = self._model(collection)
        stmt = self._where(collection, model, delete(model), filters)
        with get_session(self.engine) as session:
            count = session.execute(stmt).rowcount or 0
            if count:
                self._notify(session, collection, "DELETE")
        return count

    def _grade_sync(self, profile_id: str, proof_id: str, score: int) -> GradeWrite | None:
        with get_session(self.engine) as session:
            profile = session.get(Profile, profile_id, with_for_update=True)
            proof = session.get(Proof, proof_id, with_for_update=True)
            if (
                profile is None
                or proof is None
                or proof.jobber_id != profile_id
                or proof.status == ProofStatus.SCORED
            ):
                return None
            result = apply_grade(profile.atis_score or 0, score)
            proof.admin_score = score
            proof.status = ProofStatus.SCORED.value
            profile.atis_score = result.atis_score
            profile.rank = result.rank.value
            session.flush()
            written = GradeWrite(profile_from_row(profile), proof_from_row(proof), result)
            self._notify(session, PROFILES, "UPDATE")
        return written
