"""
axis.api.routes.mutations — Confirm-then-apply write endpoints
===============================================================

Thin wrappers over :class:`~axis.services.mutation_service.MutationCoordinator`.
Domain failures are mapped to HTTP statuses by the handlers registered
in :mod:`axis.api.main`.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from axis.api.deps import get_store
from axis.database.models import BroadcastPriority, Severity
from axis.services.sync_store import SyncStore

router = APIRouter(tags=["mutations"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProfileUpdate(BaseModel):
    # Unknown or frozen keys pass through so the coordinator can reject them.
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    handle: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    role: str | None = None
    status: str | None = None
    trust_modifier: int | None = None
    justification: str | None = None
    followers: int | None = None
    dynamic_attributes: dict[str, Any] | None = None


class ProofSubmit(BaseModel):
    type: str
    title: str
    url: str
    company: str | None = None
    description: str | None = None
    niche: str | None = None


class GradeBody(BaseModel):
    score: int = Field(strict=True)


class ProjectCreate(BaseModel):
    title: str
    link: str = ""
    price: str = ""
    niche: str = ""
    description: str = ""
    created_by: str | None = None


class ProjectUpdate(BaseModel):
    title: str | None = None
    link: str | None = None
    price: str | None = None
    niche: str | None = None
    description: str | None = None


class BroadcastCreate(BaseModel):
    message: str
    priority: str = BroadcastPriority.NORMAL.value
    author_id: str | None = None


class EventCreate(BaseModel):
    type: str
    message: str
    severity: str = Severity.LOW.value
    related_jobber_id: str | None = None


def _body(model: BaseModel) -> dict[str, Any]:
    data = model.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(400, "No fields to update")
    return data


# ---------------------------------------------------------------------------
# Profiles & proofs
# ---------------------------------------------------------------------------
@router.patch("/profiles/{profile_id}")
async def update_profile(profile_id: str, body: ProfileUpdate, store: SyncStore = Depends(get_store)):
    profile = await store.mutations.update_profile(profile_id, _body(body))
    return asdict(profile)


@router.delete("/profiles/{profile_id}", status_code=204)
async def delete_profile(profile_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_profile(profile_id)
    return None


@router.post("/profiles/{profile_id}/refresh")
async def refresh_profile(profile_id: str, store: SyncStore = Depends(get_store)):
    profile = await store.mutations.refresh_profile(profile_id)
    if profile is None:
        raise HTTPException(404, "Profile not found")
    return asdict(profile)


@router.post("/profiles/{profile_id}/proofs", status_code=201)
async def submit_proof(profile_id: str, body: ProofSubmit, store: SyncStore = Depends(get_store)):
    proof = await store.mutations.submit_proof(profile_id, body.model_dump(exclude_none=True))
    return asdict(proof)


@router.post("/profiles/{profile_id}/proofs/{proof_id}/grade")
async def grade_proof(
    profile_id: str, proof_id: str, body: GradeBody, store: SyncStore = Depends(get_store),
):
    profile = await store.mutations.grade_proof(profile_id, proof_id, body.score)
    return asdict(profile)


@router.post("/profiles/{profile_id}/proofs/{proof_id}/auto-grade")
async def auto_grade_proof(profile_id: str, proof_id: str, store: SyncStore = Depends(get_store)):
    profile = await store.auto_grade_proof(profile_id, proof_id)
    return asdict(profile)


@router.delete("/proofs/{proof_id}", status_code=204)
async def delete_proof(proof_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_proof(proof_id)
    return None


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
@router.post("/projects", status_code=201)
async def create_project(body: ProjectCreate, store: SyncStore = Depends(get_store)):
    project = await store.mutations.create_project(body.model_dump(exclude_none=True))
    return asdict(project)


@router.patch("/projects/{project_id}")
async def update_project(project_id: str, body: ProjectUpdate, store: SyncStore = Depends(get_store)):
    project = await store.mutations.update_project(project_id, _body(body))
    return asdict(project)


@router.delete("/projects/{project_id}", status_code=204)
async def delete_project(project_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_project(project_id)
    return None


# ---------------------------------------------------------------------------
# Broadcasts
# ---------------------------------------------------------------------------
@router.post("/broadcasts", status_code=201)
async def create_broadcast(body: BroadcastCreate, store: SyncStore = Depends(get_store)):
    broadcast = await store.mutations.create_broadcast(body.message, body.priority, body.author_id)
    return asdict(broadcast)


@router.delete("/broadcasts/{broadcast_id}", status_code=204)
async def delete_broadcast(broadcast_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_broadcast(broadcast_id)
    return None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/notifications/read-all")
async def mark_all_notifications_read(user_id: str, store: SyncStore = Depends(get_store)):
    count = await store.mutations.mark_all_notifications_read(user_id)
    return {"updated": count}


@router.delete("/users/{user_id}/notifications")
async def clear_notifications(user_id: str, store: SyncStore = Depends(get_store)):
    count = await store.mutations.clear_notifications(user_id)
    return {"deleted": count}


@router.delete("/notifications/{notification_id}", status_code=204)
async def delete_notification(notification_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_notification(notification_id)
    return None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@router.post("/events", status_code=202)
async def log_event(body: EventCreate, store: SyncStore = Depends(get_store)):
    store.mutations.log_event(body.type, body.message, body.severity, body.related_jobber_id)
    return {"queued": True}


@router.delete("/events/{event_id}", status_code=204)
async def delete_event(event_id: str, store: SyncStore = Depends(get_store)):
    await store.mutations.delete_event(event_id)
    return None
