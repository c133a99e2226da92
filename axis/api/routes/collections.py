"""
axis.api.routes.collections — Cached collection reads
======================================================

Every read is served from the local cache; nothing here touches the
remote store.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from axis.api.deps import get_store
from axis.constants import PROFILES, PROJECTS
from axis.services.sync_store import SyncStore

router = APIRouter(tags=["collections"])


@router.get("/profiles")
def list_profiles(store: SyncStore = Depends(get_store)):
    return [asdict(p) for p in store.profiles]


@router.get("/profiles/{profile_id}")
def get_profile(profile_id: str, store: SyncStore = Depends(get_store)):
    profile = store.find(PROFILES, profile_id)
    if profile is None:
        raise HTTPException(404, "Profile not found")
    return asdict(profile)


@router.get("/projects")
def list_projects(store: SyncStore = Depends(get_store)):
    return [asdict(p) for p in store.projects]


@router.get("/projects/{project_id}")
def get_project(project_id: str, store: SyncStore = Depends(get_store)):
    project = store.find(PROJECTS, project_id)
    if project is None:
        raise HTTPException(404, "Project not found")
    return asdict(project)


@router.get("/broadcasts")
def list_broadcasts(store: SyncStore = Depends(get_store)):
    return [asdict(b) for b in store.broadcasts]


@router.get("/notifications")
def list_notifications(
    unread_only: bool = Query(False),
    store: SyncStore = Depends(get_store),
):
    items = store.notifications
    if unread_only:
        items = [n for n in items if not n.is_read]
    return [asdict(n) for n in items]


@router.get("/events")
def list_events(
    limit: int | None = Query(None, ge=1),
    store: SyncStore = Depends(get_store),
):
    events = store.events
    if limit is not None:
        events = events[:limit]
    return [asdict(e) for e in events]
