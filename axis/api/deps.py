"""
axis.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

import os
from functools import lru_cache

from fastapi import HTTPException, Request, status

from axis.config import AxisConfig, load_config
from axis.services.sync_store import SyncStore


@lru_cache(maxsize=1)
def get_config() -> AxisConfig:
    return load_config(os.getenv("AXIS_CONFIG", "config.yaml"))


def get_store(request: Request) -> SyncStore:
    """Return the session's :class:`SyncStore` built by the app lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Sync store not initialized")
    return store
