"""
axis.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn axis.api.main:app --port 8000

The lifespan builds one :class:`~axis.services.sync_store.SyncStore` for
the configured session user, performs the first full load, and attaches
the PostgreSQL push channel when the store is PostgreSQL.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from axis.api.deps import get_config, get_store  # noqa: E402
from axis.api.routes.collections import router as collections_router  # noqa: E402
from axis.api.routes.mutations import router as mutations_router  # noqa: E402
from axis.database.engine import create_db_engine, init_db  # noqa: E402
from axis.errors import RemoteReadFailure, RemoteWriteFailure, ValidationFailure  # noqa: E402
from axis.services.diagnostics import install_handler  # noqa: E402
from axis.services.remote_store import RemoteStoreClient  # noqa: E402
from axis.services.scoring_service import TextScoringClient  # noqa: E402
from axis.services.sync_store import Identity, StaticIdentity, SyncStore  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


def build_store(cfg, engine) -> SyncStore:
    remote = RemoteStoreClient(
        engine, timeout=cfg.remote_timeout, event_log_limit=cfg.event_log_limit,
    )
    scorer = TextScoringClient(cfg.scoring_url) if cfg.scoring_url else None
    return SyncStore(
        remote,
        StaticIdentity(Identity(cfg.user_id, cfg.user_role)),
        scorer=scorer,
        event_log_limit=cfg.event_log_limit,
        resync_debounce=cfg.resync_debounce,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build, load and dispose the sync store."""
    cfg = get_config()
    engine = create_db_engine()
    init_db(engine)

    store = build_store(cfg, engine)
    # Attached after startup: Uvicorn reconfigures logging when it starts.
    diagnostics_handler = install_handler(store.diagnostics)

    await store.init()
    if engine.dialect.name == "postgresql":
        store.attach_listener(engine)
    app.state.store = store
    logger.info("AXIS API started for user %s (%s)", cfg.user_id, cfg.user_role.value)
    yield
    logger.info("AXIS API shutting down")
    await store.dispose()
    logging.getLogger("axis").removeHandler(diagnostics_handler)
    app.state.store = None
    engine.dispose()


app = FastAPI(
    title="AXIS Dashboard API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(collections_router, prefix="/api")
app.include_router(mutations_router, prefix="/api")


# ---------------------------------------------------------------------------
# Domain error → HTTP status
# ---------------------------------------------------------------------------
@app.exception_handler(ValidationFailure)
async def _validation_failure(request: Request, exc: ValidationFailure):
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(RemoteWriteFailure)
async def _remote_write_failure(request: Request, exc: RemoteWriteFailure):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(RemoteReadFailure)
async def _remote_read_failure(request: Request, exc: RemoteReadFailure):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------
@app.get("/api/health")
def health(request: Request):
    store = getattr(request.app.state, "store", None)
    listener = store.listener if store is not None else None
    return {
        "status": "ok",
        "store_ready": store is not None,
        "listener_healthy": listener.listener_healthy if listener is not None else None,
        "event_log_failures": store.event_log.failures if store is not None else 0,
    }


@app.get("/api/diagnostics")
def diagnostics(
    tail: int = Query(200, ge=1, le=2000),
    level: str | None = None,
    kind: str | None = None,
    store: SyncStore = Depends(get_store),
):
    return {"entries": store.diagnostics.get_entries(tail=tail, level=level, kind=kind)}


@app.post("/api/resync")
async def resync(store: SyncStore = Depends(get_store)):
    await store.refresh_all()
    return {
        "status": "ok",
        "cycles": store.invalidation.cycles_completed,
    }
