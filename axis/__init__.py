"""
AXIS — Operations Dashboard Sync Core
======================================
Keeps a reactive local mirror of the authoritative AXIS store (profiles,
proofs, projects, broadcasts, notifications, system events) consistent
under confirmed mutations, push-based invalidation, and partial failure.
Also derives reputation rank from accumulated grading scores.

Package layout::

    axis/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Collection names, caps, bounds
    ├── errors.py          # Failure taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Authoritative store schema
    ├── engine/
    │   ├── entities.py    # Immutable cache snapshots
    │   ├── reputation.py  # Rank derivation + grade arithmetic
    │   ├── validation.py  # Structural input checks
    │   └── cache.py       # Reactive in-memory LocalCache
    ├── services/
    │   ├── remote_store.py     # Typed CRUD façade over the store
    │   ├── mutation_service.py # Confirm-then-apply mutations
    │   ├── invalidation.py     # PG LISTEN/NOTIFY → coalesced resync
    │   ├── event_log.py        # Fire-and-forget audit writes
    │   ├── diagnostics.py      # Ring buffer for swallowed failures
    │   ├── scoring_service.py  # Text rating with neutral fallback
    │   └── sync_store.py       # Composition root (init/dispose)
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Read accessors + mutation endpoints
"""

__version__ = "0.1.0"
