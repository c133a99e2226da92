"""
axis.constants — Shared Constants
==================================

Single source of truth for collection names, caps and bounds.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Cached collections (proofs are embedded inside profiles)
# ---------------------------------------------------------------------------
PROFILES = "profiles"
PROJECTS = "projects"
BROADCASTS = "broadcasts"
NOTIFICATIONS = "notifications"
EVENTS = "events"

COLLECTIONS: tuple[str, ...] = (
    PROFILES,
    PROJECTS,
    BROADCASTS,
    NOTIFICATIONS,
    EVENTS,
)

# Remote-only table; proof changes surface through their owning profile.
PROOFS = "proofs"

# Collections whose change notifications trigger a resync.  Notifications
# are per-user and are refreshed on the same trigger.
WATCHED_COLLECTIONS: frozenset[str] = frozenset({
    PROFILES,
    PROJECTS,
    BROADCASTS,
    EVENTS,
})

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
EVENT_LOG_LIMIT = 500

MIN_GRADE = 1
MAX_GRADE = 5
GRADE_POINTS = 10  # atis_score gained per grade point

TRUST_MODIFIER_MIN = -20
TRUST_MODIFIER_MAX = 20

# Rating used whenever the text-scoring service cannot produce one.
NEUTRAL_SCORE = 3

# ---------------------------------------------------------------------------
# Timing defaults (overridable from config.yaml)
# ---------------------------------------------------------------------------
DEFAULT_REMOTE_TIMEOUT = 10.0
DEFAULT_RESYNC_DEBOUNCE = 0.2
