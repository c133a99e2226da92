"""
axis.config — YAML Configuration Loader
========================================

Reads ``config.yaml`` for session and tuning settings (current user,
remote timeout, resync debounce, event-log cap, scoring endpoint).
Secrets (``DATABASE_URL``, ``SCORING_API_KEY``) stay in the environment
and are loaded from ``.env`` by the entry points.

Usage::

    from axis.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.user_id)           # "6a1f…"
    print(cfg.resync_debounce)   # 0.2
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from axis.constants import (
    DEFAULT_REMOTE_TIMEOUT,
    DEFAULT_RESYNC_DEBOUNCE,
    EVENT_LOG_LIMIT,
)
from axis.database.models import Role


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AxisConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Session identity (the single tenant this process mirrors for)
    user_id: str
    user_role: Role

    # Dashboard
    dashboard_port: int

    # Sync tuning
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    resync_debounce: float = DEFAULT_RESYNC_DEBOUNCE
    event_log_limit: int = EVENT_LOG_LIMIT

    # Optional
    scoring_url: str | None = None  # Text-scoring endpoint; None → always neutral


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AxisConfig:
    """Read *path* and return an :class:`AxisConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``user_role`` is not a known role.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return AxisConfig(
        user_id=str(raw["user_id"]),
        user_role=Role(raw["user_role"]),
        dashboard_port=int(raw["dashboard_port"]),
        remote_timeout=float(raw.get("remote_timeout", DEFAULT_REMOTE_TIMEOUT)),
        resync_debounce=float(raw.get("resync_debounce", DEFAULT_RESYNC_DEBOUNCE)),
        event_log_limit=int(raw.get("event_log_limit", EVENT_LOG_LIMIT)),
        scoring_url=raw.get("scoring_url") or None,
    )
