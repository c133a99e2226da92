"""
axis.__main__ — Entry point for ``python -m axis``
===================================================

Wiring:
1. Load .env (``DATABASE_URL``, ``SCORING_API_KEY``).
2. Load config.yaml (session user, tuning, dashboard port).
3. Serve the FastAPI app; its lifespan builds the sync store, performs
   the first full load and starts the PG LISTEN/NOTIFY listener.

Run with::

    python -m axis
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from axis.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("axis")


def main() -> None:
    """Bootstrap and serve the AXIS dashboard API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config(os.getenv("AXIS_CONFIG", "config.yaml"))
    except FileNotFoundError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — session user %s (%s)", cfg.user_id, cfg.user_role.value)

    # 3. Serve (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting AXIS dashboard API on port %d…", cfg.dashboard_port)
    uvicorn.run("axis.api.main:app", host="0.0.0.0", port=cfg.dashboard_port, log_config=None)


if __name__ == "__main__":
    main()
