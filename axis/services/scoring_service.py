"""
axis.services.scoring_service — External Text-Scoring Client
=============================================================

Asks an external text-rating endpoint to grade a proof's text 1–5.
The endpoint receives ``{"prompt": ...}`` and answers ``{"text": ...}``.

Every failure mode collapses to the neutral rating
(:data:`~axis.constants.NEUTRAL_SCORE`): transport errors, timeouts,
non-2xx responses, bodies that aren't JSON, text that doesn't start with
an integer, and integers outside 1–5.  :meth:`TextScoringClient.rate`
never raises.
"""

from __future__ import annotations

import logging
import os
import re

import httpx

from axis.constants import MAX_GRADE, MIN_GRADE, NEUTRAL_SCORE

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = "Rate the following proof from 1 to 5. Return only the digit.\n{text}"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_rating(raw: object) -> int | None:
    """Parse a model reply into a rating; ``None`` if it isn't one."""
    if not isinstance(raw, str):
        return None
    match = _LEADING_INT.match(raw)
    if match is None:
        return None
    rating = int(match.group(1))
    if not MIN_GRADE <= rating <= MAX_GRADE:
        return None
    return rating


class TextScoringClient:
    """``rate(text) -> int`` over HTTP with a neutral fallback.

    Usage::

        scorer = TextScoringClient("https://scoring.internal/rate")
        rating = await scorer.rate(proof.rating_text())
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key if api_key is not None else os.getenv("SCORING_API_KEY")
        self.timeout = timeout
        self._transport = transport

    async def rate(self, text: str) -> int:
        if not text or not text.strip():
            return NEUTRAL_SCORE

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.url,
                    json={"prompt": PROMPT_TEMPLATE.format(text=text)},
                    headers=headers,
                )
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            logger.warning("Text scoring failed, using neutral rating: %s", exc)
            return NEUTRAL_SCORE

        raw = data.get("text") if isinstance(data, dict) else None
        rating = parse_rating(raw)
        if rating is None:
            logger.info("Unusable scoring reply %r, using neutral rating", raw)
            return NEUTRAL_SCORE
        return rating
