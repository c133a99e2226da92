"""
axis.engine.reputation — Rank Derivation & Grade Arithmetic
============================================================

Pure functions.  No store I/O, no cache access.

Rank is a deterministic function of the cumulative ATIS score::

    score ≥ 500        → GOLD
    300 ≤ score < 500  → SILVER
    100 ≤ score < 300  → BRONZE
    score < 100        → IRON

A manual grade of ``k`` (1–5) adds ``k × 10`` to the score; the rank is
then re-derived.  The stored rank is only ever a cache of this function.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from axis.constants import GRADE_POINTS
from axis.database.models import Rank

logger = logging.getLogger(__name__)

__all__ = ["GradeResult", "RANK_THRESHOLDS", "apply_grade", "derive_rank", "reconcile_rank"]

# Highest tier first; the first threshold the score reaches wins.
RANK_THRESHOLDS: tuple[tuple[int, Rank], ...] = (
    (500, Rank.GOLD),
    (300, Rank.SILVER),
    (100, Rank.BRONZE),
)


def derive_rank(score: int) -> Rank:
    """Return the rank tier for a cumulative *score*."""
    for threshold, rank in RANK_THRESHOLDS:
        if score >= threshold:
            return rank
    return Rank.IRON


@dataclass(frozen=True, slots=True)
class GradeResult:
    """Before/after reputation state for one grading."""

    previous_score: int
    atis_score: int
    previous_rank: Rank
    rank: Rank

    @property
    def promoted(self) -> bool:
        return self.rank != self.previous_rank


def apply_grade(current_score: int, grade: int) -> GradeResult:
    """Accumulate *grade* onto *current_score* and re-derive the rank.

    *grade* is assumed already validated (1–5); see
    :func:`axis.engine.validation.validate_grade`.
    """
    new_score = current_score + grade * GRADE_POINTS
    return GradeResult(
        previous_score=current_score,
        atis_score=new_score,
        previous_rank=derive_rank(current_score),
        rank=derive_rank(new_score),
    )


def reconcile_rank(score: int, stored: str | None, *, profile_id: str | None = None) -> Rank:
    """Return ``derive_rank(score)``, noting when *stored* disagrees."""
    derived = derive_rank(score)
    if stored != derived.value:
        logger.debug(
            "Correcting stored rank %s → %s for profile %s (score=%d)",
            stored, derived.value, profile_id, score,
        )
    return derived
