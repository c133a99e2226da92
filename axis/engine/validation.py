"""
axis.engine.validation — Structural Input Checks
=================================================

Pure checks run by the mutation coordinator *before* any store I/O.
Each validator either returns a normalized copy of its input (enum
strings converted, unknown keys rejected) or raises
:class:`~axis.errors.ValidationFailure`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from axis.constants import (
    MAX_GRADE,
    MIN_GRADE,
    TRUST_MODIFIER_MAX,
    TRUST_MODIFIER_MIN,
)
from axis.database.models import (
    BroadcastPriority,
    EventType,
    ProfileStatus,
    Role,
    Severity,
)
from axis.errors import ValidationFailure

# ---------------------------------------------------------------------------
# Field allow lists
# ---------------------------------------------------------------------------
PROFILE_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "name", "handle", "email", "avatar_url", "role", "status",
    "trust_modifier", "justification", "followers", "dynamic_attributes",
})

# Derived or identity fields; rank and score only move through grading.
PROFILE_FROZEN_FIELDS: frozenset[str] = frozenset({
    "id", "atis_score", "rank", "proofs", "created_at",
})

PROJECT_FIELDS: frozenset[str] = frozenset({
    "title", "link", "price", "niche", "description", "created_by",
})

PROOF_SUBMISSION_FIELDS: frozenset[str] = frozenset({
    "type", "title", "url", "company", "description", "niche",
})


def require_id(value: Any, field: str = "id") -> str:
    """Return *value* if it is a non-blank identifier string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailure(f"{field} must be a non-empty string", field=field)
    return value


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailure(f"{field} must be a non-empty string", field=field)
    return value


def _require_int(value: Any, field: str) -> int:
    # bool is an int subclass; True is not a score.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailure(f"{field} must be an integer", field=field)
    return value


def _coerce_enum(enum_cls: type, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailure(
            f"{field} must be one of: {allowed} (got {value!r})", field=field
        ) from None


def _reject_unknown(data: Mapping[str, Any], allowed: frozenset[str], entity: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationFailure(
            f"Unknown {entity} field(s): {', '.join(unknown)}", field=unknown[0]
        )


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------
def validate_grade(score: Any) -> int:
    """A manual grade is an integer in ``[MIN_GRADE, MAX_GRADE]``."""
    score = _require_int(score, "score")
    if not MIN_GRADE <= score <= MAX_GRADE:
        raise ValidationFailure(
            f"score must be between {MIN_GRADE} and {MAX_GRADE} (got {score})",
            field="score",
        )
    return score


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
def validate_profile_patch(partial: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial profile update.

    ``rank`` and ``atis_score`` are rejected outright: the score only
    grows through grading and the rank is always derived from it.
    """
    if not isinstance(partial, Mapping) or not partial:
        raise ValidationFailure("Profile update must be a non-empty mapping")

    frozen = sorted(set(partial) & PROFILE_FROZEN_FIELDS)
    if frozen:
        raise ValidationFailure(
            f"Profile field(s) cannot be set directly: {', '.join(frozen)}",
            field=frozen[0],
        )
    _reject_unknown(partial, PROFILE_EDITABLE_FIELDS, "profile")

    clean: dict[str, Any] = dict(partial)
    if "role" in clean:
        clean["role"] = _coerce_enum(Role, clean["role"], "role")
    if "status" in clean:
        clean["status"] = _coerce_enum(ProfileStatus, clean["status"], "status")
    if "trust_modifier" in clean:
        modifier = _require_int(clean["trust_modifier"], "trust_modifier")
        if not TRUST_MODIFIER_MIN <= modifier <= TRUST_MODIFIER_MAX:
            raise ValidationFailure(
                f"trust_modifier must be between {TRUST_MODIFIER_MIN} and "
                f"{TRUST_MODIFIER_MAX} (got {modifier})",
                field="trust_modifier",
            )
    if "followers" in clean:
        if _require_int(clean["followers"], "followers") < 0:
            raise ValidationFailure("followers cannot be negative", field="followers")
    if "dynamic_attributes" in clean:
        attrs = clean["dynamic_attributes"]
        if not isinstance(attrs, Mapping):
            raise ValidationFailure(
                "dynamic_attributes must be a mapping", field="dynamic_attributes"
            )
        clean["dynamic_attributes"] = dict(attrs)
    for key in ("name", "handle", "email", "avatar_url", "justification"):
        if key in clean and not isinstance(clean[key], str):
            raise ValidationFailure(f"{key} must be a string", field=key)
    return clean


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
def validate_project_data(data: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Validate a new project (``partial=False``) or a project patch."""
    if not isinstance(data, Mapping) or (partial and not data):
        raise ValidationFailure("Project data must be a non-empty mapping")
    _reject_unknown(data, PROJECT_FIELDS, "project")

    clean: dict[str, Any] = dict(data)
    if not partial or "title" in clean:
        clean["title"] = _require_text(clean.get("title"), "title")
    for key in ("link", "price", "niche", "description"):
        if key in clean and not isinstance(clean[key], str):
            raise ValidationFailure(f"{key} must be a string", field=key)
    if clean.get("created_by") is not None:
        require_id(clean["created_by"], "created_by")
    return clean


# ---------------------------------------------------------------------------
# Proofs
# ---------------------------------------------------------------------------
def validate_proof_submission(data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a proof submission; status and score are not caller-settable."""
    if not isinstance(data, Mapping):
        raise ValidationFailure("Proof data must be a mapping")
    _reject_unknown(data, PROOF_SUBMISSION_FIELDS, "proof")

    clean: dict[str, Any] = dict(data)
    for key in ("type", "title", "url"):
        clean[key] = _require_text(clean.get(key), key)
    for key in ("company", "description", "niche"):
        if clean.get(key) is not None and not isinstance(clean[key], str):
            raise ValidationFailure(f"{key} must be a string", field=key)
    return clean


# ---------------------------------------------------------------------------
# Broadcasts & events
# ---------------------------------------------------------------------------
def validate_broadcast(message: Any, priority: Any) -> tuple[str, BroadcastPriority]:
    return (
        _require_text(message, "message"),
        _coerce_enum(BroadcastPriority, priority, "priority"),
    )


def validate_event(event_type: Any, message: Any, severity: Any) -> tuple[EventType, str, Severity]:
    if not isinstance(message, str):
        raise ValidationFailure("message must be a string", field="message")
    return (
        _coerce_enum(EventType, event_type, "type"),
        message,
        _coerce_enum(Severity, severity, "severity"),
    )
