# Overview: Service-layer operations for approval tiers; resolve the role required to approve a document value.

"""
Tier rules:
- Tiers of one document type are half-open ranges [min, max), sorted by min,
  non-overlapping; max NULL means unbounded. chain_level grows with min.
- resolve() is monotonic in amount:
    below the first tier  -> first tier
    inside a gap          -> next higher tier
    above every tier      -> strictest tier (never "no approval")
- A type with no tiers resolves to APPROVAL_FALLBACK_ROLE.

Enforcement calls resolve(), which reads the table through the caller's
session and transaction. preview() is cached and may be stale until
invalidate_cache() runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from flask import current_app

from ..errors import ForbiddenError, ValidationError
from ..extensions import db
from ..models import ApprovalTier
from ..permissions import Actor, ROLE_RANK, role_satisfies
from ..validation import coerce_int


@dataclass(frozen=True)
class ApprovalRequirement:
    document_type: str
    amount_cents: int
    required_role: str
    chain_level: int
    tier_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "document_type": self.document_type,
            "amount_cents": self.amount_cents,
            "required_role": self.required_role,
            "chain_level": self.chain_level,
            "tier_id": self.tier_id,
        }


_preview_cache: dict[str, list[tuple]] = {}
_cache_lock = Lock()


def _fallback_role() -> str:
    return current_app.config.get("APPROVAL_FALLBACK_ROLE", "admin")


def _load_tiers(document_type: str) -> list[tuple]:
    rows = (
        db.session.query(ApprovalTier)
        .filter(ApprovalTier.document_type == document_type)
        .order_by(ApprovalTier.min_amount_cents.asc(), ApprovalTier.chain_level.asc())
        .all()
    )
    return [
        (t.id, t.min_amount_cents, t.max_amount_cents, t.required_role, t.chain_level)
        for t in rows
    ]


def _pick(document_type: str, amount_cents: int, tiers: list[tuple]) -> ApprovalRequirement:
    if not tiers:
        return ApprovalRequirement(document_type, amount_cents, _fallback_role(), 0)

    chosen = tiers[-1]
    for tier in tiers:
        tier_id, min_cents, max_cents, role, level = tier
        if max_cents is None or amount_cents < max_cents:
            # First tier whose upper bound lies above the amount: the containing
            # tier, or the next higher one when the amount falls below/between tiers.
            chosen = tier
            break

    tier_id, _min, _max, role, level = chosen
    return ApprovalRequirement(document_type, amount_cents, role, level, tier_id)


def resolve(document_type: str, amount_cents: int) -> ApprovalRequirement:
    """Enforcement lookup; reads tiers in the current transaction."""
    amount_cents = coerce_int(amount_cents, "amount_cents", minimum=0)
    return _pick(document_type, amount_cents, _load_tiers(document_type))


def preview(document_type: str, amount_cents: int) -> ApprovalRequirement:
    """Client-side preview; served from cache, staleness tolerated."""
    amount_cents = coerce_int(amount_cents, "amount_cents", minimum=0)
    with _cache_lock:
        tiers = _preview_cache.get(document_type)
    if tiers is None:
        tiers = _load_tiers(document_type)
        with _cache_lock:
            _preview_cache[document_type] = tiers
    return _pick(document_type, amount_cents, tiers)


def invalidate_cache(document_type: str | None = None) -> None:
    with _cache_lock:
        if document_type is None:
            _preview_cache.clear()
        else:
            _preview_cache.pop(document_type, None)


def require_approval_role(actor: Actor, document_type: str, amount_cents: int) -> ApprovalRequirement:
    """Gate: actor's role must sit at or above the resolved tier's role."""
    requirement = resolve(document_type, amount_cents)
    if actor.role == requirement.required_role or role_satisfies(actor.role, requirement.required_role):
        return requirement
    raise ForbiddenError(
        f"Deciding {document_type} worth {amount_cents} cents requires "
        f"'{requirement.required_role}' (level {requirement.chain_level}); actor is '{actor.role}'"
    )


def list_tiers(document_type: str | None = None) -> list[ApprovalTier]:
    q = db.session.query(ApprovalTier)
    if document_type:
        q = q.filter(ApprovalTier.document_type == document_type)
    return q.order_by(ApprovalTier.document_type.asc(), ApprovalTier.min_amount_cents.asc()).all()


def _normalize_tiers(document_type: str, tiers: list[dict]) -> list[dict]:
    normalized = []
    for raw in tiers:
        if not isinstance(raw, dict):
            raise ValidationError("Each tier must be an object")
        role = raw.get("required_role")
        if role not in ROLE_RANK:
            raise ValidationError(f"required_role must be one of: {', '.join(sorted(ROLE_RANK))}")
        normalized.append({
            "document_type": document_type,
            "min_amount_cents": coerce_int(raw.get("min_amount_cents", 0), "min_amount_cents", minimum=0),
            "max_amount_cents": coerce_int(raw.get("max_amount_cents"), "max_amount_cents", minimum=1, allow_none=True),
            "required_role": role,
        })

    normalized.sort(key=lambda t: t["min_amount_cents"])
    previous = None
    for level, tier in enumerate(normalized, start=1):
        tier["chain_level"] = level
        if tier["max_amount_cents"] is not None and tier["max_amount_cents"] <= tier["min_amount_cents"]:
            raise ValidationError("max_amount_cents must be greater than min_amount_cents")
        if previous is not None:
            if previous["max_amount_cents"] is None or previous["max_amount_cents"] > tier["min_amount_cents"]:
                raise ValidationError(
                    f"Tier starting at {tier['min_amount_cents']} overlaps the tier starting at "
                    f"{previous['min_amount_cents']}"
                )
            if ROLE_RANK[tier["required_role"]] < ROLE_RANK[previous["required_role"]]:
                raise ValidationError("Higher tiers may not require a lower role")
        previous = tier
    return normalized


def set_tiers(document_type: str, tiers: list[dict]) -> list[ApprovalTier]:
    """
    Replace every tier of a document type. Joins the caller's transaction;
    the preview cache for the type is dropped.
    """
    if not document_type:
        raise ValidationError("document_type is required")
    normalized = _normalize_tiers(document_type, tiers or [])

    db.session.query(ApprovalTier).filter(ApprovalTier.document_type == document_type).delete(
        synchronize_session=False
    )
    db.session.flush()
    rows = [ApprovalTier(**data) for data in normalized]
    db.session.add_all(rows)
    db.session.flush()

    invalidate_cache(document_type)
    return rows


DEFAULT_TIERS = {
    "mi": [
        {"min_amount_cents": 0, "max_amount_cents": 1_000_000, "required_role": "warehouse_supervisor"},
        {"min_amount_cents": 1_000_000, "max_amount_cents": 5_000_000, "required_role": "manager"},
        {"min_amount_cents": 5_000_000, "max_amount_cents": None, "required_role": "admin"},
    ],
    "wt": [
        {"min_amount_cents": 0, "max_amount_cents": 2_500_000, "required_role": "warehouse_supervisor"},
        {"min_amount_cents": 2_500_000, "max_amount_cents": None, "required_role": "manager"},
    ],
}


def seed_default_tiers() -> int:
    """Idempotent: only seeds types that have no tiers yet."""
    created = 0
    for document_type, tiers in DEFAULT_TIERS.items():
        exists = db.session.query(ApprovalTier.id).filter_by(document_type=document_type).first()
        if exists:
            continue
        created += len(set_tiers(document_type, tiers))
    return created
