# Overview: Pytest coverage for approval tier resolution and tier configuration.

"""
Approval Chain Resolver Tests

Verifies:
- The containing tier is chosen; gaps resolve upward; amounts above every
  tier resolve to the strictest tier
- Types without tiers fall back to the configured role
- Tier sets are validated (no overlap, roles never step down)
- Preview is cached until invalidated; enforcement never is
"""

import pytest

from wms.errors import ForbiddenError, ValidationError
from wms.models import ApprovalTier
from wms.permissions import Actor, role_rank
from wms.services import approval_service
from wms.services.concurrency import run_in_transaction


def _set(document_type, tiers):
    return run_in_transaction(lambda: approval_service.set_tiers(document_type, tiers))


GAPPED = [
    {"min_amount_cents": 0, "max_amount_cents": 1_000, "required_role": "warehouse_staff"},
    {"min_amount_cents": 5_000, "max_amount_cents": 10_000, "required_role": "warehouse_supervisor"},
    {"min_amount_cents": 10_000, "max_amount_cents": 50_000, "required_role": "manager"},
]


class TestResolve:
    @pytest.mark.parametrize("amount, role, level", [
        (0, "warehouse_staff", 1),
        (999, "warehouse_staff", 1),
        (1_000, "warehouse_supervisor", 2),   # gap resolves upward
        (4_999, "warehouse_supervisor", 2),
        (5_000, "warehouse_supervisor", 2),
        (10_000, "manager", 3),               # boundary belongs to the upper tier
        (49_999, "manager", 3),
        (50_000, "manager", 3),               # above every tier: strictest
        (10_000_000, "manager", 3),
    ])
    def test_tier_selection(self, db_session, amount, role, level):
        _set("mi", GAPPED)

        requirement = approval_service.resolve("mi", amount)
        assert requirement.required_role == role
        assert requirement.chain_level == level
        assert requirement.tier_id is not None

    def test_amount_below_first_tier_uses_first(self, db_session):
        _set("wt", [
            {"min_amount_cents": 100, "max_amount_cents": None, "required_role": "manager"},
        ])
        assert approval_service.resolve("wt", 5).required_role == "manager"

    def test_no_tiers_uses_fallback_role(self, app, db_session):
        requirement = approval_service.resolve("grn", 1_000)
        assert requirement.required_role == app.config["APPROVAL_FALLBACK_ROLE"]
        assert requirement.chain_level == 0
        assert requirement.tier_id is None

    def test_resolution_is_monotonic(self, db_session):
        _set("mi", GAPPED)
        ranks = [
            role_rank(approval_service.resolve("mi", amount).required_role)
            for amount in range(0, 60_000, 500)
        ]
        assert ranks == sorted(ranks)

    def test_negative_amount_rejected(self, db_session):
        with pytest.raises(ValidationError):
            approval_service.resolve("mi", -1)


class TestSetTiers:
    def test_chain_levels_follow_min_amount(self, db_session):
        rows = _set("mi", list(reversed(GAPPED)))
        assert [(r.min_amount_cents, r.chain_level) for r in rows] == [(0, 1), (5_000, 2), (10_000, 3)]

    def test_replaces_existing_tiers(self, db_session):
        _set("mi", GAPPED)
        _set("mi", [{"min_amount_cents": 0, "max_amount_cents": None, "required_role": "admin"}])

        assert db_session.query(ApprovalTier).filter_by(document_type="mi").count() == 1

    def test_overlap_rejected(self, db_session):
        with pytest.raises(ValidationError):
            _set("mi", [
                {"min_amount_cents": 0, "max_amount_cents": 2_000, "required_role": "warehouse_staff"},
                {"min_amount_cents": 1_000, "max_amount_cents": None, "required_role": "manager"},
            ])

    def test_unbounded_tier_must_be_last(self, db_session):
        with pytest.raises(ValidationError):
            _set("mi", [
                {"min_amount_cents": 0, "max_amount_cents": None, "required_role": "warehouse_staff"},
                {"min_amount_cents": 1_000, "max_amount_cents": None, "required_role": "manager"},
            ])

    def test_role_may_not_step_down(self, db_session):
        with pytest.raises(ValidationError):
            _set("mi", [
                {"min_amount_cents": 0, "max_amount_cents": 1_000, "required_role": "manager"},
                {"min_amount_cents": 1_000, "max_amount_cents": None, "required_role": "warehouse_staff"},
            ])

    def test_unknown_role_rejected(self, db_session):
        with pytest.raises(ValidationError):
            _set("mi", [{"min_amount_cents": 0, "max_amount_cents": None, "required_role": "viewer"}])

    def test_max_must_exceed_min(self, db_session):
        with pytest.raises(ValidationError):
            _set("mi", [{"min_amount_cents": 500, "max_amount_cents": 500, "required_role": "manager"}])

    def test_seed_default_tiers_is_idempotent(self, db_session):
        first = run_in_transaction(approval_service.seed_default_tiers)
        second = run_in_transaction(approval_service.seed_default_tiers)

        expected = sum(len(tiers) for tiers in approval_service.DEFAULT_TIERS.values())
        assert first == expected
        assert second == 0


class TestPreviewCache:
    def test_preview_is_stale_until_invalidated(self, db_session):
        _set("mi", GAPPED)
        assert approval_service.preview("mi", 20_000).required_role == "manager"

        # Write behind the service's back: the cache does not notice
        db_session.query(ApprovalTier).filter_by(document_type="mi", chain_level=3).update(
            {"required_role": "admin"}
        )
        db_session.commit()

        assert approval_service.preview("mi", 20_000).required_role == "manager"
        assert approval_service.resolve("mi", 20_000).required_role == "admin"

        approval_service.invalidate_cache("mi")
        assert approval_service.preview("mi", 20_000).required_role == "admin"

    def test_set_tiers_drops_cached_preview(self, db_session):
        _set("mi", GAPPED)
        approval_service.preview("mi", 0)

        _set("mi", [{"min_amount_cents": 0, "max_amount_cents": None, "required_role": "admin"}])
        assert approval_service.preview("mi", 0).required_role == "admin"


class TestApprovalGate:
    def test_role_at_or_above_tier_passes(self, db_session):
        _set("mi", GAPPED)
        manager = Actor(id=2, role="manager")

        assert approval_service.require_approval_role(manager, "mi", 6_000).required_role == "warehouse_supervisor"
        assert approval_service.require_approval_role(manager, "mi", 20_000).chain_level == 3

    def test_role_below_tier_is_forbidden(self, db_session):
        _set("mi", GAPPED)
        supervisor = Actor(id=3, role="warehouse_supervisor", warehouse_id=1)

        with pytest.raises(ForbiddenError):
            approval_service.require_approval_role(supervisor, "mi", 20_000)

    def test_roles_off_the_ladder_never_approve(self, db_session):
        _set("mi", GAPPED)
        with pytest.raises(ForbiddenError):
            approval_service.require_approval_role(Actor(id=5, role="qc_officer"), "mi", 0)
