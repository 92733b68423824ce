# Overview: Pytest coverage for end-to-end document flows across the engine, ledger and orchestrator.

"""
Document Flow Tests

Walks each document type through its real lifecycle, including the
follow-up documents raised by the orchestrator:
- Receipt -> inspection -> stored lot
- Issue approval reserves FIFO stock, issue consumes it, cancel releases it
- Failed inspection raises a discrepancy report
- Conditional inspection approved by a manager releases the receipt
- Transfer between warehouses
- Returns with damaged lines land in blocked lots
"""

import pytest

from wms.errors import ForbiddenError, ValidationError
from wms.models import Document, InventoryLot, StockReservation
from wms.permissions import Actor
from wms.services import document_service, inventory_service

from conftest import OTHER_WAREHOUSE, PROJECT, WAREHOUSE


def _reload(db_session, doc_id):
    return db_session.get(Document, doc_id, populate_existing=True)


def _receipt(engine, staff, qty=100, unit_cost_cents=250, item_id=11):
    grn = engine.create(
        "grn", staff,
        warehouse_id=WAREHOUSE,
        lines=[{"item_id": item_id, "quantity": qty, "unit_cost_cents": unit_cost_cents}],
    )
    return engine.transition(grn, "submit", staff)


def _inspection_for(receipt_id):
    qci = document_service.find_child_document(receipt_id, "qci")
    assert qci is not None, "submitting a receipt raises an inspection"
    return qci


class TestReceiptFlow:
    def test_receipt_to_stored_lot(self, engine, db_session, staff, qc_officer):
        """A receipt of 100 units ends as one active lot of 100."""
        grn = _receipt(engine, staff, qty=100)
        assert grn.status == "submitted"

        qci = _inspection_for(grn.id)
        assert qci.status == "draft"
        assert qci.created_by_id is None
        assert qci.warehouse_id == WAREHOUSE
        assert [(l.item_id, l.quantity) for l in qci.lines] == [(11, 100)]

        engine.transition(qci, "start", qc_officer)
        engine.transition(qci.id, "complete", qc_officer, payload={"result": "pass"})

        grn = _reload(db_session, grn.id)
        assert grn.status == "qc_approved"
        assert grn.approved_at is not None

        engine.transition(grn, "receive", staff)
        stored = engine.transition(grn.id, "store", staff)
        assert stored.status == "stored"

        lots = db_session.query(InventoryLot).filter_by(source_document_id=grn.id).all()
        assert len(lots) == 1
        lot = lots[0]
        assert (lot.initial_qty, lot.available_qty, lot.reserved_qty) == (100, 100, 0)
        assert lot.status == "active"
        assert lot.unit_cost_cents == 250
        assert stored.lines[0].lot_id == lot.id

    def test_manual_qc_approval(self, engine, db_session, staff, qc_officer):
        grn = _receipt(engine, staff)
        approved = engine.transition(grn, "qc_approve", qc_officer)
        assert approved.status == "qc_approved"
        assert approved.approved_by_id == qc_officer.id

    def test_failed_inspection_raises_discrepancy_report(self, engine, db_session, staff, qc_officer):
        grn = _receipt(engine, staff, qty=40)
        qci = _inspection_for(grn.id)
        engine.transition(qci, "start", qc_officer)

        completed = engine.transition(qci.id, "complete", qc_officer, payload={"result": "fail", "notes": "crushed"})
        assert completed.inspection_result == "fail"

        dr = document_service.find_child_document(qci.id, "dr")
        assert dr is not None
        assert dr.status == "draft"
        assert dr.source_document_id == qci.id
        assert dr.warehouse_id == WAREHOUSE
        assert grn.document_number in dr.notes
        assert [(l.item_id, l.quantity) for l in dr.lines] == [(11, 40)]

        # The receipt is left waiting; no lot was created
        assert _reload(db_session, grn.id).status == "submitted"
        assert db_session.query(InventoryLot).count() == 0

    def test_complete_requires_a_result(self, engine, db_session, staff, qc_officer):
        grn = _receipt(engine, staff)
        qci = _inspection_for(grn.id)
        engine.transition(qci, "start", qc_officer)

        with pytest.raises(ValidationError):
            engine.transition(qci.id, "complete", qc_officer, payload={"result": "conditional"})
        assert _reload(db_session, qci.id).status == "in_progress"

    def test_conditional_inspection_needs_manager(self, engine, db_session, staff, qc_officer, manager):
        grn = _receipt(engine, staff)
        qci = _inspection_for(grn.id)
        engine.transition(qci, "start", qc_officer)
        conditional = engine.transition(qci.id, "complete_conditional", qc_officer, payload={"notes": "minor dents"})

        assert conditional.status == "completed_conditional"
        assert _reload(db_session, grn.id).status == "submitted"

        with pytest.raises(ForbiddenError):
            engine.transition(qci.id, "pm_approve", qc_officer)

        engine.transition(qci.id, "pm_approve", manager)
        assert _reload(db_session, qci.id).status == "completed"
        assert _reload(db_session, grn.id).status == "qc_approved"
        assert document_service.find_child_document(qci.id, "dr") is None

    def test_rejected_receipt_is_terminal(self, engine, db_session, staff, supervisor):
        grn = _receipt(engine, staff)
        rejected = engine.transition(grn, "reject", supervisor)
        assert rejected.status == "rejected"
        assert engine.allowed_actions(rejected) == []


class TestIssueFlow:
    def test_approval_reserves_fifo(self, engine, db_session, staff, supervisor, seed_lot, supervisor_tiers):
        """Issuing 30 against a lot of 100 reserves 30 of it."""
        lot = seed_lot(21, 100)
        mi = engine.create(
            "mi", staff,
            warehouse_id=WAREHOUSE,
            project_id=PROJECT,
            lines=[{"item_id": 21, "quantity": 30, "unit_cost_cents": 100}],
        )
        engine.transition(mi, "submit", staff)
        approved = engine.transition(mi.id, "approve", supervisor)

        reservation = db_session.get(StockReservation, approved.lines[0].reservation_id)
        assert reservation.lot_allocations == [{"lot_id": lot.id, "qty": 30}]
        assert reservation.status == "active"

        db_session.refresh(lot)
        assert (lot.available_qty, lot.reserved_qty) == (70, 30)

    def test_issue_consumes_reservation(self, engine, db_session, staff, supervisor, seed_lot, supervisor_tiers):
        lot = seed_lot(21, 30)
        mi = engine.create(
            "mi", staff, warehouse_id=WAREHOUSE,
            lines=[{"item_id": 21, "quantity": 30}],
        )
        engine.transition(mi, "submit", staff)
        engine.transition(mi.id, "approve", supervisor)
        issued = engine.transition(mi.id, "issue", staff)

        reservation = inventory_service.get_reservation(issued.lines[0].reservation_id)
        assert reservation.status == "consumed"
        db_session.refresh(lot)
        assert (lot.initial_qty, lot.available_qty, lot.reserved_qty) == (0, 0, 0)
        assert lot.status == "depleted"

    def test_cancel_after_approval_releases(self, engine, db_session, staff, supervisor, seed_lot, supervisor_tiers):
        lot = seed_lot(21, 50)
        mi = engine.create(
            "mi", staff, warehouse_id=WAREHOUSE,
            lines=[{"item_id": 21, "quantity": 20}],
        )
        engine.transition(mi, "submit", staff)
        engine.transition(mi.id, "approve", supervisor)

        cancelled = engine.transition(mi.id, "cancel", staff)

        assert cancelled.status == "cancelled"
        assert cancelled.lines[0].line_status == "released"
        assert inventory_service.list_reservations(consuming_document_id=mi.id, status="active") == []
        db_session.refresh(lot)
        assert (lot.available_qty, lot.reserved_qty) == (50, 0)

    def test_site_engineer_limited_to_own_project(self, engine, db_session, engineer):
        with pytest.raises(ForbiddenError):
            engine.create("mi", engineer, warehouse_id=WAREHOUSE, project_id=PROJECT + 1,
                          lines=[{"item_id": 21, "quantity": 1}])

        mi = engine.create("mi", engineer, warehouse_id=WAREHOUSE, project_id=PROJECT,
                           lines=[{"item_id": 21, "quantity": 1}])
        assert engine.transition(mi, "submit", engineer).status == "pending_approval"


class TestTransferFlow:
    def test_transfer_moves_stock_between_warehouses(
        self, engine, db_session, staff, supervisor, seed_lot, supervisor_tiers
    ):
        source_lot = seed_lot(31, 50, unit_cost_cents=300)
        wt = engine.create(
            "wt", staff,
            warehouse_id=WAREHOUSE,
            to_warehouse_id=OTHER_WAREHOUSE,
            lines=[{"item_id": 31, "quantity": 20, "unit_cost_cents": 300}],
        )
        engine.transition(wt, "submit", staff)
        engine.transition(wt.id, "approve", supervisor)
        shipped = engine.transition(wt.id, "ship", staff)
        assert shipped.status == "in_transit"

        # Receiving is scoped to the destination warehouse
        with pytest.raises(ForbiddenError):
            engine.transition(wt.id, "receive", staff)

        receiver = Actor(id=50, role="warehouse_staff", warehouse_id=OTHER_WAREHOUSE)
        received = engine.transition(wt.id, "receive", receiver)
        assert received.status == "received"

        db_session.refresh(source_lot)
        assert (source_lot.initial_qty, source_lot.available_qty) == (30, 30)

        dest = inventory_service.list_lots(item_id=31, warehouse_id=OTHER_WAREHOUSE)
        assert len(dest) == 1
        assert dest[0].available_qty == 20
        assert dest[0].unit_cost_cents == 300
        assert dest[0].source_document_id == wt.id

    def test_transfer_to_same_warehouse_rejected(self, engine, db_session, staff):
        wt = engine.create(
            "wt", staff, warehouse_id=WAREHOUSE, to_warehouse_id=WAREHOUSE,
            lines=[{"item_id": 31, "quantity": 1}],
        )
        with pytest.raises(ValidationError):
            engine.transition(wt, "submit", staff)


class TestReturnFlow:
    def test_damaged_returns_are_blocked(self, engine, db_session, engineer, staff):
        mrn = engine.create(
            "mrn", engineer,
            warehouse_id=WAREHOUSE,
            project_id=PROJECT,
            lines=[
                {"item_id": 41, "quantity": 8, "unit_cost_cents": 90, "condition": "good"},
                {"item_id": 41, "quantity": 2, "unit_cost_cents": 90, "condition": "damaged"},
            ],
        )
        engine.transition(mrn, "submit", engineer)
        engine.transition(mrn.id, "receive", staff)
        completed = engine.transition(mrn.id, "complete", staff)
        assert completed.status == "completed"

        lots = inventory_service.list_lots(item_id=41, warehouse_id=WAREHOUSE)
        assert sorted((lot.initial_qty, lot.status) for lot in lots) == [(2, "blocked"), (8, "active")]

        level = inventory_service.get_stock_level(41, WAREHOUSE)
        assert level["available"] == 8
        assert level["blocked"] == 2


class TestDiscrepancyFlow:
    def test_discrepancy_review_and_claim(self, engine, db_session, staff, supervisor):
        dr = engine.create("dr", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 1}])
        engine.transition(dr, "submit", staff)
        engine.transition(dr.id, "send_claim", supervisor)
        resolved = engine.transition(dr.id, "resolve", supervisor)

        assert resolved.status == "resolved"
        assert resolved.closed_at is not None
