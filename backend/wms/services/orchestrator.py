# Overview: Cross-document follow-ups driven by committed status changes.

"""
Each handler runs after the triggering transition committed, and changes a
SECOND document only through the lifecycle engine (as the system actor), so
it inherits the engine's validation and version checks. A handler failure
never touches the triggering document; the bus records it for redrive.

Every handler is idempotent: re-driving one after a partial success does
not raise a second follow-up document.
"""

from __future__ import annotations

import logging

from ..permissions import SYSTEM_ACTOR
from . import document_service
from .event_bus import EventBus, SystemEvent
from .inspection_service import RESULT_CONDITIONAL, RESULT_FAIL, RESULT_PASS
from .lifecycle_service import DocumentEngine

logger = logging.getLogger("wms.orchestrator")

STATUS_CHANGED = "document:status_changed"


def _copy_lines(doc) -> list[dict]:
    return [
        {
            "item_id": line.item_id,
            "quantity": line.quantity,
            "unit_cost_cents": line.unit_cost_cents,
        }
        for line in doc.lines
    ]


class Orchestrator:
    def __init__(self, engine: DocumentEngine):
        self.engine = engine

    def register(self, bus: EventBus) -> None:
        bus.subscribe(STATUS_CHANGED, self.raise_inspection_for_receipt, name="orchestrator.raise_inspection")
        bus.subscribe(STATUS_CHANGED, self.raise_discrepancy_for_failed_inspection, name="orchestrator.raise_discrepancy")
        bus.subscribe(STATUS_CHANGED, self.approve_receipt_after_inspection, name="orchestrator.approve_receipt")

    def raise_inspection_for_receipt(self, event: SystemEvent) -> None:
        """grn -> submitted: open a draft inspection for the receipt."""
        p = event.payload
        if p.get("document_type") != "grn" or p.get("to_status") != "submitted":
            return

        existing = document_service.find_child_document(event.entity_id, "qci")
        if existing is not None:
            logger.info("Inspection %s already exists for receipt %s", existing.document_number, event.entity_id)
            return

        receipt = document_service.get_document(event.entity_id)
        qci = self.engine.create(
            "qci",
            SYSTEM_ACTOR,
            warehouse_id=receipt.warehouse_id,
            project_id=receipt.project_id,
            source_document_id=receipt.id,
            notes=f"Inspection for {receipt.document_number}",
            lines=_copy_lines(receipt),
        )
        logger.info("Raised inspection %s for receipt %s", qci.document_number, p.get("document_number"))

    def raise_discrepancy_for_failed_inspection(self, event: SystemEvent) -> None:
        """qci -> completed with a failing result: open a draft discrepancy report."""
        p = event.payload
        if p.get("document_type") != "qci" or p.get("to_status") != "completed":
            return
        if p.get("inspection_result") != RESULT_FAIL:
            return

        existing = document_service.find_child_document(event.entity_id, "dr")
        if existing is not None:
            logger.info("Discrepancy report %s already exists for inspection %s", existing.document_number, event.entity_id)
            return

        inspection = document_service.get_document(event.entity_id)
        notes = f"Raised from failed inspection {inspection.document_number}"
        if inspection.source_document is not None:
            notes += f" of receipt {inspection.source_document.document_number}"
        dr = self.engine.create(
            "dr",
            SYSTEM_ACTOR,
            warehouse_id=inspection.warehouse_id,
            project_id=inspection.project_id,
            source_document_id=inspection.id,
            notes=notes,
            lines=_copy_lines(inspection),
        )
        logger.info("Raised discrepancy report %s for inspection %s", dr.document_number, inspection.document_number)

    def approve_receipt_after_inspection(self, event: SystemEvent) -> None:
        """qci -> completed with pass/conditional: qc-approve the receipt if it still waits."""
        p = event.payload
        if p.get("document_type") != "qci" or p.get("to_status") != "completed":
            return
        if p.get("inspection_result") not in (RESULT_PASS, RESULT_CONDITIONAL):
            return
        receipt_id = p.get("source_document_id")
        if receipt_id is None:
            return

        receipt = document_service.get_document(receipt_id)
        if receipt.document_type != "grn" or receipt.status != "submitted":
            logger.info(
                "Receipt %s is %s; nothing to approve after inspection %s",
                receipt.document_number, receipt.status, p.get("document_number"),
            )
            return

        self.engine.transition(receipt, "qc_approve", SYSTEM_ACTOR)
        logger.info("Receipt %s qc-approved after inspection %s", receipt.document_number, p.get("document_number"))
