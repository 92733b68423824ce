# Overview: Validators and inventory effects shared by the per-type transition tables.

from __future__ import annotations

from ..errors import ValidationError
from ..models.inventory import RESERVATION_ACTIVE
from ..validation import parse_iso_datetime
from . import inventory_service
from .lifecycle_service import TransitionContext


def require_lines(ctx: TransitionContext) -> None:
    if not ctx.document.lines:
        raise ValidationError(
            f"{ctx.document.document_number} has no lines; add at least one line before '{ctx.action}'"
        )


def reserve_lines(ctx: TransitionContext) -> None:
    """One FIFO reservation per line at the document's warehouse. All lines or none."""
    doc = ctx.document
    reservation_ids = []
    for line in doc.lines:
        reservation = inventory_service.allocate(line.item_id, doc.warehouse_id, line.quantity, doc.id)
        line.reservation_id = reservation.id
        line.line_status = "reserved"
        reservation_ids.append(reservation.id)
    ctx.event_payload["reservation_ids"] = reservation_ids


def consume_lines(ctx: TransitionContext) -> None:
    """
    Consume each line's reservation and snapshot the actual FIFO cost onto
    the line and the document total.
    """
    doc = ctx.document
    total = 0
    for line in doc.lines:
        if line.reservation_id is None:
            raise ValidationError(f"Line {line.id} of {doc.document_number} has no reservation")
        reservation = inventory_service.consume(line.reservation_id)
        cost = reservation.cost_cents
        line.unit_cost_cents = (cost + line.quantity // 2) // line.quantity
        line.line_status = ctx.spec.to_status
        total += cost
    doc.total_value_cents = total
    ctx.event_payload["consumed_reservation_ids"] = [line.reservation_id for line in doc.lines]


def release_reservations(ctx: TransitionContext) -> None:
    """Release whatever the document still holds (cancel from any reserving status)."""
    released = []
    for reservation in inventory_service.list_reservations(
        consuming_document_id=ctx.document.id, status=RESERVATION_ACTIVE
    ):
        inventory_service.release(reservation.id)
        released.append(reservation.id)
    for line in ctx.document.lines:
        if line.reservation_id in released:
            line.line_status = "released"
    if released:
        ctx.event_payload["released_reservation_ids"] = released


def _receive_into(ctx: TransitionContext, warehouse_id: int, *, block_damaged: bool = False) -> None:
    doc = ctx.document
    expiry_date = parse_iso_datetime(ctx.payload.get("expiry_date"), "expiry_date")
    lot_ids = []
    for line in doc.lines:
        lot = inventory_service.receive(
            line.item_id,
            warehouse_id,
            line.quantity,
            doc.id,
            line.unit_cost_cents,
            expiry_date=expiry_date,
            blocked=block_damaged and line.condition == "damaged",
        )
        line.lot_id = lot.id
        line.line_status = ctx.spec.to_status
        lot_ids.append(lot.id)
    ctx.event_payload["lot_ids"] = lot_ids


def receive_lines(ctx: TransitionContext) -> None:
    """One new lot per line at the document's warehouse."""
    _receive_into(ctx, ctx.document.warehouse_id)


def receive_lines_at_destination(ctx: TransitionContext) -> None:
    _receive_into(ctx, ctx.document.to_warehouse_id)


def receive_returned_lines(ctx: TransitionContext) -> None:
    """Returned goods: damaged lines land in blocked lots."""
    _receive_into(ctx, ctx.document.warehouse_id, block_damaged=True)
