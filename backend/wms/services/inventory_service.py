# Overview: Service-layer operations for the inventory lot ledger; receipt, FIFO allocation and reservation resolution.

"""
WMS Inventory Lot Ledger Invariants (authoritative)

Lot quantities:
- available_qty >= 0, reserved_qty >= 0
- available_qty + reserved_qty <= initial_qty
- A lot becomes 'depleted' exactly when available_qty and reserved_qty both reach 0.
- Lots are never deleted; they retire through status (depleted / expired / blocked).

Operations:
- receive always creates a new lot, one per receipt line, numbered from the
  'lot' document counter.
- allocate draws from 'active' lots of the item/warehouse, oldest receipt
  first (FIFO). Insufficient total availability mutates nothing.
- A reservation is resolved exactly once: released (stock returns to
  available) or consumed (stock leaves reserved and initial).
- A lot may be blocked only with zero reserved quantity; blocked lots are
  never allocated.

Concurrency:
- Candidate lots are read with SELECT ... FOR UPDATE (honoured by PostgreSQL).
- Every quantity change is a guarded UPDATE whose WHERE clause re-checks the
  precondition (available_qty >= take, status, reserved_qty). A guard that
  matches no row means another transaction won; RetryableContention rolls back
  the whole unit so it is re-run from fresh reads.
- Ledger operations never commit; they join the caller's transaction.
  Only the committed entry points at the bottom (set_lot_blocked,
  expire_lots) own a transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func, update
from sqlalchemy.orm.util import identity_key

from ..errors import (
    AlreadyConsumedError,
    AlreadyReleasedError,
    InsufficientStockError,
    LotStateError,
    NotFoundError,
)
from ..extensions import db
from ..models import InventoryLot, ReservationAllocation, StockReservation
from ..models.inventory import (
    LOT_STATUS_ACTIVE,
    LOT_STATUS_BLOCKED,
    LOT_STATUS_DEPLETED,
    LOT_STATUS_EXPIRED,
    RESERVATION_ACTIVE,
    RESERVATION_CONSUMED,
    RESERVATION_RELEASED,
)
from ..permissions import Actor
from ..validation import coerce_int
from wms.time_utils import utcnow
from .concurrency import RetryableContention, lock_for_update, run_in_transaction
from .document_service import next_document_number
from .event_service import append_system_event
from .permission_service import require_permission

logger = logging.getLogger("wms.inventory")

_lots = InventoryLot.__table__
_reservations = StockReservation.__table__


def _guarded(stmt, what: str) -> None:
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise RetryableContention(what)


def _expire_lot(lot_id: int) -> None:
    """Drop a stale in-session copy of a lot after a Core UPDATE."""
    lot = db.session.identity_map.get(identity_key(InventoryLot, lot_id))
    if lot is not None:
        db.session.expire(lot)


def _fifo_order():
    return (InventoryLot.receipt_date.asc(), InventoryLot.id.asc())


# -- reads --

def get_lot(lot_id: int) -> InventoryLot:
    lot = db.session.get(InventoryLot, lot_id, populate_existing=True)
    if lot is None:
        raise NotFoundError("InventoryLot", lot_id)
    return lot


def get_reservation(reservation_id: int) -> StockReservation:
    res = db.session.get(StockReservation, reservation_id, populate_existing=True)
    if res is None:
        raise NotFoundError("StockReservation", reservation_id)
    return res


def list_lots(
    *,
    item_id: int | None = None,
    warehouse_id: int | None = None,
    status: str | None = None,
    limit: int = 200,
) -> list[InventoryLot]:
    """Lots in FIFO order."""
    q = db.session.query(InventoryLot)
    if item_id is not None:
        q = q.filter(InventoryLot.item_id == item_id)
    if warehouse_id is not None:
        q = q.filter(InventoryLot.warehouse_id == warehouse_id)
    if status:
        q = q.filter(InventoryLot.status == status)
    return q.order_by(*_fifo_order()).limit(limit).all()


def list_reservations(*, consuming_document_id: int, status: str | None = None) -> list[StockReservation]:
    q = db.session.query(StockReservation).filter(
        StockReservation.consuming_document_id == consuming_document_id
    )
    if status:
        q = q.filter(StockReservation.status == status)
    return q.order_by(StockReservation.id.asc()).all()


def get_stock_level(item_id: int, warehouse_id: int) -> dict:
    """
    on_hand: quantity physically held in active and blocked lots
    reserved: claimed by active reservations
    available: allocatable now (active lots only)
    blocked: unreserved quantity held in blocked lots
    """
    row = (
        db.session.query(
            func.coalesce(func.sum(InventoryLot.available_qty + InventoryLot.reserved_qty), 0),
            func.coalesce(func.sum(InventoryLot.reserved_qty), 0),
            func.coalesce(
                func.sum(case((InventoryLot.status == LOT_STATUS_ACTIVE, InventoryLot.available_qty), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((InventoryLot.status == LOT_STATUS_BLOCKED, InventoryLot.available_qty), else_=0)), 0
            ),
        )
        .filter(
            InventoryLot.item_id == item_id,
            InventoryLot.warehouse_id == warehouse_id,
            InventoryLot.status.in_([LOT_STATUS_ACTIVE, LOT_STATUS_BLOCKED]),
        )
        .one()
    )
    on_hand, reserved, available, blocked = (int(v) for v in row)
    return {
        "item_id": item_id,
        "warehouse_id": warehouse_id,
        "on_hand": on_hand,
        "reserved": reserved,
        "available": available,
        "blocked": blocked,
    }


# -- receive --

def receive(
    item_id: int,
    warehouse_id: int,
    qty: int,
    source_document_id: int | None,
    unit_cost_cents: int | None,
    *,
    expiry_date: Optional[datetime] = None,
    receipt_date: Optional[datetime] = None,
    blocked: bool = False,
) -> InventoryLot:
    """
    Create a new lot for one receipt. Never merges into an existing lot.

    blocked=True receives quantity that must not be allocated (damaged returns).
    """
    qty = coerce_int(qty, "qty", minimum=1)

    lot = InventoryLot(
        item_id=item_id,
        warehouse_id=warehouse_id,
        lot_number=next_document_number("lot"),
        source_document_id=source_document_id,
        initial_qty=qty,
        available_qty=qty,
        reserved_qty=0,
        unit_cost_cents=unit_cost_cents,
        status=LOT_STATUS_BLOCKED if blocked else LOT_STATUS_ACTIVE,
        receipt_date=receipt_date or utcnow(),
        expiry_date=expiry_date,
        version=1,
    )
    db.session.add(lot)
    db.session.flush()
    logger.debug("Received lot %s: item=%s wh=%s qty=%s", lot.lot_number, item_id, warehouse_id, qty)
    return lot


# -- allocate / release / consume --

def allocate(item_id: int, warehouse_id: int, qty: int, consuming_document_id: int) -> StockReservation:
    """
    Reserve qty of an item in a warehouse, FIFO across active lots.

    All-or-nothing: raises InsufficientStockError before touching any lot
    when total availability is short.
    """
    qty = coerce_int(qty, "qty", minimum=1)

    lots = (
        lock_for_update(
            db.session.query(InventoryLot).filter(
                InventoryLot.item_id == item_id,
                InventoryLot.warehouse_id == warehouse_id,
                InventoryLot.status == LOT_STATUS_ACTIVE,
                InventoryLot.available_qty > 0,
            )
        )
        .populate_existing()
        .order_by(*_fifo_order())
        .all()
    )

    total_available = sum(lot.available_qty for lot in lots)
    if total_available < qty:
        raise InsufficientStockError(item_id, warehouse_id, qty, total_available)

    reservation = StockReservation(
        item_id=item_id,
        warehouse_id=warehouse_id,
        consuming_document_id=consuming_document_id,
        quantity=qty,
        status=RESERVATION_ACTIVE,
        version=1,
    )
    db.session.add(reservation)
    db.session.flush()

    remaining = qty
    for lot in lots:
        if remaining <= 0:
            break
        take = min(lot.available_qty, remaining)
        lot_id, unit_cost = lot.id, lot.unit_cost_cents

        _guarded(
            update(_lots)
            .where(
                _lots.c.id == lot_id,
                _lots.c.status == LOT_STATUS_ACTIVE,
                _lots.c.available_qty >= take,
            )
            .values(
                available_qty=_lots.c.available_qty - take,
                reserved_qty=_lots.c.reserved_qty + take,
                version=_lots.c.version + 1,
            ),
            f"lot {lot_id} changed during allocation",
        )
        _expire_lot(lot_id)

        db.session.add(ReservationAllocation(
            reservation_id=reservation.id,
            lot_id=lot_id,
            qty=take,
            unit_cost_cents=unit_cost,
        ))
        remaining -= take

    db.session.flush()
    db.session.expire(reservation, ["allocations"])
    logger.debug(
        "Allocated %s of item %s in wh %s to document %s (reservation %s)",
        qty, item_id, warehouse_id, consuming_document_id, reservation.id,
    )
    return reservation


def _resolve_reservation(reservation_id: int, new_status: str, stamp_field: str) -> StockReservation:
    """Flip an active reservation to released/consumed exactly once."""
    reservation = get_reservation(reservation_id)
    now = utcnow()

    result = db.session.execute(
        update(_reservations)
        .where(_reservations.c.id == reservation_id, _reservations.c.status == RESERVATION_ACTIVE)
        .values(status=new_status, version=_reservations.c.version + 1, **{stamp_field: now})
    )
    if result.rowcount != 1:
        current = get_reservation(reservation_id)
        if current.status == RESERVATION_RELEASED:
            raise AlreadyReleasedError(f"Reservation {reservation_id} was already released")
        if current.status == RESERVATION_CONSUMED:
            raise AlreadyConsumedError(f"Reservation {reservation_id} was already consumed")
        raise RetryableContention(f"reservation {reservation_id} changed concurrently")

    db.session.expire(reservation)
    return reservation


def release(reservation_id: int) -> StockReservation:
    """Return every allocated quantity to its lot's available_qty."""
    reservation = _resolve_reservation(reservation_id, RESERVATION_RELEASED, "released_at")

    for alloc in reservation.allocations:
        _guarded(
            update(_lots)
            .where(_lots.c.id == alloc.lot_id, _lots.c.reserved_qty >= alloc.qty)
            .values(
                available_qty=_lots.c.available_qty + alloc.qty,
                reserved_qty=_lots.c.reserved_qty - alloc.qty,
                version=_lots.c.version + 1,
            ),
            f"lot {alloc.lot_id} reserved quantity below allocation {alloc.id}",
        )
        _expire_lot(alloc.lot_id)

    logger.debug("Released reservation %s", reservation_id)
    return reservation


def consume(reservation_id: int) -> StockReservation:
    """Permanently remove every allocated quantity from its lot (reserved and initial)."""
    reservation = _resolve_reservation(reservation_id, RESERVATION_CONSUMED, "consumed_at")

    for alloc in reservation.allocations:
        _guarded(
            update(_lots)
            .where(_lots.c.id == alloc.lot_id, _lots.c.reserved_qty >= alloc.qty)
            .values(
                reserved_qty=_lots.c.reserved_qty - alloc.qty,
                initial_qty=_lots.c.initial_qty - alloc.qty,
                status=case(
                    (
                        and_(_lots.c.available_qty == 0, _lots.c.reserved_qty - alloc.qty == 0),
                        LOT_STATUS_DEPLETED,
                    ),
                    else_=_lots.c.status,
                ),
                version=_lots.c.version + 1,
            ),
            f"lot {alloc.lot_id} reserved quantity below allocation {alloc.id}",
        )
        _expire_lot(alloc.lot_id)

    logger.debug("Consumed reservation %s", reservation_id)
    return reservation


# -- lot status --

def block_lot(lot_id: int) -> InventoryLot:
    """Remove an active lot with no reserved quantity from allocation."""
    result = db.session.execute(
        update(_lots)
        .where(
            _lots.c.id == lot_id,
            _lots.c.status == LOT_STATUS_ACTIVE,
            _lots.c.reserved_qty == 0,
        )
        .values(status=LOT_STATUS_BLOCKED, version=_lots.c.version + 1)
    )
    lot = get_lot(lot_id)
    if result.rowcount != 1:
        if lot.status != LOT_STATUS_ACTIVE:
            raise LotStateError(f"Lot {lot.lot_number} is {lot.status}; only active lots can be blocked")
        raise LotStateError(
            f"Lot {lot.lot_number} has {lot.reserved_qty} reserved; release reservations before blocking"
        )
    return lot


def unblock_lot(lot_id: int) -> InventoryLot:
    """Restore a blocked lot to allocation (or to depleted when it holds nothing)."""
    result = db.session.execute(
        update(_lots)
        .where(_lots.c.id == lot_id, _lots.c.status == LOT_STATUS_BLOCKED)
        .values(
            status=case(
                (and_(_lots.c.available_qty == 0, _lots.c.reserved_qty == 0), LOT_STATUS_DEPLETED),
                else_=LOT_STATUS_ACTIVE,
            ),
            version=_lots.c.version + 1,
        )
    )
    lot = get_lot(lot_id)
    if result.rowcount != 1:
        raise LotStateError(f"Lot {lot.lot_number} is {lot.status}; only blocked lots can be unblocked")
    return lot


def expire_due_lots(as_of: Optional[datetime] = None) -> list[int]:
    """
    Retire active lots whose expiry_date has passed (inclusive) and that hold
    no reservations. Returns the expired lot ids.
    """
    as_of = as_of or utcnow()
    candidate_ids = [
        lot_id
        for (lot_id,) in db.session.query(InventoryLot.id)
        .filter(
            InventoryLot.status == LOT_STATUS_ACTIVE,
            InventoryLot.expiry_date.isnot(None),
            InventoryLot.expiry_date <= as_of,
            InventoryLot.reserved_qty == 0,
        )
        .order_by(InventoryLot.id.asc())
        .all()
    ]

    expired = []
    for lot_id in candidate_ids:
        result = db.session.execute(
            update(_lots)
            .where(
                _lots.c.id == lot_id,
                _lots.c.status == LOT_STATUS_ACTIVE,
                _lots.c.reserved_qty == 0,
            )
            .values(status=LOT_STATUS_EXPIRED, version=_lots.c.version + 1)
        )
        # A lot reserved in the meantime stays active
        if result.rowcount == 1:
            expired.append(lot_id)

    if expired:
        logger.info("Expired %d lot(s) as of %s", len(expired), as_of.isoformat())
    return expired


# -- committed entry points (HTTP / CLI) --

def set_lot_blocked(lot_id: int, actor: Actor, *, bus, blocked: bool) -> InventoryLot:
    """Block or unblock a lot in its own transaction and publish the change."""
    require_permission(actor, "inventory", "block")

    def _op():
        lot = block_lot(lot_id) if blocked else unblock_lot(lot_id)
        event = append_system_event(
            event_type="lot:blocked" if blocked else "lot:unblocked",
            entity_type="lot",
            entity_id=lot.id,
            action="block" if blocked else "unblock",
            payload={
                "lot_number": lot.lot_number,
                "item_id": lot.item_id,
                "warehouse_id": lot.warehouse_id,
                "status": lot.status,
                "available_qty": lot.available_qty,
            },
            performed_by_id=actor.id,
        )
        return lot, event

    lot, event = run_in_transaction(_op)
    bus.publish(event)
    return lot


def expire_lots(*, bus, as_of: Optional[datetime] = None) -> list[int]:
    """Expire due lots in one transaction; one lot:expired event per lot."""
    def _op():
        lot_ids = expire_due_lots(as_of)
        events = [
            append_system_event(
                event_type="lot:expired",
                entity_type="lot",
                entity_id=lot_id,
                action="expire",
                payload={"status": LOT_STATUS_EXPIRED},
            )
            for lot_id in lot_ids
        ]
        return lot_ids, events

    lot_ids, events = run_in_transaction(_op)
    for event in events:
        bus.publish(event)
    return lot_ids
