from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


LOT_STATUS_ACTIVE = "active"
LOT_STATUS_DEPLETED = "depleted"
LOT_STATUS_EXPIRED = "expired"
LOT_STATUS_BLOCKED = "blocked"

RESERVATION_ACTIVE = "active"
RESERVATION_RELEASED = "released"
RESERVATION_CONSUMED = "consumed"


class InventoryLot(db.Model):
    """
    A provenance-tracked batch of stock from a single receipt.

    INVARIANTS (also enforced by check constraints):
    - available_qty >= 0, reserved_qty >= 0
    - available_qty + reserved_qty <= initial_qty
    - status becomes 'depleted' exactly when available and reserved both reach zero
    - blocked lots are never allocated

    Quantities are only changed through guarded UPDATE statements in
    services/inventory_service.py. Lots are never deleted.
    """
    __tablename__ = "inventory_lots"
    __table_args__ = (
        db.UniqueConstraint("lot_number", name="uq_inventory_lots_lot_number"),
        db.Index("ix_lots_item_wh_status_receipt", "item_id", "warehouse_id", "status", "receipt_date"),
        db.CheckConstraint("available_qty >= 0", name="ck_lots_available_nonneg"),
        db.CheckConstraint("reserved_qty >= 0", name="ck_lots_reserved_nonneg"),
        db.CheckConstraint("available_qty + reserved_qty <= initial_qty", name="ck_lots_within_initial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False)
    warehouse_id = db.Column(db.Integer, nullable=False)
    lot_number = db.Column(db.String(64), nullable=False)

    source_document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, index=True)

    initial_qty = db.Column(db.Integer, nullable=False)
    available_qty = db.Column(db.Integer, nullable=False)
    reserved_qty = db.Column(db.Integer, nullable=False, default=0)

    unit_cost_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=LOT_STATUS_ACTIVE)

    receipt_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    source_document = db.relationship("Document", foreign_keys=[source_document_id])

    def __repr__(self) -> str:
        return (
            f"<InventoryLot id={self.id} lot={self.lot_number!r} item={self.item_id} "
            f"wh={self.warehouse_id} avail={self.available_qty} res={self.reserved_qty} "
            f"status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "warehouse_id": self.warehouse_id,
            "lot_number": self.lot_number,
            "source_document_id": self.source_document_id,
            "initial_qty": self.initial_qty,
            "available_qty": self.available_qty,
            "reserved_qty": self.reserved_qty,
            "unit_cost_cents": self.unit_cost_cents,
            "status": self.status,
            "receipt_date": to_utc_z(self.receipt_date),
            "expiry_date": to_utc_z(self.expiry_date) if self.expiry_date else None,
            "version": self.version,
        }


class StockReservation(db.Model):
    """
    A claim against lots' available quantity, created on approval and
    resolved exactly once: released (stock returns to available) or
    consumed (stock leaves the lot).
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        db.Index("ix_reservations_document", "consuming_document_id"),
        db.Index("ix_reservations_item_wh_status", "item_id", "warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False)
    warehouse_id = db.Column(db.Integer, nullable=False)
    consuming_document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RESERVATION_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    allocations = db.relationship(
        "ReservationAllocation",
        back_populates="reservation",
        order_by="ReservationAllocation.id",
        lazy=True,
    )

    @property
    def lot_allocations(self) -> list[dict]:
        return [{"lot_id": a.lot_id, "qty": a.qty} for a in self.allocations]

    @property
    def cost_cents(self) -> int:
        return sum(a.qty * (a.unit_cost_cents or 0) for a in self.allocations)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "warehouse_id": self.warehouse_id,
            "consuming_document_id": self.consuming_document_id,
            "quantity": self.quantity,
            "status": self.status,
            "lot_allocations": self.lot_allocations,
            "created_at": to_utc_z(self.created_at),
            "released_at": to_utc_z(self.released_at) if self.released_at else None,
            "consumed_at": to_utc_z(self.consumed_at) if self.consumed_at else None,
            "version": self.version,
        }


class ReservationAllocation(db.Model):
    """One FIFO draw: qty taken from a lot for a reservation."""
    __tablename__ = "reservation_allocations"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_allocations_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("stock_reservations.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("inventory_lots.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)

    # Lot cost snapshot at allocation time
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reservation = db.relationship("StockReservation", back_populates="allocations")
    lot = db.relationship("InventoryLot")
