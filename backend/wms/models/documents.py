from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class Document(db.Model):
    """
    One row per business document, whatever its type.

    document_type selects the transition table (see services/document_types.py).
    status only changes through the lifecycle engine; version is the optimistic
    concurrency token and is bumped by SQLAlchemy on every UPDATE of the row
    (UPDATE ... WHERE version = <read version>).

    TYPE-SPECIFIC HEADER FIELDS:
    - to_warehouse_id: destination of an internal transfer (wt)
    - source_document_id: the document this one was raised from
      (qci -> grn, dr -> qci)
    - inspection_result: pass / fail / conditional (qci)
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("document_type", "document_number", name="uq_documents_type_number"),
        db.Index("ix_documents_type_status", "document_type", "status"),
        db.Index("ix_documents_warehouse_status", "warehouse_id", "status"),
        db.Index("ix_documents_source", "source_document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    document_type = db.Column(db.String(16), nullable=False)
    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(32), nullable=False, default="draft")

    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    warehouse_id = db.Column(db.Integer, nullable=True, index=True)
    to_warehouse_id = db.Column(db.Integer, nullable=True)
    project_id = db.Column(db.Integer, nullable=True, index=True)

    source_document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True)
    inspection_result = db.Column(db.String(16), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # None for documents raised by the system actor
    created_by_id = db.Column(db.Integer, nullable=True, index=True)
    last_action = db.Column(db.String(32), nullable=True)
    last_action_by_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_id = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    source_document = db.relationship("Document", remote_side=[id])
    lines = db.relationship(
        "DocumentLine",
        back_populates="document",
        order_by="DocumentLine.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} type={self.document_type} "
            f"number={self.document_number!r} status={self.status} v{self.version}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "status": self.status,
            "version": self.version,
            "total_value_cents": self.total_value_cents,
            "warehouse_id": self.warehouse_id,
            "to_warehouse_id": self.to_warehouse_id,
            "project_id": self.project_id,
            "source_document_id": self.source_document_id,
            "inspection_result": self.inspection_result,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "last_action": self.last_action,
            "last_action_by_id": self.last_action_by_id,
            "approved_by_id": self.approved_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "submitted_at": to_utc_z(self.submitted_at) if self.submitted_at else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }


class DocumentLine(db.Model):
    """
    Line item on a document. Appended only while the document is editable.

    reservation_id: stock claim made for this line (mi, wt)
    lot_id: lot created from this line (grn, mrn, wt at destination)
    condition: good / damaged (mrn); damaged returns are received as blocked lots
    """
    __tablename__ = "document_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_document_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    item_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    line_status = db.Column(db.String(16), nullable=False, default="open")
    condition = db.Column(db.String(16), nullable=True)

    reservation_id = db.Column(db.Integer, db.ForeignKey("stock_reservations.id"), nullable=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("inventory_lots.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("Document", back_populates="lines")
    reservation = db.relationship("StockReservation", foreign_keys=[reservation_id])
    lot = db.relationship("InventoryLot", foreign_keys=[lot_id])

    @property
    def line_value_cents(self) -> int:
        return self.quantity * (self.unit_cost_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_value_cents": self.line_value_cents,
            "line_status": self.line_status,
            "condition": self.condition,
            "reservation_id": self.reservation_id,
            "lot_id": self.lot_id,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentCounter(db.Model):
    """
    Per (document_type, year) sequence.

    Incremented with a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING
    statement; never read-then-written.
    """
    __tablename__ = "document_counters"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_document_counters_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "year": self.year,
            "last_number": self.last_number,
        }
