from __future__ import annotations

from ..extensions import db


class ApprovalTier(db.Model):
    """
    Monetary range [min_amount_cents, max_amount_cents) mapped to the minimum
    role that may approve a document of this type. max_amount_cents NULL means
    unbounded. Tiers of one document type are ordered and never overlap;
    chain_level grows with the amount.
    """
    __tablename__ = "approval_tiers"
    __table_args__ = (
        db.UniqueConstraint("document_type", "chain_level", name="uq_approval_tiers_type_level"),
        db.Index("ix_approval_tiers_type_min", "document_type", "min_amount_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    min_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    max_amount_cents = db.Column(db.Integer, nullable=True)
    required_role = db.Column(db.String(32), nullable=False)
    chain_level = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "min_amount_cents": self.min_amount_cents,
            "max_amount_cents": self.max_amount_cents,
            "required_role": self.required_role,
            "chain_level": self.chain_level,
        }
