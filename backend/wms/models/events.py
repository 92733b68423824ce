from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class SystemEventRecord(db.Model):
    """
    Persisted copy of every SystemEvent, written in the same DB transaction
    as the change it describes. Append-only.
    """
    __tablename__ = "system_events"
    __table_args__ = (
        db.Index("ix_system_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    performed_by_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "payload": self.payload,
            "performed_by_id": self.performed_by_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class EventDeliveryFailure(db.Model):
    """
    A handler that raised while processing a committed event.

    Kept open until the handler is re-driven successfully, so a failed
    cross-document follow-up is never silently lost.
    """
    __tablename__ = "event_delivery_failures"
    __table_args__ = (
        db.Index("ix_delivery_failures_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("system_events.id"), nullable=False, index=True)
    handler_name = db.Column(db.String(128), nullable=False)
    error = db.Column(db.Text, nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(16), nullable=False, default="open")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    event = db.relationship("SystemEventRecord")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "handler_name": self.handler_name,
            "error": self.error,
            "attempts": self.attempts,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "last_attempt_at": to_utc_z(self.last_attempt_at) if self.last_attempt_at else None,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
