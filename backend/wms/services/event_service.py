# Overview: Service-layer operations for the system event log and the delivery-failure ledger.

"""
Event Log Invariants

- system_events is append-only.
- An event row is written inside the same DB transaction as the change it
  records; the in-process SystemEvent is published only after that commit.
- A handler failure is persisted as an open event_delivery_failures row in
  its own transaction, and stays open until a redrive of that handler
  succeeds.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import EventDeliveryFailure, SystemEventRecord
from wms.time_utils import utcnow
from .event_bus import EventBus, SystemEvent

logger = logging.getLogger("wms.events")

FAILURE_OPEN = "open"
FAILURE_RESOLVED = "resolved"


def append_system_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    action: str,
    payload: Optional[dict[str, Any]] = None,
    performed_by_id: int | None = None,
    occurred_at: Optional[datetime] = None,
) -> SystemEvent:
    """
    Append an event row to the current transaction and return the event to
    publish once that transaction commits.
    """
    record = SystemEventRecord(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=dict(payload or {}),
        performed_by_id=performed_by_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(record)
    db.session.flush()
    return to_system_event(record)


def to_system_event(record: SystemEventRecord) -> SystemEvent:
    return SystemEvent(
        id=record.id,
        type=record.event_type,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        action=record.action,
        payload=record.payload or {},
        performed_by_id=record.performed_by_id,
        timestamp=record.occurred_at,
    )


def get_event(event_id: int) -> SystemEvent:
    record = db.session.get(SystemEventRecord, event_id)
    if record is None:
        raise NotFoundError("SystemEvent", event_id)
    return to_system_event(record)


def list_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[SystemEventRecord]:
    q = db.session.query(SystemEventRecord)
    if entity_type:
        q = q.filter(SystemEventRecord.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(SystemEventRecord.entity_id == entity_id)
    if event_type:
        q = q.filter(SystemEventRecord.event_type == event_type)
    return q.order_by(SystemEventRecord.id.asc()).limit(limit).all()


def record_delivery_failure(event: SystemEvent, handler_name: str, exc: BaseException) -> EventDeliveryFailure | None:
    """
    Failure sink for EventBus: persist one failed delivery.

    Runs after the triggering commit; any half-done work the handler left in
    the session is discarded first.
    """
    db.session.rollback()

    if event.id is None:
        logger.warning("Delivery failure for unpersisted %s event not recorded (handler %s)", event.type, handler_name)
        return None

    failure = EventDeliveryFailure(
        event_id=event.id,
        handler_name=handler_name,
        error=f"{type(exc).__name__}: {exc}",
        attempts=1,
        status=FAILURE_OPEN,
        last_attempt_at=utcnow(),
    )
    db.session.add(failure)
    db.session.commit()
    logger.warning(
        "Recorded delivery failure #%s: handler=%s event=%s (%s)",
        failure.id, handler_name, event.id, event.type,
    )
    return failure


def list_failures(*, status: str | None = FAILURE_OPEN, limit: int = 100) -> list[EventDeliveryFailure]:
    q = db.session.query(EventDeliveryFailure)
    if status:
        q = q.filter(EventDeliveryFailure.status == status)
    return q.order_by(EventDeliveryFailure.id.asc()).limit(limit).all()


def redrive_failure(failure_id: int, bus: EventBus) -> EventDeliveryFailure:
    """
    Re-invoke only the handler that failed, with the stored event.

    Success resolves the failure; another failure bumps attempts and keeps
    it open. Handlers are idempotent, so a redrive after a partial success
    does not duplicate the follow-up.
    """
    failure = db.session.get(EventDeliveryFailure, failure_id)
    if failure is None:
        raise NotFoundError("EventDeliveryFailure", failure_id)
    if failure.status != FAILURE_OPEN:
        raise ValidationError(f"Delivery failure {failure_id} is already {failure.status}")

    event = get_event(failure.event_id)
    handler_name = failure.handler_name

    try:
        bus.deliver(event, handler_name)
    except Exception as exc:
        db.session.rollback()
        failure = db.session.get(EventDeliveryFailure, failure_id)
        failure.attempts += 1
        failure.error = f"{type(exc).__name__}: {exc}"
        failure.last_attempt_at = utcnow()
        db.session.commit()
        logger.exception("Redrive of failure #%s (%s) failed again", failure_id, handler_name)
        return failure

    failure = db.session.get(EventDeliveryFailure, failure_id)
    failure.attempts += 1
    failure.status = FAILURE_RESOLVED
    failure.last_attempt_at = utcnow()
    failure.resolved_at = failure.last_attempt_at
    db.session.commit()
    logger.info("Redrive of failure #%s (%s) succeeded", failure_id, handler_name)
    return failure


def redrive_open_failures(bus: EventBus, *, limit: int = 100) -> list[EventDeliveryFailure]:
    ids = [f.id for f in list_failures(status=FAILURE_OPEN, limit=limit)]
    return [redrive_failure(failure_id, bus) for failure_id in ids]
