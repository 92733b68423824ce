# Overview: Audit trail subscriber; turns every committed event into an audit entry for the configured sink.

from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from flask import has_request_context, request

from .event_bus import WILDCARD, EventBus, SystemEvent

logger = logging.getLogger("wms.audit")

TABLE_NAMES = {
    "document": "documents",
    "lot": "inventory_lots",
    "reservation": "stock_reservations",
}

AuditSink = Callable[[dict], None]


def log_sink(entry: dict) -> None:
    """Default sink: one JSON line per entry on the wms.audit logger."""
    logger.info(json.dumps(entry, sort_keys=True, default=str))


def build_audit_entry(event: SystemEvent, ip_address: Optional[str] = None) -> dict:
    payload = dict(event.payload)
    old_values = None
    new_values = payload
    if "from_status" in payload:
        old_values = {"status": payload["from_status"]}
        new_values = {"status": payload.get("to_status"), "version": payload.get("version")}
    return {
        "table_name": TABLE_NAMES.get(event.entity_type, event.entity_type),
        "record_id": event.entity_id,
        "action": event.action,
        "event_type": event.type,
        "old_values": old_values,
        "new_values": new_values,
        "performed_by_id": event.performed_by_id,
        "ip_address": ip_address,
    }


class AuditRecorder:
    """Wildcard subscriber. Runs after the transition committed, so it can never fail it."""

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or log_sink

    def register(self, bus: EventBus) -> None:
        bus.subscribe(WILDCARD, self, name="audit.record")

    def __call__(self, event: SystemEvent) -> None:
        ip_address = request.remote_addr if has_request_context() else None
        self.sink(build_audit_entry(event, ip_address))
