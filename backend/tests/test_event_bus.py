# Overview: Pytest coverage for event dispatch, delivery-failure recording and redrive.

"""
Event Bus Tests

Verifies:
1. Type-specific handlers run before wildcard handlers, each in subscription order
2. A failing handler does not stop its siblings or undo the committed transition
3. Failures are persisted and can be re-driven to exactly the failed handler
4. Orchestrator handlers are idempotent under redrive
"""

import dataclasses

import pytest

from wms.errors import ValidationError
from wms.models import Document, EventDeliveryFailure
from wms.services import document_service, event_service
from wms.services.event_bus import WILDCARD, EventBus, EventBusError, SystemEvent
from wms.time_utils import utcnow

from conftest import WAREHOUSE


def _event(event_type="document:status_changed", **payload):
    return SystemEvent(
        type=event_type,
        entity_type="document",
        entity_id=1,
        action="submit",
        payload=payload,
        performed_by_id=None,
        timestamp=utcnow(),
    )


def _status_events(entity_id):
    return [
        event_service.to_system_event(record)
        for record in event_service.list_events(entity_id=entity_id, event_type="document:status_changed")
    ]


class TestDispatch:
    def test_specific_handlers_run_before_wildcard(self):
        bus = EventBus()
        calls = []
        bus.subscribe(WILDCARD, lambda e: calls.append("wild-1"), name="wild-1")
        bus.subscribe("document:status_changed", lambda e: calls.append("specific-1"), name="specific-1")
        bus.subscribe(WILDCARD, lambda e: calls.append("wild-2"), name="wild-2")
        bus.subscribe("document:status_changed", lambda e: calls.append("specific-2"), name="specific-2")
        bus.subscribe("lot:blocked", lambda e: calls.append("other"), name="other")

        result = bus.publish(_event())

        assert calls == ["specific-1", "specific-2", "wild-1", "wild-2"]
        assert result.notified == 4
        assert result.ok

    def test_failing_handler_does_not_stop_siblings(self):
        reported = []
        bus = EventBus(failure_sink=lambda event, name, exc: reported.append((name, str(exc))))
        calls = []

        def boom(event):
            raise RuntimeError("handler exploded")

        bus.subscribe("document:status_changed", boom, name="boom")
        bus.subscribe("document:status_changed", lambda e: calls.append("after"), name="after")

        result = bus.publish(_event())

        assert calls == ["after"]
        assert not result.ok
        assert [f.handler_name for f in result.failures] == ["boom"]
        assert result.failures[0].error_type == "RuntimeError"
        assert reported == [("boom", "handler exploded")]

    def test_broken_failure_sink_is_contained(self):
        def sink(event, name, exc):
            raise RuntimeError("sink down")

        bus = EventBus(failure_sink=sink)
        bus.subscribe("x", lambda e: 1 / 0, name="div")

        result = bus.publish(_event("x"))
        assert len(result.failures) == 1

    def test_handler_names_are_unique(self):
        bus = EventBus()
        bus.subscribe("x", lambda e: None, name="h")
        with pytest.raises(EventBusError):
            bus.subscribe(WILDCARD, lambda e: None, name="h")

    def test_unsubscribe_by_name(self):
        bus = EventBus()
        calls = []
        bus.subscribe("x", calls.append, name="h")
        bus.unsubscribe("h")

        bus.publish(_event("x"))
        assert calls == []
        assert bus.handler_names() == []

    def test_deliver_targets_one_handler(self):
        bus = EventBus()
        calls = []
        bus.subscribe("x", lambda e: calls.append("a"), name="a")
        bus.subscribe("x", lambda e: calls.append("b"), name="b")

        bus.deliver(_event("x"), "b")
        assert calls == ["b"]

        with pytest.raises(EventBusError):
            bus.deliver(_event("x"), "missing")
        with pytest.raises(EventBusError):
            bus.deliver(_event("y"), "a")

    def test_events_are_immutable(self):
        event = _event(to_status="submitted")

        with pytest.raises(TypeError):
            event.payload["to_status"] = "stored"
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.type = "other"

    def test_app_bus_wiring(self, runtime):
        names = [s.name for s in runtime.bus.subscribers_for("document:status_changed")]
        assert names == [
            "orchestrator.raise_inspection",
            "orchestrator.raise_discrepancy",
            "orchestrator.approve_receipt",
            "audit.record",
        ]


class TestDeliveryFailures:
    def test_failure_is_recorded_and_transition_kept(self, engine, bus, db_session, staff):
        def flaky(event):
            raise RuntimeError("downstream unavailable")

        bus.subscribe("document:status_changed", flaky, name="test.flaky")

        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)

        doc = db_session.get(Document, grn.id, populate_existing=True)
        assert doc.status == "submitted"
        # Siblings still ran: the inspection was raised
        assert document_service.find_child_document(grn.id, "qci") is not None

        failures = event_service.list_failures()
        assert len(failures) == 1
        failure = failures[0]
        assert failure.handler_name == "test.flaky"
        assert failure.status == "open"
        assert failure.attempts == 1
        assert "downstream unavailable" in failure.error
        assert event_service.get_event(failure.event_id).entity_id == grn.id

    def test_redrive_resolves_after_fix(self, engine, bus, db_session, staff):
        state = {"broken": True, "seen": []}

        def flaky(event):
            if state["broken"]:
                raise RuntimeError("still broken")
            state["seen"].append(event.id)

        bus.subscribe("document:status_changed", flaky, name="test.flaky")
        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)
        failure_id = event_service.list_failures()[0].id

        again = event_service.redrive_failure(failure_id, bus)
        assert again.status == "open"
        assert again.attempts == 2
        assert "still broken" in again.error

        state["broken"] = False
        resolved = event_service.redrive_failure(failure_id, bus)
        assert resolved.status == "resolved"
        assert resolved.attempts == 3
        assert resolved.resolved_at is not None
        assert state["seen"] == [resolved.event_id]
        assert event_service.list_failures() == []

    def test_redrive_of_resolved_failure_rejected(self, engine, bus, db_session, staff):
        calls = []

        def once_broken(event):
            if not calls:
                calls.append("failed")
                raise RuntimeError("first call fails")

        bus.subscribe("document:status_changed", once_broken, name="test.once")
        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)

        [resolved] = event_service.redrive_open_failures(bus)
        assert resolved.status == "resolved"
        with pytest.raises(ValidationError):
            event_service.redrive_failure(resolved.id, bus)

    def test_unpersisted_event_failure_is_not_recorded(self, bus, db_session):
        bus.subscribe("test:ping", lambda e: 1 / 0, name="test.ping")
        result = bus.publish(_event("test:ping"))

        assert not result.ok
        assert db_session.query(EventDeliveryFailure).count() == 0


class TestOrchestratorIdempotency:
    def test_inspection_raised_once(self, engine, bus, db_session, staff):
        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)
        [submitted] = _status_events(grn.id)

        bus.deliver(submitted, "orchestrator.raise_inspection")
        bus.deliver(submitted, "orchestrator.raise_inspection")

        count = db_session.query(Document).filter_by(document_type="qci", source_document_id=grn.id).count()
        assert count == 1

    def test_discrepancy_raised_once(self, engine, bus, db_session, staff, qc_officer):
        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)
        qci = document_service.find_child_document(grn.id, "qci")
        engine.transition(qci, "start", qc_officer)
        engine.transition(qci.id, "complete", qc_officer, payload={"result": "fail"})
        completed = _status_events(qci.id)[-1]

        bus.deliver(completed, "orchestrator.raise_discrepancy")

        count = db_session.query(Document).filter_by(document_type="dr", source_document_id=qci.id).count()
        assert count == 1

    def test_receipt_approval_not_repeated(self, engine, bus, db_session, staff, qc_officer):
        grn = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        engine.transition(grn, "submit", staff)
        qci = document_service.find_child_document(grn.id, "qci")
        engine.transition(qci, "start", qc_officer)
        engine.transition(qci.id, "complete", qc_officer, payload={"result": "pass"})
        completed = _status_events(qci.id)[-1]
        version = db_session.get(Document, grn.id, populate_existing=True).version

        bus.deliver(completed, "orchestrator.approve_receipt")

        receipt = db_session.get(Document, grn.id, populate_existing=True)
        assert receipt.status == "qc_approved"
        assert receipt.version == version

    def test_orchestrator_failure_is_recorded(self, engine, bus, db_session, staff, monkeypatch):
        def refuse(*args, **kwargs):
            raise RuntimeError("numbering offline")

        receipt = engine.create("grn", staff, warehouse_id=WAREHOUSE, lines=[{"item_id": 1, "quantity": 5}])
        monkeypatch.setattr(engine, "create", refuse)
        engine.transition(receipt, "submit", staff)
        monkeypatch.undo()

        [failure] = event_service.list_failures()
        assert failure.handler_name == "orchestrator.raise_inspection"
        assert document_service.find_child_document(receipt.id, "qci") is None

        resolved = event_service.redrive_failure(failure.id, bus)
        assert resolved.status == "resolved"
        assert document_service.find_child_document(receipt.id, "qci") is not None
