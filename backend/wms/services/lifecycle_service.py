# Overview: Service-layer operations for the document lifecycle; one state machine engine shared by every document type.

"""
WMS Document Lifecycle Engine
=============================

Every document type is a fixed-shape DocumentDefinition:
    statuses, terminal statuses, creation rules and a transition table keyed
    by (status, action). The tables are built once at startup
    (document_types.build_registry) and never mutated.

transition(document, action, actor) runs, inside ONE DB transaction:
    1. load the document; its version must equal the version the caller read
    2. look up (status, action); unmapped pairs -> InvalidTransitionError
    3. static permission check (permission service)
    4. the action's allowed-role set
    5. approval tier gate for value-sensitive actions
    6. scope check against fields on the document
    7. the action's validator (content policy)
    8. the action's effect (lot / reservation writes)
    9. new status + stamps, flushed as UPDATE ... WHERE version = <read>;
       a lost race surfaces as ConflictError with nothing persisted
   10. append the document:status_changed event row
then commits and publishes the event on the bus.

Transitions are never idempotent: repeating an action fails loudly.
Only storage lock contention is retried; ConflictError never is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from ..errors import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Document
from ..permissions import Actor
from ..validation import coerce_int
from wms.time_utils import utcnow
from . import approval_service, document_service, permission_service
from .concurrency import run_in_transaction
from .event_service import append_system_event

logger = logging.getLogger("wms.lifecycle")

INITIAL_STATUS = "draft"


@dataclass
class TransitionContext:
    """What a validator or effect sees. event_payload is merged into the emitted event."""
    document: Document
    action: str
    actor: Actor
    payload: Mapping[str, Any]
    from_status: str
    spec: "TransitionSpec"
    event_payload: dict = field(default_factory=dict)


Hook = Callable[[TransitionContext], None]


@dataclass(frozen=True)
class TransitionSpec:
    action: str
    from_statuses: frozenset
    to_status: str
    roles: frozenset
    scope: Optional[str] = None
    approval_gated: bool = False
    validator: Optional[Hook] = None
    effect: Optional[Hook] = None
    # Document timestamp column set on this transition
    stamp: Optional[str] = None


def transition(
    action: str,
    from_statuses: Iterable[str] | str,
    to_status: str,
    roles: Iterable[str],
    **options,
) -> TransitionSpec:
    """Shorthand for declaring a TransitionSpec in a transition table."""
    if isinstance(from_statuses, str):
        from_statuses = [from_statuses]
    return TransitionSpec(
        action=action,
        from_statuses=frozenset(from_statuses),
        to_status=to_status,
        roles=frozenset(roles),
        **options,
    )


@dataclass(frozen=True)
class DocumentDefinition:
    document_type: str
    label: str
    statuses: frozenset
    terminal_statuses: frozenset
    transitions: Mapping[tuple[str, str], TransitionSpec]
    create_roles: frozenset
    create_scope: Optional[str] = None
    requires_warehouse: bool = True
    initial_status: str = INITIAL_STATUS

    def lookup(self, status: str, action: str) -> Optional[TransitionSpec]:
        return self.transitions.get((status, action))

    def actions_from(self, status: str) -> list[str]:
        return sorted(action for (from_status, action) in self.transitions if from_status == status)

    def to_dict(self) -> dict:
        return {
            "document_type": self.document_type,
            "label": self.label,
            "statuses": sorted(self.statuses),
            "terminal_statuses": sorted(self.terminal_statuses),
            "initial_status": self.initial_status,
            "transitions": [
                {
                    "from": from_status,
                    "action": action,
                    "to": spec.to_status,
                    "roles": sorted(spec.roles),
                    "approval_gated": spec.approval_gated,
                }
                for (from_status, action), spec in sorted(self.transitions.items())
            ],
        }


def define_document(
    document_type: str,
    label: str,
    *,
    statuses: Iterable[str],
    terminal: Iterable[str],
    create_roles: Iterable[str],
    transitions: Iterable[TransitionSpec],
    create_scope: Optional[str] = None,
    requires_warehouse: bool = True,
) -> DocumentDefinition:
    """Build and sanity-check a definition: known statuses, nothing leaves a terminal state."""
    statuses = frozenset(statuses)
    terminal = frozenset(terminal)
    if INITIAL_STATUS not in statuses:
        raise ValueError(f"{document_type}: statuses must include '{INITIAL_STATUS}'")
    if not terminal <= statuses:
        raise ValueError(f"{document_type}: unknown terminal statuses {sorted(terminal - statuses)}")

    table: dict[tuple[str, str], TransitionSpec] = {}
    for spec in transitions:
        unknown = (spec.from_statuses | {spec.to_status}) - statuses
        if unknown:
            raise ValueError(f"{document_type}.{spec.action}: unknown statuses {sorted(unknown)}")
        for from_status in spec.from_statuses:
            if from_status in terminal:
                raise ValueError(f"{document_type}.{spec.action}: '{from_status}' is terminal")
            key = (from_status, spec.action)
            if key in table:
                raise ValueError(f"{document_type}: duplicate transition {key}")
            table[key] = spec

    return DocumentDefinition(
        document_type=document_type,
        label=label,
        statuses=statuses,
        terminal_statuses=terminal,
        transitions=MappingProxyType(table),
        create_roles=frozenset(create_roles),
        create_scope=create_scope,
        requires_warehouse=requires_warehouse,
    )


class DocumentTypeRegistry:
    """Immutable lookup table keyed by document type."""

    def __init__(self, definitions: Iterable[DocumentDefinition]):
        table = {}
        for definition in definitions:
            if definition.document_type in table:
                raise ValueError(f"Duplicate document type {definition.document_type}")
            table[definition.document_type] = definition
        self._definitions = MappingProxyType(table)

    def get(self, document_type: str) -> DocumentDefinition:
        definition = self._definitions.get(document_type)
        if definition is None:
            raise ValidationError(
                f"Unknown document type '{document_type}'. Known: {', '.join(sorted(self._definitions))}"
            )
        return definition

    def __contains__(self, document_type: str) -> bool:
        return document_type in self._definitions

    def types(self) -> list[str]:
        return sorted(self._definitions)


class DocumentEngine:
    """
    The shared state machine. Holds the bus it publishes to and the type
    registry it validates against; both are injected by the app factory.
    """

    def __init__(
        self,
        bus,
        registry: DocumentTypeRegistry,
        *,
        authorize: Callable[[Actor, str, str], None] = permission_service.require_permission,
        approval_gate: Callable[[Actor, str, int], Any] = approval_service.require_approval_role,
    ):
        self.bus = bus
        self.registry = registry
        self._authorize = authorize
        self._approval_gate = approval_gate

    # -- creation / editing --

    def create(self, document_type: str, actor: Actor, **fields) -> Document:
        return document_service.create_document(
            document_type, actor, registry=self.registry, bus=self.bus, **fields
        )

    def add_line(self, document_id: int, actor: Actor, **fields):
        return document_service.add_line(document_id, actor, bus=self.bus, **fields)

    # -- queries --

    def allowed_actions(self, document: Document, actor: Optional[Actor] = None) -> list[str]:
        """Actions mapped from the current status, filtered by role when an actor is given."""
        definition = self.registry.get(document.document_type)
        actions = definition.actions_from(document.status)
        if actor is None:
            return actions
        return [
            action for action in actions
            if actor.role in definition.lookup(document.status, action).roles
            and permission_service.check_permission(actor, document.document_type, "transition")
        ]

    # -- transition --

    def transition(
        self,
        document,
        action: str,
        actor: Actor,
        *,
        payload: Optional[Mapping[str, Any]] = None,
        expected_version: int | None = None,
    ) -> Document:
        """
        Apply one action to one document.

        `document` is a Document the caller read (its version is the CAS
        token) or a document id (the version read at the first attempt is).
        """
        expected_version = coerce_int(expected_version, "version", minimum=1, allow_none=True)
        if isinstance(document, Document):
            document_id = document.id
            if expected_version is None:
                expected_version = document.version
        else:
            document_id = document
        payload = MappingProxyType(dict(payload or {}))
        pinned = {"version": expected_version}

        def _op():
            doc = db.session.get(Document, document_id, populate_existing=True)
            if doc is None:
                raise NotFoundError("Document", document_id)

            if pinned["version"] is None:
                pinned["version"] = doc.version
            if doc.version != pinned["version"]:
                raise ConflictError(
                    f"{doc.document_number} is at version {doc.version}, "
                    f"caller read version {pinned['version']}"
                )

            definition = self.registry.get(doc.document_type)
            spec = definition.lookup(doc.status, action)
            if spec is None:
                raise InvalidTransitionError(
                    doc.document_type, doc.status, action, definition.actions_from(doc.status)
                )

            self._authorize(actor, doc.document_type, "transition")
            if actor.role not in spec.roles:
                raise ForbiddenError(
                    f"Role '{actor.role}' may not '{action}' {doc.document_type} "
                    f"(allowed: {', '.join(sorted(spec.roles))})"
                )
            if spec.approval_gated:
                self._approval_gate(actor, doc.document_type, doc.total_value_cents or 0)
            permission_service.require_scope(actor, spec.scope, doc)

            ctx = TransitionContext(
                document=doc,
                action=action,
                actor=actor,
                payload=payload,
                from_status=doc.status,
                spec=spec,
            )
            if spec.validator is not None:
                spec.validator(ctx)
            if spec.effect is not None:
                spec.effect(ctx)

            now = utcnow()
            doc.status = spec.to_status
            doc.last_action = action
            doc.last_action_by_id = actor.id
            doc.updated_at = now
            if spec.stamp:
                setattr(doc, spec.stamp, now)
                if spec.stamp == "approved_at":
                    doc.approved_by_id = actor.id
            if spec.to_status in definition.terminal_statuses:
                doc.closed_at = now

            # UPDATE ... WHERE version = <read>; StaleDataError -> ConflictError
            db.session.flush()

            event_payload = {
                "document_type": doc.document_type,
                "document_number": doc.document_number,
                "from_status": ctx.from_status,
                "to_status": doc.status,
                "version": doc.version,
                "warehouse_id": doc.warehouse_id,
                "to_warehouse_id": doc.to_warehouse_id,
                "project_id": doc.project_id,
                "source_document_id": doc.source_document_id,
                "inspection_result": doc.inspection_result,
                "total_value_cents": doc.total_value_cents,
            }
            event_payload.update(ctx.event_payload)
            event = append_system_event(
                event_type="document:status_changed",
                entity_type="document",
                entity_id=doc.id,
                action=action,
                payload=event_payload,
                performed_by_id=actor.id,
            )
            return doc, event

        doc, event = run_in_transaction(_op)
        logger.info(
            "%s %s: %s -> %s by %s (v%s)",
            event.payload["document_type"], event.payload["document_number"],
            event.payload["from_status"], event.payload["to_status"], actor.role, event.payload["version"],
        )
        self.bus.publish(event)
        return doc
