# Overview: Service-layer operations for documents; numbering, creation, line entry and reads.

from __future__ import annotations

import re
from typing import Optional

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Document, DocumentCounter, DocumentLine, StockReservation
from ..permissions import Actor
from ..validation import coerce_int, coerce_line
from wms.time_utils import current_year, utcnow
from .concurrency import run_in_transaction
from .event_service import append_system_event
from .permission_service import require_permission, require_scope


EDITABLE_STATUSES = frozenset({"draft"})

_PAD_RE = re.compile(r"\{(N+)\}")

# Dialects with INSERT ... ON CONFLICT DO UPDATE ... RETURNING
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# -- numbering --

def format_document_number(template: str, *, prefix: str, year: int, number: int) -> str:
    """
    Render a number template.

    {PREFIX}, {YYYY}, {YY}, and a run of N ({NNNN}) whose length is the
    zero-pad width. Numbers wider than the pad are not truncated.
    """
    if not _PAD_RE.search(template):
        raise ValidationError(f"Document number template has no {{N..}} placeholder: {template!r}")
    rendered = _PAD_RE.sub(lambda m: str(number).zfill(len(m.group(1))), template)
    return (
        rendered
        .replace("{PREFIX}", prefix)
        .replace("{YYYY}", f"{year:04d}")
        .replace("{YY}", f"{year % 100:02d}")
    )


def document_prefix(document_type: str) -> str:
    prefixes = current_app.config.get("DOC_PREFIXES") or {}
    return prefixes.get(document_type) or document_type.upper()


def next_sequence_value(document_type: str, *, year: int | None = None) -> int:
    """
    Atomically increment-or-insert the (document_type, year) counter.

    One INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement; the row is
    write-locked until the caller's transaction ends, so concurrent callers
    queue on it instead of reading the same value.
    """
    if not document_type:
        raise ValidationError("document_type is required")
    year = year or current_year()

    dialect = db.engine.dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Document counters are not supported on dialect {dialect!r}")

    table = DocumentCounter.__table__
    stmt = (
        insert(table)
        .values(document_type=document_type, year=year, last_number=1)
        .on_conflict_do_update(
            index_elements=[table.c.document_type, table.c.year],
            set_={"last_number": table.c.last_number + 1},
        )
        .returning(table.c.last_number)
    )
    return db.session.execute(stmt).scalar_one()


def next_document_number(document_type: str, *, year: int | None = None) -> str:
    """Allocate and format the next number. Participates in the caller's transaction."""
    year = year or current_year()
    number = next_sequence_value(document_type, year=year)
    return format_document_number(
        current_app.config.get("DOC_NUMBER_FORMAT", "{PREFIX}-{YYYY}-{NNNN}"),
        prefix=document_prefix(document_type),
        year=year,
        number=number,
    )


def allocate_document_number(document_type: str) -> str:
    """Standalone next(): allocate a number in its own committed transaction."""
    return run_in_transaction(lambda: next_document_number(document_type))


# -- creation and line entry --

def _document_event_payload(doc: Document, **extra) -> dict:
    payload = {
        "document_type": doc.document_type,
        "document_number": doc.document_number,
        "status": doc.status,
        "version": doc.version,
        "warehouse_id": doc.warehouse_id,
        "project_id": doc.project_id,
        "source_document_id": doc.source_document_id,
    }
    payload.update(extra)
    return payload


def create_document(
    document_type: str,
    actor: Actor,
    *,
    registry,
    bus,
    warehouse_id: int | None = None,
    project_id: int | None = None,
    to_warehouse_id: int | None = None,
    source_document_id: int | None = None,
    notes: str | None = None,
    lines: Optional[list[dict]] = None,
) -> Document:
    """
    Create a draft document with its initial lines.

    Assigns the next number, version 1, total = sum(qty * unit_cost).
    Appends document:created and publishes it after commit.
    """
    definition = registry.get(document_type)
    require_permission(actor, document_type, "create")
    if actor.role not in definition.create_roles:
        raise ForbiddenError(f"Role '{actor.role}' may not create {document_type} documents")

    warehouse_id = coerce_int(warehouse_id, "warehouse_id", minimum=1, allow_none=True)
    project_id = coerce_int(project_id, "project_id", minimum=1, allow_none=True)
    to_warehouse_id = coerce_int(to_warehouse_id, "to_warehouse_id", minimum=1, allow_none=True)
    source_document_id = coerce_int(source_document_id, "source_document_id", minimum=1, allow_none=True)

    if definition.requires_warehouse and warehouse_id is None:
        raise ValidationError(f"warehouse_id is required for {document_type}")
    normalized = [coerce_line(raw) for raw in (lines or [])]

    def _op():
        if source_document_id is not None and db.session.get(Document, source_document_id) is None:
            raise NotFoundError("Document", source_document_id)

        doc = Document(
            document_type=document_type,
            status=definition.initial_status,
            warehouse_id=warehouse_id,
            to_warehouse_id=to_warehouse_id,
            project_id=project_id,
            source_document_id=source_document_id,
            notes=notes,
            created_by_id=actor.id,
            total_value_cents=0,
        )
        require_scope(actor, definition.create_scope, doc)

        doc.document_number = next_document_number(document_type)
        for data in normalized:
            doc.lines.append(DocumentLine(**data))
        doc.total_value_cents = sum(line.quantity * line.unit_cost_cents for line in doc.lines)

        db.session.add(doc)
        db.session.flush()

        event = append_system_event(
            event_type="document:created",
            entity_type="document",
            entity_id=doc.id,
            action="create",
            payload=_document_event_payload(doc, line_count=len(normalized)),
            performed_by_id=actor.id,
        )
        return doc, event

    doc, event = run_in_transaction(_op)
    bus.publish(event)
    return doc


def add_line(
    document_id: int,
    actor: Actor,
    *,
    bus,
    item_id: int,
    quantity: int,
    unit_cost_cents: int = 0,
    condition: str | None = None,
    expected_version: int | None = None,
) -> DocumentLine:
    """
    Append a line while the document is editable.

    Recomputes the total and bumps the document version; a stale
    expected_version fails with ConflictError.
    """
    expected_version = coerce_int(expected_version, "version", minimum=1, allow_none=True)
    data = coerce_line({
        "item_id": item_id,
        "quantity": quantity,
        "unit_cost_cents": unit_cost_cents,
        "condition": condition,
    })

    def _op():
        doc = get_document(document_id)
        require_permission(actor, doc.document_type, "edit")
        require_scope(actor, "warehouse", doc)
        if expected_version is not None and doc.version != expected_version:
            raise ConflictError(
                f"Document {doc.document_number} is at version {doc.version}, not {expected_version}"
            )
        if doc.status not in EDITABLE_STATUSES:
            raise ValidationError(
                f"Lines can only be added while {', '.join(sorted(EDITABLE_STATUSES))} (status: {doc.status})"
            )

        line = DocumentLine(**data)
        doc.lines.append(line)
        doc.total_value_cents = (doc.total_value_cents or 0) + line.line_value_cents
        doc.updated_at = utcnow()
        db.session.flush()

        event = append_system_event(
            event_type="document:line_added",
            entity_type="document",
            entity_id=doc.id,
            action="add_line",
            payload=_document_event_payload(doc, line_id=line.id, item_id=line.item_id, quantity=line.quantity),
            performed_by_id=actor.id,
        )
        return line, event

    line, event = run_in_transaction(_op)
    bus.publish(event)
    return line


# -- reads --

def get_document(document_id: int) -> Document:
    doc = db.session.get(Document, document_id)
    if doc is None:
        raise NotFoundError("Document", document_id)
    return doc


def get_document_by_number(document_type: str, document_number: str) -> Document:
    doc = (
        db.session.query(Document)
        .filter_by(document_type=document_type, document_number=document_number)
        .first()
    )
    if doc is None:
        raise NotFoundError("Document", document_number)
    return doc


def find_child_document(source_document_id: int, document_type: str) -> Document | None:
    """First non-cancelled document of a type raised from source_document_id."""
    return (
        db.session.query(Document)
        .filter(
            Document.source_document_id == source_document_id,
            Document.document_type == document_type,
            Document.status != "cancelled",
        )
        .order_by(Document.id.asc())
        .first()
    )


def list_documents(
    *,
    document_type: str | None = None,
    status: str | None = None,
    warehouse_id: int | None = None,
    project_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Document]:
    q = db.session.query(Document)
    if document_type:
        q = q.filter(Document.document_type == document_type)
    if status:
        q = q.filter(Document.status == status)
    if warehouse_id is not None:
        q = q.filter(Document.warehouse_id == warehouse_id)
    if project_id is not None:
        q = q.filter(Document.project_id == project_id)
    limit = max(1, min(int(limit or 50), 500))
    return q.order_by(Document.id.desc()).offset(max(0, int(offset or 0))).limit(limit).all()


def get_document_summary(document_id: int) -> dict:
    """Document with its lines and reservations."""
    doc = get_document(document_id)
    reservations = (
        db.session.query(StockReservation)
        .filter(StockReservation.consuming_document_id == doc.id)
        .order_by(StockReservation.id.asc())
        .all()
    )
    data = doc.to_dict()
    data["lines"] = [line.to_dict() for line in doc.lines]
    data["reservations"] = [r.to_dict() for r in reservations]
    return data
