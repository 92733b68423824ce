# Overview: Internal transfer (wt) transition table.

"""
WT lifecycle:
    draft -submit-> pending_approval -approve-> approved -ship-> in_transit -receive-> received
    pending_approval -reject-> rejected
    draft | pending_approval | approved -cancel-> cancelled

approve and reject are tier gated; approve reserves at the source warehouse; ship consumes and
snapshots the FIFO cost per line; receive creates lots at to_warehouse_id,
scope-checked against the destination.
"""

from ..errors import ValidationError
from ..permissions import Role
from .document_effects import (
    consume_lines,
    receive_lines_at_destination,
    release_reservations,
    require_lines,
    reserve_lines,
)
from .lifecycle_service import TransitionContext, define_document, transition

R = Role

_MOVERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF}
_APPROVERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR}


def _validate_submit(ctx: TransitionContext) -> None:
    require_lines(ctx)
    doc = ctx.document
    if doc.to_warehouse_id is None:
        raise ValidationError("to_warehouse_id is required for a transfer")
    if doc.to_warehouse_id == doc.warehouse_id:
        raise ValidationError("Cannot transfer to the same warehouse")


WT = define_document(
    "wt",
    "Warehouse Transfer",
    statuses={"draft", "pending_approval", "approved", "in_transit", "received", "rejected", "cancelled"},
    terminal={"received", "rejected", "cancelled"},
    create_roles=_MOVERS,
    create_scope="warehouse",
    transitions=[
        transition("submit", "draft", "pending_approval", _MOVERS,
                   scope="warehouse", validator=_validate_submit, stamp="submitted_at"),
        transition("approve", "pending_approval", "approved", _APPROVERS,
                   scope="warehouse", approval_gated=True, effect=reserve_lines, stamp="approved_at"),
        transition("reject", "pending_approval", "rejected", _APPROVERS,
                   scope="warehouse", approval_gated=True),
        transition("ship", "approved", "in_transit", _MOVERS, scope="warehouse", effect=consume_lines),
        transition("receive", "in_transit", "received", _MOVERS,
                   scope="to_warehouse", effect=receive_lines_at_destination),
        transition("cancel", {"draft", "pending_approval", "approved"}, "cancelled", _MOVERS,
                   scope="warehouse", effect=release_reservations),
    ],
)
