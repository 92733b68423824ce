# Overview: Material issue (mi) transition table.

"""
MI lifecycle:
    draft -submit-> pending_approval -approve-> approved -issue-> issued
    pending_approval -reject-> rejected
    draft | pending_approval | approved -cancel-> cancelled

approve and reject are approval-tier gated on the document value; approve reserves stock
(FIFO, one reservation per line); issue consumes the reservations; cancel
releases whatever is still reserved.
"""

from ..permissions import Role
from .document_effects import consume_lines, release_reservations, require_lines, reserve_lines
from .lifecycle_service import define_document, transition

R = Role

_REQUESTERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF, R.SITE_ENGINEER}
_APPROVERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR}


MI = define_document(
    "mi",
    "Material Issue",
    statuses={"draft", "pending_approval", "approved", "issued", "rejected", "cancelled"},
    terminal={"issued", "rejected", "cancelled"},
    create_roles=_REQUESTERS,
    create_scope="project",
    transitions=[
        transition("submit", "draft", "pending_approval", _REQUESTERS,
                   scope="project", validator=require_lines, stamp="submitted_at"),
        transition("approve", "pending_approval", "approved", _APPROVERS,
                   scope="warehouse", approval_gated=True, effect=reserve_lines, stamp="approved_at"),
        transition("reject", "pending_approval", "rejected", _APPROVERS,
                   scope="warehouse", approval_gated=True),
        transition("issue", "approved", "issued", {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF},
                   scope="warehouse", effect=consume_lines),
        transition("cancel", {"draft", "pending_approval", "approved"}, "cancelled", _REQUESTERS,
                   scope="project", effect=release_reservations),
    ],
)
