# Overview: Goods receipt (grn) transition table.

"""
GRN lifecycle:
    draft -submit-> submitted -qc_approve-> qc_approved -receive-> received -store-> stored
    submitted -reject-> rejected
    draft | submitted -cancel-> cancelled

Submitting raises a quality inspection (orchestrator). qc_approve is normally
applied by the system actor once that inspection passes. store creates one
lot per line.
"""

from ..permissions import Role
from .document_effects import receive_lines, require_lines
from .lifecycle_service import define_document, transition

R = Role

_RECEIVERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF}


GRN = define_document(
    "grn",
    "Goods Receipt Note",
    statuses={"draft", "submitted", "qc_approved", "received", "stored", "rejected", "cancelled"},
    terminal={"stored", "rejected", "cancelled"},
    create_roles=_RECEIVERS,
    create_scope="warehouse",
    transitions=[
        transition("submit", "draft", "submitted", _RECEIVERS,
                   scope="warehouse", validator=require_lines, stamp="submitted_at"),
        transition("qc_approve", "submitted", "qc_approved", {R.ADMIN, R.QC_OFFICER, R.SYSTEM},
                   scope="warehouse", stamp="approved_at"),
        transition("reject", "submitted", "rejected", {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.QC_OFFICER},
                   scope="warehouse"),
        transition("receive", "qc_approved", "received", _RECEIVERS, scope="warehouse"),
        transition("store", "received", "stored", _RECEIVERS, scope="warehouse", effect=receive_lines),
        transition("cancel", {"draft", "submitted"}, "cancelled", _RECEIVERS, scope="warehouse"),
    ],
)
