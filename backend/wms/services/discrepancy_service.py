# Overview: Discrepancy report (dr) transition table.

"""
DR lifecycle:
    draft -submit-> under_review -send_claim-> claim_sent -resolve-> resolved
    under_review -resolve-> resolved
    draft -cancel-> cancelled

Usually raised by the system actor from a failed inspection.
"""

from ..permissions import Role
from .lifecycle_service import define_document, transition

R = Role

_REPORTERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF, R.QC_OFFICER}
_REVIEWERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR}


DR = define_document(
    "dr",
    "Discrepancy Report",
    statuses={"draft", "under_review", "claim_sent", "resolved", "cancelled"},
    terminal={"resolved", "cancelled"},
    create_roles=_REPORTERS | {R.SYSTEM},
    create_scope="warehouse",
    requires_warehouse=False,
    transitions=[
        transition("submit", "draft", "under_review", _REPORTERS, scope="warehouse", stamp="submitted_at"),
        transition("send_claim", "under_review", "claim_sent", _REVIEWERS, scope="warehouse"),
        transition("resolve", {"under_review", "claim_sent"}, "resolved", _REVIEWERS, scope="warehouse"),
        transition("cancel", "draft", "cancelled", _REPORTERS, scope="warehouse"),
    ],
)
