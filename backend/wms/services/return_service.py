# Overview: Material return (mrn) transition table.

"""
MRN lifecycle:
    draft -submit-> pending -receive-> received -complete-> completed
    draft | pending -cancel-> cancelled

complete puts the returned quantity back on the shelf as new lots; lines
marked condition="damaged" become blocked lots.
"""

from ..permissions import Role
from .document_effects import receive_returned_lines, require_lines
from .lifecycle_service import define_document, transition

R = Role

_RETURNERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF, R.SITE_ENGINEER}
_RECEIVERS = {R.ADMIN, R.MANAGER, R.WAREHOUSE_SUPERVISOR, R.WAREHOUSE_STAFF}


MRN = define_document(
    "mrn",
    "Material Return Note",
    statuses={"draft", "pending", "received", "completed", "cancelled"},
    terminal={"completed", "cancelled"},
    create_roles=_RETURNERS,
    create_scope="project",
    transitions=[
        transition("submit", "draft", "pending", _RETURNERS,
                   scope="project", validator=require_lines, stamp="submitted_at"),
        transition("receive", "pending", "received", _RECEIVERS, scope="warehouse"),
        transition("complete", "received", "completed", _RECEIVERS,
                   scope="warehouse", effect=receive_returned_lines),
        transition("cancel", {"draft", "pending"}, "cancelled", _RETURNERS, scope="project"),
    ],
)
