# Overview: Quality inspection (qci) transition table.

"""
QCI lifecycle:
    draft -start-> in_progress -complete-> completed          (result pass | fail)
    in_progress -complete_conditional-> completed_conditional -pm_approve-> completed
    draft -cancel-> cancelled

A completed inspection drives its receipt (orchestrator): fail raises a
discrepancy report, pass or an approved conditional result qc-approves the
receipt.
"""

from ..errors import ValidationError
from ..permissions import Role
from .lifecycle_service import TransitionContext, define_document, transition

R = Role

RESULT_PASS = "pass"
RESULT_FAIL = "fail"
RESULT_CONDITIONAL = "conditional"

_INSPECTORS = {R.ADMIN, R.QC_OFFICER}


def _record_result(ctx: TransitionContext) -> None:
    result = ctx.payload.get("result")
    if result not in (RESULT_PASS, RESULT_FAIL):
        raise ValidationError("complete requires result 'pass' or 'fail'; use complete_conditional otherwise")
    ctx.document.inspection_result = result
    if ctx.payload.get("notes"):
        ctx.document.notes = ctx.payload["notes"]


def _record_conditional(ctx: TransitionContext) -> None:
    ctx.document.inspection_result = RESULT_CONDITIONAL
    if ctx.payload.get("notes"):
        ctx.document.notes = ctx.payload["notes"]


QCI = define_document(
    "qci",
    "Quality Control Inspection",
    statuses={"draft", "in_progress", "completed", "completed_conditional", "cancelled"},
    terminal={"completed", "cancelled"},
    create_roles={R.ADMIN, R.QC_OFFICER, R.SYSTEM},
    create_scope="warehouse",
    requires_warehouse=False,
    transitions=[
        transition("start", "draft", "in_progress", _INSPECTORS, scope="warehouse", stamp="submitted_at"),
        transition("complete", "in_progress", "completed", _INSPECTORS,
                   scope="warehouse", effect=_record_result),
        transition("complete_conditional", "in_progress", "completed_conditional", _INSPECTORS,
                   scope="warehouse", effect=_record_conditional),
        transition("pm_approve", "completed_conditional", "completed", {R.ADMIN, R.MANAGER},
                   scope="warehouse", stamp="approved_at"),
        transition("cancel", "draft", "cancelled", {R.ADMIN, R.MANAGER, R.QC_OFFICER}, scope="warehouse"),
    ],
)
