# Overview: Service-layer permission checks; the static role gate consulted before scoped checks.

"""
Fail closed: a role holds only what DEFAULT_ROLE_PERMISSIONS grants it.
Denials are logged to the `wms.security` logger; grants are not logged.
"""

from __future__ import annotations

import logging

from ..errors import ForbiddenError
from ..permissions import Actor, authorize, validate_role

logger = logging.getLogger("wms.security")


def check_permission(actor: Actor, resource: str, action: str) -> bool:
    if not validate_role(actor.role):
        return False
    return authorize(actor.role, resource, action)


def require_permission(actor: Actor, resource: str, action: str) -> None:
    """Raise ForbiddenError unless the actor's role may perform action on resource."""
    if check_permission(actor, resource, action):
        return
    logger.warning(
        "Permission denied: actor=%s role=%s resource=%s action=%s",
        actor.id, actor.role, resource, action,
    )
    raise ForbiddenError(f"Role '{actor.role}' may not {action} {resource}")


# scope name -> (actor attribute, document attribute)
SCOPE_FIELDS = {
    "warehouse": ("warehouse_id", "warehouse_id"),
    "to_warehouse": ("warehouse_id", "to_warehouse_id"),
    "project": ("project_id", "project_id"),
}


def require_scope(actor: Actor, scope: str | None, document) -> None:
    """
    Dynamic scope check against fields already on the document.

    Admin and system actors are unrestricted; an actor with no assignment on
    the scope's axis is unrestricted along it.
    """
    if scope is None or actor.is_unrestricted:
        return
    actor_attr, doc_attr = SCOPE_FIELDS[scope]
    assigned = getattr(actor, actor_attr)
    if assigned is None:
        return
    if getattr(document, doc_attr) != assigned:
        logger.warning(
            "Scope denied: actor=%s %s=%s document %s=%s",
            actor.id, actor_attr, assigned, doc_attr, getattr(document, doc_attr),
        )
        raise ForbiddenError(f"Actor is not assigned to this document's {doc_attr}")
