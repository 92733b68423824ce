# Overview: Default role -> permission grants.
# A permission is the pair "resource:action"; "resource:*" grants every action on it.

from .categories import Role, Resource, DOCUMENT_RESOURCES


DOCUMENT_ACTIONS = ("view", "create", "edit", "transition")


def _doc(resources, actions=DOCUMENT_ACTIONS):
    return {f"{r}:{a}" for r in resources for a in actions}


_VIEW_ALL_DOCS = _doc(DOCUMENT_RESOURCES, ("view",))


DEFAULT_ROLE_PERMISSIONS = {
    Role.ADMIN: {"*"},
    Role.MANAGER: (
        _doc(DOCUMENT_RESOURCES)
        | {
            f"{Resource.INVENTORY}:view",
            f"{Resource.INVENTORY}:block",
            f"{Resource.APPROVALS}:view",
            f"{Resource.APPROVALS}:manage",
            f"{Resource.EVENTS}:view",
            f"{Resource.EVENTS}:redrive",
        }
    ),
    Role.WAREHOUSE_SUPERVISOR: (
        _doc(DOCUMENT_RESOURCES)
        | {
            f"{Resource.INVENTORY}:view",
            f"{Resource.INVENTORY}:block",
            f"{Resource.APPROVALS}:view",
            f"{Resource.EVENTS}:view",
        }
    ),
    Role.WAREHOUSE_STAFF: (
        _VIEW_ALL_DOCS
        | _doc(("grn", "mi", "mrn", "dr", "wt"))
        | {f"{Resource.INVENTORY}:view", f"{Resource.APPROVALS}:view"}
    ),
    Role.QC_OFFICER: (
        _VIEW_ALL_DOCS
        | _doc(("qci", "dr"))
        | {"grn:transition", f"{Resource.INVENTORY}:view", f"{Resource.APPROVALS}:view"}
    ),
    Role.SITE_ENGINEER: (
        _VIEW_ALL_DOCS
        | _doc(("mi", "mrn"))
        | {f"{Resource.INVENTORY}:view", f"{Resource.APPROVALS}:view"}
    ),
    Role.VIEWER: (
        _VIEW_ALL_DOCS
        | {f"{Resource.INVENTORY}:view", f"{Resource.APPROVALS}:view"}
    ),
    Role.SYSTEM: (
        _doc(DOCUMENT_RESOURCES, ("view", "create", "transition"))
        | {f"{Resource.INVENTORY}:view"}
    ),
}
