# Overview: Role and resource constants shared by permission checks and transition tables.


class Role:
    """Roles an upstream-authenticated actor may carry."""
    ADMIN = "admin"
    MANAGER = "manager"
    WAREHOUSE_SUPERVISOR = "warehouse_supervisor"
    WAREHOUSE_STAFF = "warehouse_staff"
    QC_OFFICER = "qc_officer"
    SITE_ENGINEER = "site_engineer"
    VIEWER = "viewer"
    # Internal actor used by orchestrated follow-ups
    SYSTEM = "system"


ALL_ROLES = frozenset({
    Role.ADMIN,
    Role.MANAGER,
    Role.WAREHOUSE_SUPERVISOR,
    Role.WAREHOUSE_STAFF,
    Role.QC_OFFICER,
    Role.SITE_ENGINEER,
    Role.VIEWER,
    Role.SYSTEM,
})


class Resource:
    """Non-document resources. Document resources are the document type codes."""
    INVENTORY = "inventory"
    APPROVALS = "approvals"
    EVENTS = "events"


DOCUMENT_RESOURCES = ("grn", "mi", "mrn", "qci", "dr", "wt")


# Approval hierarchy. Roles outside the ladder rank 0 and never satisfy a tier.
ROLE_RANK = {
    Role.WAREHOUSE_STAFF: 1,
    Role.WAREHOUSE_SUPERVISOR: 2,
    Role.MANAGER: 3,
    Role.ADMIN: 4,
}
