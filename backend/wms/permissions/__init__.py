# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import Role, Resource, ALL_ROLES, ROLE_RANK, DOCUMENT_RESOURCES
from .definitions import DEFAULT_ROLE_PERMISSIONS, DOCUMENT_ACTIONS
from .helpers import (
    authorize,
    get_role_permissions,
    role_rank,
    role_satisfies,
    validate_role,
)
from .actors import Actor, SYSTEM_ACTOR

__all__ = [
    "Role",
    "Resource",
    "ALL_ROLES",
    "ROLE_RANK",
    "DOCUMENT_RESOURCES",
    "DEFAULT_ROLE_PERMISSIONS",
    "DOCUMENT_ACTIONS",
    "authorize",
    "get_role_permissions",
    "role_rank",
    "role_satisfies",
    "validate_role",
    "Actor",
    "SYSTEM_ACTOR",
]
