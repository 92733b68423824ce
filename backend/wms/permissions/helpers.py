# Overview: Utility functions for role lookups and permission checks.

from .categories import ALL_ROLES, ROLE_RANK
from .definitions import DEFAULT_ROLE_PERMISSIONS


def validate_role(role):
    """Check if a role name is known."""
    return role in ALL_ROLES


def get_role_permissions(role):
    """Get the permission codes granted to a role (empty for unknown roles)."""
    return DEFAULT_ROLE_PERMISSIONS.get(role, set())


def authorize(role, resource, action):
    """Static role check: may `role` perform `action` on `resource`?"""
    granted = get_role_permissions(role)
    if "*" in granted:
        return True
    return f"{resource}:{action}" in granted or f"{resource}:*" in granted


def role_rank(role):
    return ROLE_RANK.get(role, 0)


def role_satisfies(actor_role, required_role):
    """True when actor_role sits at or above required_role on the approval ladder."""
    required = role_rank(required_role)
    return required > 0 and role_rank(actor_role) >= required
