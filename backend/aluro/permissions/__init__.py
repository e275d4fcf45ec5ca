# Overview: Permission system package.
# Re-exports the public APIs used by services and decorators.

from .definitions import PermissionCategory, PERMISSION_DEFINITIONS
from .roles import ROLES, INVITABLE_ROLES, DEFAULT_ROLE_PERMISSIONS


def get_all_permission_codes() -> set[str]:
    return {code for code, _, _, _ in PERMISSION_DEFINITIONS}


def get_role_permissions(role: str | None) -> set[str]:
    """Permissions granted by a tenant role (empty for unknown roles)."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role or "", set()))


__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "ROLES",
    "INVITABLE_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_role_permissions",
]
