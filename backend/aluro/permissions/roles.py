# Overview: Tenant roles and the permissions each one grants.

from .definitions import PERMISSION_DEFINITIONS

ROLES = ("owner", "admin", "staff", "viewer")

# Roles that can be handed out through an invitation
INVITABLE_ROLES = ("admin", "staff", "viewer")

_ALL = {code for code, _, _, _ in PERMISSION_DEFINITIONS}
_VIEW = {code for code in _ALL if code.startswith("VIEW_")}

DEFAULT_ROLE_PERMISSIONS = {
    "owner": set(_ALL),
    "admin": _ALL - {"MANAGE_BILLING", "DELETE_STORE"},
    "staff": _VIEW | {"MANAGE_CATALOG", "MANAGE_ORDERS", "MANAGE_CUSTOMERS"},
    "viewer": set(_VIEW),
}
