# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and Security Event Logging with Multi-Tenant Support

MULTI-TENANT: Permissions come from the caller's membership role in the
current tenant (TenantUser.role). Security events carry tenant_id.

DESIGN PRINCIPLES:
- Fail closed: no membership or an inactive membership grants nothing
- Log denials only: permission grants are not logged
- Platform admins are checked in the decorators, not here
"""

from flask import g, has_request_context
from sqlalchemy import inspect

from ..extensions import db
from ..models import SecurityEvent, TenantUser
from ..permissions import get_role_permissions


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    tenant_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event to the current transaction (flushed, not committed).

    The caller commits. Denials that end in an error response are rolled back
    with the caller's work; the error handlers write them again through
    persist_security_events().

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGOUT
    - TENANT_SWITCHED
    - TENANT_CONTEXT_MISSING
    - CROSS_TENANT_ACCESS_DENIED
    - PLATFORM_ADMIN_REQUIRED
    """
    fields = dict(
        user_id=user_id,
        tenant_id=tenant_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )
    event = SecurityEvent(**fields)
    db.session.add(event)
    db.session.flush()
    if has_request_context():
        g.setdefault("security_events", []).append((event, fields))
    return event


def persist_security_events() -> int:
    """
    Re-add this request's security events that a rollback discarded, and commit.

    Call only after db.session.rollback(); returns the number written.
    """
    if not has_request_context():
        return 0
    lost = [fields for event, fields in g.pop("security_events", []) if inspect(event).transient]
    if not lost:
        return 0
    db.session.add_all([SecurityEvent(**fields) for fields in lost])
    db.session.commit()
    return len(lost)


def get_membership(user_id: int, tenant_id: int | None) -> TenantUser | None:
    """Active membership of user in tenant, or None."""
    if tenant_id is None:
        return None
    return db.session.query(TenantUser).filter_by(
        user_id=user_id,
        tenant_id=tenant_id,
        is_active=True,
    ).first()


def get_user_permissions(user_id: int, tenant_id: int | None) -> set[str]:
    """Permission codes the user holds inside tenant_id."""
    membership = get_membership(user_id, tenant_id)
    if not membership:
        return set()
    return get_role_permissions(membership.role)


def user_has_permission(user_id: int, tenant_id: int | None, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id, tenant_id)


def require_permission(
    user_id: int,
    permission_code: str,
    tenant_id: int | None,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError (and log the denial) if the user lacks the
    permission in the given tenant.
    """
    if user_has_permission(user_id, tenant_id, permission_code):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        tenant_id=tenant_id,
    )
    raise PermissionDeniedError(f"Missing permission: {permission_code}")
