# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'tenant_id')


def _is_platform_admin() -> bool:
    return hasattr(g, 'current_user') and bool(g.current_user.is_platform_admin)


def _load_session() -> bool:
    """Validate the bearer token and populate g. Returns False when unauthenticated."""
    token = _bearer_token()
    if not token:
        return False

    context = session_service.validate_session(token)
    if not context:
        return False

    g.current_user = context.user
    g.tenant_id = context.tenant_id
    g.tenant_role = context.role
    g.session_context = context
    g.token = token
    return True


def require_user(f):
    """
    Require a signed-in user; tenant context is optional.

    Used by routes a user needs before owning or joining a store
    (profile, store creation, tenant switching, accepting an invitation).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _bearer_token():
            return jsonify({"error": "Authentication required"}), 401
        if not _load_session():
            return jsonify({"error": "Invalid or expired token"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The tenant the session is working in - REQUIRED
    - g.tenant_role: The caller's membership role in g.tenant_id (None for a
      platform admin working in a store they are not a member of)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired, idle or revoked token
    - User account deactivated
    Returns 403 if the session has no usable store (tenant deactivated,
    membership removed, or the user has no store yet).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _bearer_token():
            return jsonify({"error": "Authentication required"}), 401
        if not _load_session():
            return jsonify({"error": "Invalid or expired token"}), 401

        if g.tenant_id is None:
            permission_service.log_security_event(
                user_id=g.current_user.id,
                event_type="TENANT_CONTEXT_MISSING",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Session has no active store",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                tenant_id=None,
            )
            db.session.commit()
            return jsonify({"error": "No active store selected"}), 403

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission in the current tenant.

    MULTI-TENANT: Security events include tenant_id for tenant-scoped auditing.
    Platform admins pass every permission check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if _is_platform_admin():
                return f(*args, **kwargs)

            try:
                permission_service.require_permission(
                    user_id=g.current_user.id,
                    permission_code=permission_code,
                    tenant_id=g.tenant_id,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except PermissionDeniedError as e:
                db.session.commit()
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_platform_admin(f):
    """Require the authenticated user to be a platform admin (no tenant needed)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user'):
            return jsonify({"error": "Authentication required"}), 401
        if not g.current_user.is_platform_admin:
            permission_service.log_security_event(
                user_id=g.current_user.id,
                event_type="PLATFORM_ADMIN_REQUIRED",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Platform admin access required",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                tenant_id=getattr(g, 'tenant_id', None),
            )
            db.session.commit()
            return jsonify({"error": "Platform admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
