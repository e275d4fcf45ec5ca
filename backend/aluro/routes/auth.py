# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/aluro/routes/auth.py
"""
Authentication API routes.

MULTI-TENANT: a session works inside one store at a time. Login picks the
requested store (or the user's first one); /switch-tenant moves the
session into another store the user belongs to.

SECURITY FEATURES:
- Password strength validation on signup
- Failed logins recorded in security_events
- Session management with token-based auth
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import Tenant
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services import tenant_service
from ..services.auth_service import PasswordValidationError
from ..services.session_service import SessionError
from ..permissions import get_all_permission_codes
from ..decorators import require_user
from . import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _context_payload(user, tenant_id: int | None) -> dict:
    """User, available stores, current store and permissions for the admin UI."""
    if user.is_platform_admin:
        permissions = get_all_permission_codes()
    else:
        permissions = permission_service.get_user_permissions(user.id, tenant_id)
    membership = permission_service.get_membership(user.id, tenant_id)
    current = db.session.get(Tenant, tenant_id) if tenant_id else None
    return {
        "user": user.to_dict(),
        "tenants": tenant_service.list_user_tenants(user.id),
        "tenant_id": tenant_id,
        "tenant": tenant_service.tenant_to_dict(current) if current else None,
        "role": membership.role if membership else None,
        "permissions": sorted(permissions),
    }


@auth_bp.post("/signup")
def signup_route():
    """
    Create an account and, when store_name/subdomain are given, its store.

    Account and store are created in one transaction; a taken subdomain
    leaves no account behind.
    """
    data = json_body()
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    try:
        user = auth_service.create_user(email, password, full_name=data.get("full_name"), commit=False)
    except PasswordValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "errors": [{"field": "password", "message": str(e)}]}), 400

    tenant = None
    if data.get("store_name") or data.get("subdomain"):
        tenant, _ = tenant_service.create_tenant(
            owner=user,
            name=data.get("store_name") or "",
            subdomain=data.get("subdomain") or "",
            contact_email=data.get("contact_email"),
            description=data.get("description"),
            commit=False,
        )
    db.session.commit()

    session, token = session_service.create_session(
        user_id=user.id,
        tenant_id=tenant.id if tenant else None,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    body = _context_payload(user, session.tenant_id)
    body.update({"token": token, "session": session.to_dict(), "message": "Signup successful"})
    return jsonify(body), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: email, password, optional tenant_id.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email") or data.get("username")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(email, password)
        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource="/api/auth/login",
                action="LOGIN",
                reason=f"Invalid credentials for {str(email)[:128]}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.session.commit()
            return jsonify({"error": "Invalid credentials"}), 401

        try:
            session, token = session_service.create_session(
                user_id=user.id,
                tenant_id=data.get("tenant_id"),
                user_agent=user_agent,
                ip_address=ip_address,
            )
        except SessionError as e:
            return jsonify({"error": str(e)}), 404

        body = _context_payload(user, session.tenant_id)
        body.update({"token": token, "session": session.to_dict(), "message": "Login successful"})
        return jsonify(body), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_user
def logout_route():
    """Revoke the caller's session token."""
    session_service.revoke_session(g.token, reason="User logout")
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="LOGOUT",
        success=True,
        resource="/api/auth/logout",
        action="LOGOUT",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        tenant_id=g.tenant_id,
    )
    db.session.commit()
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_user
def me_route():
    """Current user, stores, active store, role and permissions."""
    return jsonify(_context_payload(g.current_user, g.tenant_id)), 200


@auth_bp.post("/switch-tenant")
@require_user
def switch_tenant_route():
    """
    Move the session into another store.

    SECURITY: the user must be an active member of the target store
    (platform admins may enter any active store). Unknown and foreign
    stores are both reported as 404.
    """
    data = json_body()
    tenant_id = data.get("tenant_id")
    if not isinstance(tenant_id, int) or isinstance(tenant_id, bool):
        return jsonify({"error": "tenant_id must be an integer"}), 400

    try:
        session = session_service.switch_tenant(g.session_context.session, tenant_id)
    except SessionError as e:
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="CROSS_TENANT_ACCESS_DENIED",
            success=False,
            resource="/api/auth/switch-tenant",
            action="SWITCH_TENANT",
            reason=f"Not a member of tenant {tenant_id}",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            tenant_id=g.tenant_id,
        )
        db.session.commit()
        return jsonify({"error": str(e)}), 404

    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="TENANT_SWITCHED",
        success=True,
        resource="/api/auth/switch-tenant",
        action="SWITCH_TENANT",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        tenant_id=session.tenant_id,
    )
    db.session.commit()
    return jsonify(_context_payload(g.current_user, session.tenant_id)), 200


@auth_bp.post("/change-password")
@require_user
def change_password_route():
    """Change password; every other session of the user is revoked."""
    data = json_body()
    try:
        auth_service.change_password(g.current_user, data.get("current_password") or "", data.get("new_password") or "")
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400

    session_service.revoke_all_user_sessions(
        g.current_user.id, reason="Password changed", keep_session_id=g.session_context.session.id
    )
    return jsonify({"message": "Password changed"}), 200
