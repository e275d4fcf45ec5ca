# Overview: Flask API routes for store (tenant) lifecycle; parses input and returns JSON responses.

"""
Store routes.

MULTI-TENANT: /current acts on g.tenant_id only. Creating a store moves
the caller's session into it.

SECURITY:
- Store creation and listing need a signed-in user only
- Deleting (deactivating) the store requires DELETE_STORE (owners)
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..models import Tenant
from ..services import session_service, tenant_service
from ..decorators import require_user, require_auth, require_permission
from . import json_body

tenants_bp = Blueprint("tenants", __name__, url_prefix="/api/tenants")


@tenants_bp.get("")
@require_user
def list_tenants():
    """Stores the caller is an active member of, with their role."""
    items = tenant_service.list_user_tenants(g.current_user.id)
    return {"items": items, "count": len(items)}


@tenants_bp.post("")
@require_user
def create_tenant():
    """
    Create a store owned by the caller.

    A caller who already owns a store gets it back with 200 instead of a
    second one (201 on creation).
    """
    data = json_body()
    tenant, created = tenant_service.create_tenant(
        owner=g.current_user,
        name=data.get("name") or "",
        subdomain=data.get("subdomain") or "",
        contact_email=data.get("contact_email"),
        description=data.get("description"),
    )
    session_service.switch_tenant(g.session_context.session, tenant.id)
    return {"tenant": tenant_service.tenant_to_dict(tenant), "created": created}, 201 if created else 200


@tenants_bp.get("/check-subdomain")
def check_subdomain():
    """Public availability check used by the signup form."""
    return tenant_service.check_subdomain(request.args.get("subdomain"))


@tenants_bp.get("/current")
@require_auth
def current_tenant():
    tenant = db.session.get(Tenant, g.tenant_id)
    data = tenant_service.tenant_to_dict(tenant)
    data["role"] = g.tenant_role
    return data


@tenants_bp.delete("/current")
@require_auth
@require_permission("DELETE_STORE")
def delete_current_tenant():
    """Deactivate the store; every session working in it is revoked."""
    tenant = db.session.get(Tenant, g.tenant_id)
    tenant_service.set_tenant_active(tenant, False, reason="Store deleted by owner")
    return {"message": "Store deleted", "tenant_id": tenant.id}
