# Overview: Platform-admin views across every tenant.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Tenant, TenantUser
from ..validation import NotFoundError
from .pagination import paginate
from .tenant_service import set_tenant_active, tenant_to_dict


def list_tenants(*, search: str | None = None, is_active: bool | None = None, plan: str | None = None,
                 page: int | None = None, per_page: int | None = None) -> dict:
    member_counts = dict(
        db.session.query(TenantUser.tenant_id, func.count(TenantUser.id))
        .filter(TenantUser.is_active.is_(True))
        .group_by(TenantUser.tenant_id)
        .all()
    )

    query = db.session.query(Tenant)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Tenant.name.ilike(term), Tenant.subdomain.ilike(term), Tenant.contact_email.ilike(term)))
    if is_active is not None:
        query = query.filter(Tenant.is_active.is_(is_active))
    if plan:
        query = query.filter(Tenant.plan == plan)
    query = query.order_by(Tenant.created_at.desc(), Tenant.id.desc())

    def serialize(tenant: Tenant) -> dict:
        data = tenant_to_dict(tenant)
        data["member_count"] = member_counts.get(tenant.id, 0)
        return data

    return paginate(query, page, per_page, serialize)


def set_active(tenant_id: int, is_active: bool) -> dict:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Store not found")
    set_tenant_active(tenant, is_active, reason="Store deactivated by platform admin")
    return tenant_to_dict(tenant)
