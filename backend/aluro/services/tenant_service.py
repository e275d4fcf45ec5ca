"""
Multi-Tenant Service: tenant lifecycle, validation and scoping helpers.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.tenant_id set (by @require_auth)
2. Row ids coming from client input are validated against g.tenant_id
   before they are linked to anything (require_tenant_row)
3. Cross-tenant access attempts are logged as security events and
   reported as "not found" so other tenants' rows are never revealed

USAGE:
    from aluro.services.tenant_service import require_tenant_row

    category = require_tenant_row(Category, payload["category_id"], g.tenant_id, label="Category")
"""

from __future__ import annotations

import re

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..models import Category, Tenant, TenantUser, User
from ..slugs import clean_slug
from ..validation import (
    ConflictError,
    FieldErrors,
    ValidationError,
    is_valid_email,
    normalize_email,
)
from .permission_service import log_security_event


RESERVED_SUBDOMAINS = {
    "www", "admin", "api", "app", "platform", "mail", "static", "assets",
    "billing", "dashboard", "help", "support", "status", "login", "signup",
}

HOSTNAME_RE = re.compile(r"^(?=.{4,253}$)(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))+$")

DEFAULT_CATEGORIES = [
    {"name": "Electronics", "slug": "electronics", "description": "Electronic devices and gadgets", "sort_order": 1},
    {"name": "Clothing", "slug": "clothing", "description": "Fashion and apparel", "sort_order": 2},
    {"name": "Home & Garden", "slug": "home-garden", "description": "Home improvement and garden supplies", "sort_order": 3},
]

DEFAULT_SETTINGS = {
    "currency": "USD",
    "timezone": "UTC",
    "theme": "default",
}


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def get_current_tenant_id() -> int:
    """
    Current tenant id from Flask g.

    SECURITY: Raises TenantAccessError if no tenant context is set.
    """
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise TenantAccessError("Tenant context not established")
    return tenant_id


def _log_cross_tenant_attempt(reason: str, tenant_id: int | None) -> None:
    user = getattr(g, "current_user", None) if has_request_context() else None
    log_security_event(
        user_id=user.id if user else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=request.path if has_request_context() else None,
        action=request.method if has_request_context() else None,
        reason=reason,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent") if has_request_context() else None,
        tenant_id=tenant_id,
    )


def require_tenant_row(model, row_id, tenant_id: int, label: str | None = None):
    """
    Load `model` row `row_id` and require it to belong to tenant_id.

    Raises TenantAccessError("<Label> not found") both for missing rows and
    for rows of another tenant; the latter is logged.
    """
    label = label or model.__name__
    row = db.session.get(model, row_id) if row_id is not None else None

    if row is None:
        raise TenantAccessError(f"{label} not found")

    if row.tenant_id != tenant_id:
        _log_cross_tenant_attempt(
            f"{model.__name__} {row_id} belongs to tenant {row.tenant_id}, not {tenant_id}",
            tenant_id=tenant_id,
        )
        raise TenantAccessError(f"{label} not found")

    return row


# -- subdomains and domains --

def normalize_subdomain(value: str | None) -> str:
    return clean_slug(value).strip("-")


def validate_subdomain(value: str | None) -> str:
    subdomain = normalize_subdomain(value)
    if len(subdomain) < 3 or len(subdomain) > 63:
        raise ValidationError("Subdomain must be between 3 and 63 characters")
    if subdomain != (value or "").strip().lower():
        raise ValidationError("Subdomain may only contain lowercase letters, numbers and hyphens")
    if subdomain in RESERVED_SUBDOMAINS:
        raise ValidationError("Subdomain is reserved")
    return subdomain


def is_subdomain_available(subdomain: str) -> bool:
    return db.session.query(Tenant.id).filter(Tenant.subdomain == subdomain).first() is None


def check_subdomain(value: str | None) -> dict:
    try:
        subdomain = validate_subdomain(value)
    except ValidationError as e:
        return {"subdomain": normalize_subdomain(value), "available": False, "error": str(e)}
    return {"subdomain": subdomain, "available": is_subdomain_available(subdomain)}


def validate_domain(value: str | None) -> str:
    domain = (value or "").strip().lower()
    domain = re.sub(r"^https?://", "", domain).rstrip("/")
    if not HOSTNAME_RE.match(domain):
        raise ValidationError("Invalid domain name")
    platform_domain = current_app.config.get("PRODUCTION_DOMAIN", "")
    if platform_domain and (domain == platform_domain or domain.endswith("." + platform_domain)):
        raise ValidationError("Use your store subdomain instead of a platform domain")
    return domain


def set_custom_domain(tenant: Tenant, value: str | None) -> Tenant:
    """Set (or clear with an empty value) the tenant's custom domain."""
    if not value:
        tenant.domain = None
        db.session.commit()
        return tenant

    domain = validate_domain(value)
    taken = db.session.query(Tenant.id).filter(Tenant.domain == domain, Tenant.id != tenant.id).first()
    if taken:
        raise ConflictError("Domain is already in use")
    tenant.domain = domain
    db.session.commit()
    current_app.logger.info("Tenant %s custom domain set to %s", tenant.id, domain)
    return tenant


def store_url(tenant: Tenant) -> str:
    """Public storefront URL for a tenant."""
    if tenant.domain:
        return f"https://{tenant.domain}"
    if current_app.config.get("ENV") == "production":
        return f"https://{tenant.subdomain}.{current_app.config['PRODUCTION_DOMAIN']}"
    return f"http://{tenant.subdomain}.{current_app.config['PLATFORM_DOMAIN']}"


def tenant_to_dict(tenant: Tenant) -> dict:
    data = tenant.to_dict()
    data["store_url"] = store_url(tenant)
    return data


# -- lifecycle --

def get_owned_tenant(user_id: int) -> Tenant | None:
    return db.session.query(Tenant).filter(Tenant.owner_id == user_id).order_by(Tenant.id.asc()).first()


def create_tenant(*, owner: User, name: str, subdomain: str, contact_email: str | None = None,
                  description: str | None = None, commit: bool = True) -> tuple[Tenant, bool]:
    """
    Create a store for `owner`.

    Returns (tenant, created). A user that already owns a store gets that
    store back with created=False.

    Creates the owner membership, the default categories and default
    settings in the same transaction.
    """
    existing = get_owned_tenant(owner.id)
    if existing:
        return existing, False

    errors = FieldErrors()
    payload = {"name": name, "subdomain": subdomain, "contact_email": contact_email}
    errors.require(payload, "name", "Store name")
    errors.require(payload, "subdomain", "Subdomain")
    errors.raise_if_any("Missing required fields")

    name = name.strip()
    if len(name) < 2 or len(name) > 100:
        raise ValidationError("Store name must be between 2 and 100 characters")

    contact_email = normalize_email(contact_email) or owner.email
    if not is_valid_email(contact_email):
        raise ValidationError("Invalid contact email")

    subdomain = validate_subdomain(subdomain)
    if not is_subdomain_available(subdomain):
        raise ConflictError("Subdomain is already taken")

    tenant = Tenant(
        name=name,
        subdomain=subdomain,
        description=(description or "").strip() or None,
        contact_email=contact_email,
        owner_id=owner.id,
        settings=dict(DEFAULT_SETTINGS),
        theme_config={},
        plan="starter",
        is_active=True,
    )
    db.session.add(tenant)
    db.session.flush()

    db.session.add(TenantUser(tenant_id=tenant.id, user_id=owner.id, role="owner", is_active=True))
    for category in DEFAULT_CATEGORIES:
        db.session.add(Category(tenant_id=tenant.id, is_active=True, **category))

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    current_app.logger.info("Created tenant %s (%s) for user %s", tenant.id, tenant.subdomain, owner.id)
    return tenant, True


def list_user_tenants(user_id: int) -> list[dict]:
    """Active stores the user is an active member of, with the member's role."""
    rows = (
        db.session.query(Tenant, TenantUser.role)
        .join(TenantUser, TenantUser.tenant_id == Tenant.id)
        .filter(
            TenantUser.user_id == user_id,
            TenantUser.is_active.is_(True),
            Tenant.is_active.is_(True),
        )
        .order_by(Tenant.created_at.desc(), Tenant.id.desc())
        .all()
    )
    out = []
    for tenant, role in rows:
        data = tenant_to_dict(tenant)
        data["role"] = role
        out.append(data)
    return out


def get_tenant_by_subdomain(subdomain: str, active_only: bool = True) -> Tenant | None:
    query = db.session.query(Tenant).filter(Tenant.subdomain == (subdomain or "").strip().lower())
    if active_only:
        query = query.filter(Tenant.is_active.is_(True))
    return query.first()


def validate_tenant_active(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise TenantAccessError("Store not found")
    if not tenant.is_active:
        raise TenantAccessError("Store is not active")
    return tenant


def set_tenant_active(tenant: Tenant, is_active: bool, reason: str = "Store deactivated") -> Tenant:
    """Activate/deactivate a store; deactivation ends every session working in it."""
    from . import session_service

    tenant.is_active = is_active
    db.session.commit()
    if not is_active:
        session_service.revoke_tenant_sessions(tenant.id, reason=reason)
    current_app.logger.info("Tenant %s is_active=%s", tenant.id, is_active)
    return tenant
