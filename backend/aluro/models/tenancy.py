from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Tenant(db.Model):
    """
    Multi-tenant root: every store on the platform is a Tenant.

    MULTI-TENANT: All catalog, order, customer, cart, discount, team and
    billing rows carry tenant_id and are only ever read through a
    tenant-scoped query (see services/tenant_database.py).

    settings holds operational options (currency, timezone, tax_rate_bps,
    low_stock_threshold, plugins, ...). theme_config holds colours and
    assets for the admin and storefront themes.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    subdomain = db.Column(db.String(63), nullable=False, unique=True, index=True)
    domain = db.Column(db.String(255), nullable=True, unique=True)
    description = db.Column(db.Text, nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)

    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.JSON, nullable=True)
    country = db.Column(db.String(2), nullable=True)
    admin_language = db.Column(db.String(5), nullable=False, default="en")
    store_language = db.Column(db.String(5), nullable=False, default="en")

    theme_config = db.Column(db.JSON, nullable=True)
    settings = db.Column(db.JSON, nullable=True)

    plan = db.Column(db.String(32), nullable=False, default="starter")
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_id])

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} subdomain={self.subdomain!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "subdomain": self.subdomain,
            "domain": self.domain,
            "description": self.description,
            "logo_url": self.logo_url,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "address": self.address,
            "country": self.country,
            "admin_language": self.admin_language,
            "store_language": self.store_language,
            "theme_config": self.theme_config or {},
            "settings": self.settings or {},
            "plan": self.plan,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TenantUser(db.Model):
    """Membership of a user in a tenant, with the role that drives permissions."""
    __tablename__ = "tenant_users"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_tenant_users_tenant_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # owner | admin | staff | viewer
    role = db.Column(db.String(16), nullable=False, default="staff")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("memberships", lazy=True))
    tenant = db.relationship("Tenant", backref=db.backref("members", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "full_name": self.user.full_name if self.user else None,
            "role": self.role,
            "is_active": self.is_active,
            "invited_by": self.invited_by,
            "invited_at": to_utc_z(self.invited_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "created_at": to_utc_z(self.created_at),
        }


class TenantInvitation(db.Model):
    """
    Pending team invitation. The acceptance token is stored hashed.

    status: pending | accepted | revoked. A pending invitation past
    expires_at is treated as expired.
    """
    __tablename__ = "tenant_invitations"
    __table_args__ = (
        db.Index("ix_tenant_invitations_tenant_email", "tenant_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="pending")

    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant")

    @property
    def is_expired(self) -> bool:
        return self.expires_at < utcnow()

    @property
    def is_open(self) -> bool:
        return self.status == "pending" and not self.is_expired

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "role": self.role,
            "status": "expired" if self.status == "pending" and self.is_expired else self.status,
            "invited_by": self.invited_by,
            "expires_at": to_utc_z(self.expires_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "created_at": to_utc_z(self.created_at),
        }


class TenantShippingSettings(db.Model):
    """Configured shipping methods for a tenant (one row per tenant)."""
    __tablename__ = "tenant_shipping_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True)
    shipping_methods = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )


class TenantPaymentSettings(db.Model):
    """Configured payment methods for a tenant (one row per tenant)."""
    __tablename__ = "tenant_payment_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True)
    payment_methods = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
