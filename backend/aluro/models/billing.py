from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class BillingPlan(db.Model):
    """
    Platform subscription plan (not tenant-scoped).

    code is the stable identifier stored on Tenant.plan. Plans with
    price_cents == 0 are applied without a Stripe checkout.
    """
    __tablename__ = "billing_plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    # month | year
    interval = db.Column(db.String(8), nullable=False, default="month")
    stripe_price_id = db.Column(db.String(255), nullable=True, index=True)
    features = db.Column(db.JSON, nullable=True)
    is_recommended = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_free(self) -> bool:
        return self.price_cents == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "currency": self.currency,
            "interval": self.interval,
            "stripe_price_id": self.stripe_price_id,
            "features": self.features or [],
            "is_recommended": self.is_recommended,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Subscription(db.Model):
    """Tenant subscription mirrored from Stripe webhooks (one row per tenant)."""
    __tablename__ = "subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True)
    plan_code = db.Column(db.String(32), nullable=False)
    # active | trialing | past_due | canceled | incomplete ...
    status = db.Column(db.String(32), nullable=False, default="active")

    stripe_subscription_id = db.Column(db.String(255), nullable=True, unique=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True)
    stripe_price_id = db.Column(db.String(255), nullable=True)

    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("subscription", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "plan_code": self.plan_code,
            "status": self.status,
            "stripe_subscription_id": self.stripe_subscription_id,
            "stripe_price_id": self.stripe_price_id,
            "current_period_start": to_utc_z(self.current_period_start),
            "current_period_end": to_utc_z(self.current_period_end),
            "cancel_at_period_end": self.cancel_at_period_end,
            "canceled_at": to_utc_z(self.canceled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
