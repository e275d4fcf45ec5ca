from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


DISCOUNT_TYPES = ("percentage", "fixed_amount", "free_shipping")


class Discount(db.Model):
    """
    Discount code.

    type values:
    - percentage: value is basis points (1000 = 10%)
    - fixed_amount: value is cents off the subtotal
    - free_shipping: value is ignored (stored as 0)

    code is stored upper-case and is unique per tenant.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_discounts_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False, default=0)

    minimum_purchase_cents = db.Column(db.Integer, nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def is_in_window(self, at=None) -> bool:
        at = at or utcnow()
        if self.starts_at and at < self.starts_at:
            return False
        if self.ends_at and at > self.ends_at:
            return False
        return True

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "value": self.value,
            "minimum_purchase_cents": self.minimum_purchase_cents,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
