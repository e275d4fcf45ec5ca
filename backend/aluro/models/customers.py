from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Shopper record within a tenant.

    MULTI-TENANT: email is unique per tenant, not globally. The same person
    buying from two stores is two customers.

    orders_count / total_spent_cents / last_order_at are aggregates kept up
    to date by orders_service when orders are placed or cancelled.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_customers_tenant_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    accepts_marketing = db.Column(db.Boolean, nullable=False, default=False)
    addresses = db.Column(db.JSON, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    orders_count = db.Column(db.Integer, nullable=False, default=0)
    last_order_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone": self.phone,
            "accepts_marketing": self.accepts_marketing,
            "addresses": self.addresses or [],
            "tags": self.tags or [],
            "notes": self.notes,
            "total_spent_cents": self.total_spent_cents,
            "orders_count": self.orders_count,
            "last_order_at": to_utc_z(self.last_order_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
