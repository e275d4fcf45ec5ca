from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


FINANCIAL_STATUSES = ("pending", "paid", "refunded", "cancelled")
FULFILLMENT_STATUSES = ("unfulfilled", "fulfilled", "partial")


class Order(db.Model):
    """
    Customer order.

    All money columns are cents. Line items snapshot title/variant/SKU/price
    at purchase time so catalog edits never rewrite history.

    total_cents = subtotal_cents - discount_cents + shipping_cents + tax_cents
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.Index("ix_orders_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    order_number = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    financial_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    fulfillment_status = db.Column(db.String(16), nullable=False, default="unfulfilled", index=True)

    billing_address = db.Column(db.JSON, nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=True)

    discount_code = db.Column(db.String(64), nullable=True)
    shipping_method_id = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_reference = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    line_items = db.relationship(
        "OrderLineItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLineItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} tenant_id={self.tenant_id}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "order_number": self.order_number,
            "email": self.email,
            "phone": self.phone,
            "currency": self.currency,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "financial_status": self.financial_status,
            "fulfillment_status": self.fulfillment_status,
            "billing_address": self.billing_address,
            "shipping_address": self.shipping_address,
            "notes": self.notes,
            "tags": self.tags or [],
            "discount_code": self.discount_code,
            "shipping_method_id": self.shipping_method_id,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "processed_at": to_utc_z(self.processed_at),
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["line_items"] = [li.to_dict() for li in self.line_items]
            data["customer"] = self.customer.to_dict() if self.customer else None
        return data


class OrderLineItem(db.Model):
    __tablename__ = "order_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # References may be cleared when the product is deleted; snapshot stays
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    title = db.Column(db.String(255), nullable=False)
    variant_title = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_cents": self.total_cents,
            "title": self.title,
            "variant_title": self.variant_title,
            "sku": self.sku,
            "created_at": to_utc_z(self.created_at),
        }


class OrderSequence(db.Model):
    """
    Per-tenant order number counter.

    next_number is claimed with an atomic UPDATE ... SET next_number + 1
    (see orders_service.next_order_number).
    """
    __tablename__ = "order_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
