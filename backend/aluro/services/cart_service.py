# Overview: Storefront carts for guests (cart session id) and signed-in users.

from __future__ import annotations

import re

from ..extensions import db
from ..validation import NotFoundError, ValidationError
from .orders_service import MAX_LINE_QUANTITY, create_order, resolve_line
from .settings_service import checkout_payment_methods
from .shipping_service import calculate_shipping, get_shipping_methods
from .tenant_database import TenantDatabase

CART_SESSION_RE = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


def cart_owner(user_id: int | None = None, session_id: str | None = None) -> dict:
    """Keyword arguments identifying a cart for TenantDatabase cart calls."""
    if user_id is not None:
        return {"user_id": user_id}
    if not session_id or not CART_SESSION_RE.match(session_id):
        raise ValidationError("A valid cart session id is required")
    return {"session_id": session_id}


def _quantity(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError("quantity must be an integer")
    if value > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
    return value


def get_cart(tenant_id: int, owner: dict) -> dict:
    """
    Cart summary: lines with current catalog prices, subtotal and weight.

    Lines whose product was deactivated are reported with available=False
    and left out of the subtotal.
    """
    tdb = TenantDatabase(tenant_id)
    items, subtotal, weight, count = [], 0, 0.0, 0
    for item in tdb.get_cart_items(**owner):
        product, variant = item.product, item.variant
        available = bool(product and product.is_active and (variant is None or variant.is_active))
        price = (variant.price_cents if variant else product.price_cents) if product else 0
        unit_weight = (variant.weight if variant and variant.weight is not None else product.weight) if product else None

        data = item.to_dict()
        data.update({
            "title": product.name if product else None,
            "variant_title": variant.title if variant else None,
            "image_url": (variant.image_url if variant and variant.image_url else None)
            or ((product.images or [None])[0] if product else None),
            "price_cents": price,
            "line_total_cents": price * item.quantity,
            "weight": unit_weight,
            "available": available,
        })
        items.append(data)
        if available:
            subtotal += price * item.quantity
            weight += (unit_weight if unit_weight else 0.5) * item.quantity
            count += item.quantity

    currency = tdb.get_tenant_settings().get("currency") or "USD"
    return {
        "items": items,
        "item_count": count,
        "subtotal_cents": subtotal,
        "total_weight": round(weight, 3),
        "currency": currency,
    }


def add_item(tenant_id: int, owner: dict, product_id, quantity=1, variant_id=None, properties=None) -> dict:
    """Add to the cart; an existing line for the same product/variant grows by quantity."""
    quantity = _quantity(quantity)
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    if properties is not None and not isinstance(properties, dict):
        raise ValidationError("properties must be an object")

    tdb = TenantDatabase(tenant_id)
    existing = [
        i for i in tdb.get_cart_items(**owner)
        if i.product_id == product_id and i.product_variant_id == variant_id
    ]
    already = existing[0].quantity if existing else 0
    resolve_line(tdb, product_id, variant_id, already + quantity)

    tdb.add_to_cart(product_id, quantity, variant_id, properties=properties, **owner)
    db.session.commit()
    return get_cart(tenant_id, owner)


def update_item(tenant_id: int, owner: dict, item_id: int, quantity) -> dict:
    """Set a line's quantity; 0 or less removes the line."""
    quantity = _quantity(quantity)
    tdb = TenantDatabase(tenant_id)
    item = tdb.get_cart_item(item_id, **owner)
    if not item:
        raise NotFoundError("Cart item not found")

    if quantity <= 0:
        tdb.remove_from_cart(item.id, **owner)
    else:
        resolve_line(tdb, item.product_id, item.product_variant_id, quantity)
        tdb.update_cart_item(item.id, quantity, **owner)
    db.session.commit()
    return get_cart(tenant_id, owner)


def remove_item(tenant_id: int, owner: dict, item_id: int) -> dict:
    tdb = TenantDatabase(tenant_id)
    if not tdb.remove_from_cart(item_id, **owner):
        raise NotFoundError("Cart item not found")
    db.session.commit()
    return get_cart(tenant_id, owner)


def clear(tenant_id: int, owner: dict) -> dict:
    removed = TenantDatabase(tenant_id).clear_cart(**owner)
    db.session.commit()
    return {"removed": removed}


def cart_order_items(tenant_id: int, owner: dict) -> list[dict]:
    """Cart lines as order items ({product_id, variant_id, quantity})."""
    items = TenantDatabase(tenant_id).get_cart_items(**owner)
    return [
        {"product_id": i.product_id, "variant_id": i.product_variant_id, "quantity": i.quantity}
        for i in items
    ]


def quote_shipping(tenant_id: int, owner: dict, address: dict | None = None) -> dict:
    """Shipping options for the available lines of a cart."""
    if address is not None and not isinstance(address, dict):
        raise ValidationError("address must be an object")
    cart = get_cart(tenant_id, owner)
    items = [i for i in cart["items"] if i["available"]]
    if not items:
        raise ValidationError("Cart is empty")
    methods = get_shipping_methods(tenant_id)["shipping_methods"]
    return calculate_shipping(items, methods, address)


CHECKOUT_FIELDS = (
    "email", "first_name", "last_name", "phone", "shipping_method_id",
    "shipping_address", "billing_address", "discount_code", "notes",
)


def checkout(tenant_id: int, owner: dict, payload: dict, *, user_id: int | None = None) -> dict:
    """
    Turn the cart into a pending order and empty the cart.

    Only contact, address, shipping, discount and payment method fields are
    taken from the payload; prices and stock come from the catalog.
    """
    payload = payload or {}
    items = cart_order_items(tenant_id, owner)
    if not items:
        raise ValidationError("Cart is empty")
    if not payload.get("email"):
        raise ValidationError("Email is required", errors=[{"field": "email", "message": "Email is required"}])

    allowed_methods = {m["id"] for m in checkout_payment_methods(tenant_id)}
    payment_method = payload.get("payment_method")
    if payment_method not in allowed_methods:
        raise ValidationError("Payment method is not available")

    order_payload = {k: payload[k] for k in CHECKOUT_FIELDS if k in payload}
    order_payload.update({"items": items, "payment_method": payment_method, "financial_status": "pending"})
    return create_order(
        tenant_id,
        order_payload,
        user_id=user_id,
        before_commit=lambda tdb: tdb.clear_cart(**owner),
    )
