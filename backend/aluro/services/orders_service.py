"""
Orders Service

MULTI-TENANT: orders, line items, customers, discounts and stock are all
read through TenantDatabase(tenant_id); ids from client input that point at
another tenant behave as missing.

Totals (all cents):
    subtotal = sum(line price x quantity)
    discount = discount code amount (free-shipping codes discount shipping)
    tax      = (subtotal - discount on goods) x tax_rate_bps / 10000
    total    = subtotal - discount + shipping + tax

Stock: tracked, physical products (or their variants) are decremented when
an order is placed and restocked once when it is cancelled.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import FINANCIAL_STATUSES, FULFILLMENT_STATUSES, Customer, Order, OrderSequence
from ..time_utils import utcnow
from ..validation import (
    MAX_RATE_BPS,
    ConflictError,
    NotFoundError,
    ValidationError,
    enforce_price_cents,
    is_valid_email,
    is_valid_phone,
    normalize_email,
    require_string_list,
)
from .concurrency import locked, retry_write
from .customers_service import find_or_create_customer
from .discounts_service import evaluate_discount
from .pagination import paginate
from .shipping_service import quote_for_method
from .tenant_database import TenantDatabase
from .tenant_service import require_tenant_row

ORDER_NUMBER_PREFIX = "ORD-"
MAX_LINE_QUANTITY = 10_000

ORDER_EDITABLE_FIELDS = {
    "financial_status", "fulfillment_status", "notes", "tags", "email", "phone",
    "shipping_address", "billing_address", "payment_reference", "cancel_reason",
}


def format_order_number(number: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{number:06d}"


def next_order_number(tenant_id: int) -> str:
    """
    Claim the tenant's next order number (ORD-000001, ORD-000002, ...).

    The counter row is bumped with an UPDATE ... SET next_number = next_number + 1
    inside the caller's transaction, so two concurrent checkouts cannot
    read the same value.
    """
    updated = (
        db.session.query(OrderSequence)
        .filter(OrderSequence.tenant_id == tenant_id)
        .update({OrderSequence.next_number: OrderSequence.next_number + 1}, synchronize_session=False)
    )
    if not updated:
        db.session.add(OrderSequence(tenant_id=tenant_id, next_number=2))
        db.session.flush()
        return format_order_number(1)

    claimed = (
        db.session.query(OrderSequence.next_number)
        .filter(OrderSequence.tenant_id == tenant_id)
        .scalar()
    ) - 1
    return format_order_number(claimed)


def _tax_rate_bps(tdb: TenantDatabase) -> int:
    rate = tdb.get_tenant_settings().get("tax_rate_bps") or 0
    if not isinstance(rate, int) or isinstance(rate, bool) or not 0 <= rate <= MAX_RATE_BPS:
        return 0
    return rate


def _quantity(value, label: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError(f"{label} must be a positive integer")
    if value > MAX_LINE_QUANTITY:
        raise ValidationError(f"{label} cannot exceed {MAX_LINE_QUANTITY}")
    return value


def _tracks_stock(product) -> bool:
    return product.track_inventory and product.product_type != "digital"


def resolve_line(tdb: TenantDatabase, product_id, variant_id, quantity: int) -> dict:
    """
    Snapshot a catalog item for an order line.

    Rejects inactive products/variants and insufficient stock (unless the
    product allows backorder). Returns the snapshot plus the rows it used.
    """
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ValidationError(f"{product.name} is not available")

    variant = None
    if product.product_type == "variable":
        if variant_id is None:
            raise ValidationError(f"Choose a variant of {product.name}")
        variant = tdb.get_product_variant(variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Variant not found")
        if not variant.is_active:
            raise ValidationError(f"{product.name} ({variant.title}) is not available")
    elif variant_id is not None:
        raise ValidationError(f"{product.name} has no variants")

    if _tracks_stock(product) and not product.allow_backorder:
        available = variant.inventory_quantity if variant else product.inventory_quantity
        if quantity > available:
            label = f"{product.name} ({variant.title})" if variant else product.name
            raise ValidationError(f"Insufficient stock for {label}: {available} available")

    price = variant.price_cents if variant else product.price_cents
    weight = variant.weight if variant and variant.weight is not None else product.weight
    return {
        "product": product,
        "variant": variant,
        "quantity": quantity,
        "price_cents": price,
        "weight": weight,
        "title": product.name,
        "variant_title": variant.title if variant else None,
        "sku": (variant.sku if variant else None) or product.sku,
    }


def _adjust_stock(line: dict, delta: int) -> None:
    """delta < 0 takes stock, delta > 0 returns it."""
    product = line["product"]
    if product is None or not _tracks_stock(product):
        return
    if line.get("variant") is not None:
        line["variant"].inventory_quantity += delta
    else:
        product.inventory_quantity += delta


def _clean_address(value, label: str):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{label} must be an object")
    return value


def create_order(tenant_id: int, payload: dict, *, user_id: int | None = None, before_commit=None) -> dict:
    """
    Place an order.

    payload:
        items: [{"product_id", "variant_id", "quantity"}]     (required)
        customer_id | email (+ first_name, last_name, phone)
        shipping_method_id, shipping_address, billing_address
        discount_code, notes, tags, payment_method, financial_status

    before_commit(tdb), if given, runs inside the order's transaction.
    """
    def _place():
        return _create_order(tenant_id, payload or {}, user_id=user_id, before_commit=before_commit)

    return retry_write(_place, label=f"Order placement in tenant {tenant_id}")


def _create_order(tenant_id: int, payload: dict, *, user_id: int | None, before_commit=None) -> dict:
    tdb = TenantDatabase(tenant_id)
    settings = tdb.get_tenant_settings()

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    # Repeated (product, variant) pairs become one line so stock is checked
    # against the combined quantity.
    requested: dict[tuple, int] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        quantity = _quantity(item.get("quantity", 1), f"items[{index}].quantity")
        key = (item.get("product_id"), item.get("variant_id"))
        requested[key] = requested.get(key, 0) + quantity

    lines = []
    for (product_id, variant_id), quantity in requested.items():
        quantity = _quantity(quantity, f"Quantity of product {product_id}")
        lines.append(resolve_line(tdb, product_id, variant_id, quantity))

    # customer
    if payload.get("customer_id") is not None:
        customer = require_tenant_row(Customer, payload["customer_id"], tenant_id, label="Customer")
    elif payload.get("email"):
        customer = find_or_create_customer(
            tdb,
            payload["email"],
            first_name=payload.get("first_name"),
            last_name=payload.get("last_name"),
            phone=payload.get("phone"),
            user_id=user_id,
        )
    else:
        raise ValidationError("customer_id or email is required", errors=[{"field": "email", "message": "Email is required"}])

    phone = (payload.get("phone") or "").strip() or customer.phone
    if phone and not is_valid_phone(phone):
        raise ValidationError("Invalid phone number")

    shipping_address = _clean_address(payload.get("shipping_address"), "shipping_address")
    billing_address = _clean_address(payload.get("billing_address"), "billing_address")

    subtotal = sum(line["price_cents"] * line["quantity"] for line in lines)
    shipping = quote_for_method(
        tenant_id,
        [{"price_cents": l["price_cents"], "quantity": l["quantity"], "weight": l["weight"]} for l in lines],
        payload.get("shipping_method_id"),
        shipping_address,
    )

    discount = None
    discount_cents = 0
    goods_discount = 0
    if payload.get("discount_code"):
        result = evaluate_discount(tdb, payload["discount_code"], subtotal, shipping)
        discount = result["discount"]
        discount_cents = result["amount_cents"]
        goods_discount = 0 if result["free_shipping"] else discount_cents

    tax = (subtotal - goods_discount) * _tax_rate_bps(tdb) // MAX_RATE_BPS
    total = subtotal - discount_cents + shipping + tax

    financial_status = payload.get("financial_status") or "pending"
    if financial_status not in ("pending", "paid"):
        raise ValidationError("New orders must be pending or paid")

    now = utcnow()
    order = tdb.create_order({
        "order_number": next_order_number(tenant_id),
        "customer_id": customer.id,
        "email": customer.email,
        "phone": phone,
        "currency": settings.get("currency") or "USD",
        "subtotal_cents": subtotal,
        "discount_cents": discount_cents,
        "shipping_cents": shipping,
        "tax_cents": tax,
        "total_cents": total,
        "financial_status": financial_status,
        "fulfillment_status": "unfulfilled",
        "shipping_address": shipping_address,
        "billing_address": billing_address,
        "notes": (payload.get("notes") or "").strip() or None,
        "tags": require_string_list(payload.get("tags"), "tags"),
        "discount_code": discount.code if discount else None,
        "shipping_method_id": payload.get("shipping_method_id"),
        "payment_method": payload.get("payment_method"),
        "processed_at": now if financial_status == "paid" else None,
    })

    for line in lines:
        tdb.create_order_line_item({
            "order_id": order.id,
            "product_id": line["product"].id,
            "product_variant_id": line["variant"].id if line["variant"] else None,
            "quantity": line["quantity"],
            "price_cents": line["price_cents"],
            "total_cents": line["price_cents"] * line["quantity"],
            "title": line["title"],
            "variant_title": line["variant_title"],
            "sku": line["sku"],
        })
        _adjust_stock(line, -line["quantity"])

    if discount:
        discount.usage_count += 1

    customer.orders_count += 1
    customer.total_spent_cents += total
    customer.last_order_at = now

    if before_commit is not None:
        before_commit(tdb)
    db.session.commit()
    current_app.logger.info("Created order %s in tenant %s (total %s cents)", order.order_number, tenant_id, total)
    return get_order(tenant_id, order.id)


def list_orders(tenant_id: int, *, customer_id: int | None = None, financial_status: str | None = None,
                fulfillment_status: str | None = None, search: str | None = None,
                page: int | None = None, per_page: int | None = None) -> dict:
    if financial_status and financial_status not in FINANCIAL_STATUSES:
        raise ValidationError(f"financial_status must be one of: {', '.join(FINANCIAL_STATUSES)}")
    if fulfillment_status and fulfillment_status not in FULFILLMENT_STATUSES:
        raise ValidationError(f"fulfillment_status must be one of: {', '.join(FULFILLMENT_STATUSES)}")
    tdb = TenantDatabase(tenant_id)
    query = tdb.orders_query(
        customer_id=customer_id,
        financial_status=financial_status,
        fulfillment_status=fulfillment_status,
        search=search,
    )
    return paginate(query, page, per_page, lambda o: o.to_dict())


def get_order(tenant_id: int, order_id: int) -> dict:
    order = TenantDatabase(tenant_id).get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order.to_dict(include_items=True)


def _load_order(tdb: TenantDatabase, order_id: int) -> Order:
    order = tdb.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _restock(tdb: TenantDatabase, order: Order) -> None:
    for item in order.line_items:
        product = tdb.get_product(item.product_id) if item.product_id else None
        variant = tdb.get_product_variant(item.product_variant_id) if item.product_variant_id else None
        _adjust_stock({"product": product, "variant": variant}, item.quantity)


def _cancel(tdb: TenantDatabase, order: Order, reason: str | None) -> None:
    if order.cancelled_at is not None:
        raise ConflictError("Order is already cancelled")

    _restock(tdb, order)
    order.financial_status = "cancelled"
    order.cancelled_at = utcnow()
    order.cancel_reason = (reason or "").strip()[:255] or None

    if order.customer is not None:
        order.customer.orders_count = max(order.customer.orders_count - 1, 0)
        order.customer.total_spent_cents = max(order.customer.total_spent_cents - order.total_cents, 0)


def update_order(tenant_id: int, order_id: int, payload: dict) -> dict:
    """
    Edit status and contact fields.

    processed_at is stamped when the order becomes paid and fulfilled_at
    when it becomes fulfilled; moving to "cancelled" goes through the
    cancel path (restock included).
    """
    payload = payload or {}
    unknown = set(payload) - ORDER_EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    tdb = TenantDatabase(tenant_id)
    order = _load_order(tdb, order_id)

    if "financial_status" in payload:
        status = payload["financial_status"]
        if status not in FINANCIAL_STATUSES:
            raise ValidationError(f"financial_status must be one of: {', '.join(FINANCIAL_STATUSES)}")
        if order.cancelled_at is not None and status != "cancelled":
            raise ConflictError("Cancelled orders cannot change payment status")
        if status == "cancelled" and order.cancelled_at is None:
            _cancel(tdb, order, payload.get("cancel_reason"))
        elif status != order.financial_status:
            order.financial_status = status
            if status == "paid" and order.processed_at is None:
                order.processed_at = utcnow()

    if "fulfillment_status" in payload:
        status = payload["fulfillment_status"]
        if status not in FULFILLMENT_STATUSES:
            raise ValidationError(f"fulfillment_status must be one of: {', '.join(FULFILLMENT_STATUSES)}")
        if status != order.fulfillment_status:
            order.fulfillment_status = status
            order.fulfilled_at = utcnow() if status == "fulfilled" else None

    if "email" in payload:
        email = normalize_email(payload["email"])
        if not is_valid_email(email):
            raise ValidationError("Invalid email address")
        order.email = email
    if "phone" in payload:
        phone = (payload["phone"] or "").strip() or None
        if phone and not is_valid_phone(phone):
            raise ValidationError("Invalid phone number")
        order.phone = phone
    if "notes" in payload:
        order.notes = (payload["notes"] or "").strip() or None
    if "tags" in payload:
        order.tags = require_string_list(payload["tags"], "tags")
    if "payment_reference" in payload:
        order.payment_reference = (payload["payment_reference"] or "").strip()[:255] or None
    for field in ("shipping_address", "billing_address"):
        if field in payload:
            setattr(order, field, _clean_address(payload[field], field))

    db.session.commit()
    return order.to_dict(include_items=True)


def cancel_order(tenant_id: int, order_id: int, reason: str | None = None) -> dict:
    tdb = TenantDatabase(tenant_id)
    order = _load_order(tdb, order_id)
    _cancel(tdb, order, reason)
    db.session.commit()
    current_app.logger.info("Cancelled order %s in tenant %s", order.order_number, tenant_id)
    return order.to_dict(include_items=True)


# -- line items --

def _recalculate(tdb: TenantDatabase, order: Order) -> None:
    subtotal = sum(item.total_cents for item in order.line_items)
    discount = order.discount_cents
    code = tdb.get_discount_by_code(order.discount_code, active_only=False) if order.discount_code else None
    goods_discount = 0
    if code is not None and code.type != "free_shipping":
        if code.type == "percentage":
            discount = subtotal * code.value // MAX_RATE_BPS
        else:
            discount = code.value
        discount = min(discount, subtotal)
        goods_discount = discount
    tax = (subtotal - goods_discount) * _tax_rate_bps(tdb) // MAX_RATE_BPS
    delta = (subtotal - discount + order.shipping_cents + tax) - order.total_cents

    order.subtotal_cents = subtotal
    order.discount_cents = discount
    order.tax_cents = tax
    order.total_cents += delta
    if order.customer is not None:
        order.customer.total_spent_cents = max(order.customer.total_spent_cents + delta, 0)


def _editable_order(tdb: TenantDatabase, order_id: int) -> Order:
    order = locked(tdb.query(Order).filter(Order.id == order_id)).first()
    if not order:
        raise NotFoundError("Order not found")
    if order.cancelled_at is not None:
        raise ConflictError("Cancelled orders cannot be edited")
    if order.fulfillment_status == "fulfilled":
        raise ConflictError("Fulfilled orders cannot be edited")
    return order


def add_line_item(tenant_id: int, order_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    order = _editable_order(tdb, order_id)

    quantity = _quantity((payload or {}).get("quantity", 1), "quantity")
    line = resolve_line(tdb, payload.get("product_id"), payload.get("variant_id"), quantity)
    price = payload.get("price_cents", line["price_cents"])
    enforce_price_cents({"price_cents": price}, "price_cents")

    item = tdb.create_order_line_item({
        "order_id": order.id,
        "product_id": line["product"].id,
        "product_variant_id": line["variant"].id if line["variant"] else None,
        "quantity": quantity,
        "price_cents": price,
        "total_cents": price * quantity,
        "title": line["title"],
        "variant_title": line["variant_title"],
        "sku": line["sku"],
    })
    _adjust_stock(line, -quantity)
    db.session.refresh(order)
    _recalculate(tdb, order)
    db.session.commit()
    current_app.logger.info("Added line item %s to order %s", item.id, order.order_number)
    return order.to_dict(include_items=True)


def update_line_item(tenant_id: int, order_id: int, line_item_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    order = _editable_order(tdb, order_id)
    item = tdb.get_order_line_item(line_item_id)
    if not item or item.order_id != order.id:
        raise NotFoundError("Line item not found")

    payload = payload or {}
    if "quantity" in payload:
        quantity = _quantity(payload["quantity"], "quantity")
        delta = quantity - item.quantity
        product = tdb.get_product(item.product_id) if item.product_id else None
        variant = tdb.get_product_variant(item.product_variant_id) if item.product_variant_id else None
        if delta > 0 and product is not None and _tracks_stock(product) and not product.allow_backorder:
            available = variant.inventory_quantity if variant else product.inventory_quantity
            if delta > available:
                raise ValidationError(f"Insufficient stock for {item.title}: {available} available")
        _adjust_stock({"product": product, "variant": variant}, -delta)
        item.quantity = quantity
    if "price_cents" in payload:
        enforce_price_cents(payload, "price_cents")
        if payload["price_cents"] is None:
            raise ValidationError("price_cents cannot be null")
        item.price_cents = payload["price_cents"]

    item.total_cents = item.price_cents * item.quantity
    _recalculate(tdb, order)
    db.session.commit()
    return order.to_dict(include_items=True)


def remove_line_item(tenant_id: int, order_id: int, line_item_id: int) -> dict:
    tdb = TenantDatabase(tenant_id)
    order = _editable_order(tdb, order_id)
    item = tdb.get_order_line_item(line_item_id)
    if not item or item.order_id != order.id:
        raise NotFoundError("Line item not found")
    if len(order.line_items) <= 1:
        raise ValidationError("An order must keep at least one line item; cancel the order instead")

    product = tdb.get_product(item.product_id) if item.product_id else None
    variant = tdb.get_product_variant(item.product_variant_id) if item.product_variant_id else None
    _adjust_stock({"product": product, "variant": variant}, item.quantity)

    order.line_items.remove(item)
    db.session.flush()
    _recalculate(tdb, order)
    db.session.commit()
    return order.to_dict(include_items=True)


# -- stats --

def get_order_stats(tenant_id: int) -> dict:
    """Counts by status plus revenue (paid orders) for the dashboard."""
    tdb = TenantDatabase(tenant_id)

    by_financial = dict(
        tdb.query(Order).with_entities(Order.financial_status, func.count(Order.id))
        .group_by(Order.financial_status).all()
    )
    by_fulfillment = dict(
        tdb.query(Order).with_entities(Order.fulfillment_status, func.count(Order.id))
        .filter(Order.cancelled_at.is_(None))
        .group_by(Order.fulfillment_status).all()
    )
    revenue = (
        tdb.query(Order).with_entities(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.financial_status == "paid").scalar()
    )
    total = sum(by_financial.values())
    paid = by_financial.get("paid", 0)

    return {
        "total": total,
        "financial_status": {s: by_financial.get(s, 0) for s in FINANCIAL_STATUSES},
        "fulfillment_status": {s: by_fulfillment.get(s, 0) for s in FULFILLMENT_STATUSES},
        "revenue_cents": int(revenue or 0),
        "average_order_cents": int(revenue or 0) // paid if paid else 0,
    }
