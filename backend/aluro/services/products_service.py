"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations go through TenantDatabase(tenant_id).
- category_id / brand_id from client input are checked with require_tenant_row
- slugs and SKUs are unique per tenant
- variable products keep price and stock on their variants
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Brand, CartItem, Category, OrderLineItem, Product
from ..models import PRODUCT_TYPES
from ..slugs import check_slug_availability, clean_slug, generate_slug, is_valid_slug, slug_exists
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_non_negative,
    enforce_price_cents,
    require_string_list,
    validate_payload,
)
from .pagination import paginate
from .tenant_database import TenantDatabase
from .tenant_service import require_tenant_row
from .variants_service import format_price_range, get_inventory_summary, get_price_range

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "slug", "description", "short_description", "product_type", "sku",
        "price_cents", "compare_price_cents", "cost_price_cents",
        "track_inventory", "inventory_quantity", "allow_backorder",
        "weight", "dimensions", "category_id", "brand_id",
        "tags", "images", "seo_title", "seo_description",
        "is_active", "is_featured",
    },
    required_on_create={"name"},
)

MONEY_FIELDS = ("price_cents", "compare_price_cents", "cost_price_cents")

STATUS_FILTERS = {"all": None, "active": True, "inactive": False}


def _serialize(product: Product, threshold: int, currency: str | None) -> dict:
    data = product.to_dict()
    data["inventory"] = get_inventory_summary(product, threshold)
    data["price_range"] = get_price_range(product)
    data["price_display"] = format_price_range(product, currency)
    data["category_name"] = product.category.name if product.category else None
    data["brand_name"] = product.brand.name if product.brand else None
    return data


def list_products(
    tenant_id: int,
    *,
    status: str | None = None,
    product_type: str | None = None,
    category_id: int | None = None,
    brand_id: int | None = None,
    is_featured: bool | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing with optional pagination.

    Args:
        status: all | active | inactive (default all)
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Each item carries "inventory" (get_inventory_summary) and "price_range".
    """
    if status and status not in STATUS_FILTERS:
        raise ValidationError("status must be one of: all, active, inactive")
    if product_type and product_type not in PRODUCT_TYPES:
        raise ValidationError(f"product_type must be one of: {', '.join(PRODUCT_TYPES)}")

    tdb = TenantDatabase(tenant_id)
    query = tdb.products_query(
        category_id=category_id,
        brand_id=brand_id,
        is_active=STATUS_FILTERS.get(status or "all"),
        is_featured=is_featured,
        product_type=product_type,
        search=search,
    )
    threshold = tdb.get_low_stock_threshold()
    currency = tdb.get_tenant_settings().get("currency")
    return paginate(query, page, per_page, lambda p: _serialize(p, threshold, currency))


def get_product(tenant_id: int, product_id: int) -> dict:
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    data = _serialize(product, tdb.get_low_stock_threshold(), tdb.get_tenant_settings().get("currency"))
    data["variants"] = [v.to_dict() for v in product.variants]
    return data


def get_product_by_slug(tenant_id: int, slug: str, active_only: bool = False) -> dict:
    """Storefront lookup; inactive products (and variants) are hidden when active_only."""
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product_by_slug(slug)
    if not product or (active_only and not product.is_active):
        raise NotFoundError("Product not found")
    data = _serialize(product, tdb.get_low_stock_threshold(), tdb.get_tenant_settings().get("currency"))
    data["variants"] = [v.to_dict() for v in product.variants if v.is_active or not active_only]
    return data


def _resolve_slug(tenant_id: int, patch: dict, name: str | None, exclude_id: int | None) -> None:
    if "slug" in patch and patch["slug"]:
        slug = clean_slug(patch["slug"]).strip("-")
        if not is_valid_slug(slug):
            raise ValidationError("Slug may only contain lowercase letters, numbers and hyphens")
    elif exclude_id is None:
        slug = generate_slug(name)
        if not slug:
            raise ValidationError("Slug could not be generated from the name; provide a slug")
    else:
        return
    if slug_exists(Product, tenant_id, slug, exclude_id):
        raise ConflictError("Slug already exists")
    patch["slug"] = slug


def _check_sku(tdb: TenantDatabase, sku: str | None, exclude_id: int | None) -> None:
    if not sku:
        return
    existing = tdb.get_product_by_sku(sku)
    if (existing and existing.id != exclude_id) or tdb.get_variant_by_sku(sku):
        raise ConflictError("SKU already exists")


def _apply_type_rules(patch: dict, current: Product | None) -> None:
    """
    - variable: price 0, no compare/cost, stock 0 (prices live on variants)
    - digital: no inventory tracking, no backorder
    - single: price required; tracked stock must be >= 0
    """
    product_type = patch.get("product_type") or (current.product_type if current else "single")
    if product_type not in PRODUCT_TYPES:
        raise ValidationError(f"product_type must be one of: {', '.join(PRODUCT_TYPES)}")
    if current is None:
        patch["product_type"] = product_type

    if product_type == "variable":
        patch["price_cents"] = 0
        patch["compare_price_cents"] = None
        patch["cost_price_cents"] = None
        patch["inventory_quantity"] = 0
        return

    if product_type == "digital":
        patch["track_inventory"] = False
        patch["allow_backorder"] = False

    if current is None and patch.get("price_cents") is None:
        raise ValidationError("price_cents is required", errors=[{"field": "price_cents", "message": "Price is required"}])
    if current is not None and "price_cents" in patch and patch["price_cents"] is None:
        raise ValidationError("price_cents cannot be null")


def _prepare(tenant_id: int, tdb: TenantDatabase, payload: dict, current: Product | None) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=current is not None)

    if current is None or "name" in patch:
        name = (patch.get("name") or "").strip()
        if not name:
            raise ValidationError("Product name is required", errors=[{"field": "name", "message": "Name is required"}])
        patch["name"] = name

    enforce_price_cents(patch, *MONEY_FIELDS)
    enforce_non_negative(patch, "inventory_quantity", "weight")

    if "tags" in patch:
        patch["tags"] = require_string_list(patch["tags"], "tags")
    if "images" in patch:
        patch["images"] = require_string_list(patch["images"], "images", urls=True)
    if "dimensions" in patch and patch["dimensions"] is not None and not isinstance(patch["dimensions"], dict):
        raise ValidationError("dimensions must be an object")

    if patch.get("category_id") is not None:
        require_tenant_row(Category, patch["category_id"], tenant_id, label="Category")
    if patch.get("brand_id") is not None:
        require_tenant_row(Brand, patch["brand_id"], tenant_id, label="Brand")

    _resolve_slug(tenant_id, patch, patch.get("name") or (current.name if current else None),
                  current.id if current else None)
    _check_sku(tdb, patch.get("sku"), current.id if current else None)
    _apply_type_rules(patch, current)
    return patch


def prepare_new_product(tenant_id: int, tdb: TenantDatabase, payload: dict) -> dict:
    """Validated column values for a new product; nothing is written."""
    return _prepare(tenant_id, tdb, payload, current=None)


def create_product(tenant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    patch = prepare_new_product(tenant_id, tdb, payload)
    product = tdb.create_product(patch)
    db.session.commit()
    current_app.logger.info("Created product %s (%s) in tenant %s", product.id, product.slug, tenant_id)
    return get_product(tenant_id, product.id)


def update_product(tenant_id: int, product_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")

    patch = _prepare(tenant_id, tdb, payload, current=product)
    tdb.update_product(product.id, patch)
    db.session.commit()
    return get_product(tenant_id, product.id)


def delete_product(tenant_id: int, product_id: int) -> None:
    """
    Remove a product and its variants.

    Cart lines pointing at it are removed; order line items keep their
    title/SKU snapshot and lose the reference.
    """
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")

    tdb.query(CartItem).filter(CartItem.product_id == product.id).delete(synchronize_session=False)
    tdb.query(OrderLineItem).filter(OrderLineItem.product_id == product.id).update(
        {"product_id": None, "product_variant_id": None}, synchronize_session=False
    )
    tdb.delete_product(product.id)
    db.session.commit()
    current_app.logger.info("Deleted product %s in tenant %s", product_id, tenant_id)


def get_product_stats(tenant_id: int) -> dict:
    """Counts for the dashboard: total, active, inactive, low stock, out of stock."""
    tdb = TenantDatabase(tenant_id)
    threshold = tdb.get_low_stock_threshold()
    variant_stock, stock = tdb.stock_expression()

    total = tdb.query(Product).count()
    active = tdb.query(Product).filter(Product.is_active.is_(True)).count()

    tracked = (
        tdb.query(Product)
        .outerjoin(variant_stock, variant_stock.c.product_id == Product.id)
        .filter(Product.track_inventory.is_(True), Product.product_type != "digital")
    )
    low_stock = tracked.filter(stock > 0, stock < threshold).count()
    out_of_stock = tracked.filter(stock <= 0).count()

    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "low_stock": low_stock,
        "out_of_stock": out_of_stock,
        "low_stock_threshold": threshold,
    }


def list_low_stock(tenant_id: int, limit: int | None = None) -> dict:
    tdb = TenantDatabase(tenant_id)
    kwargs = {"limit": limit} if limit else {}
    products = tdb.get_low_stock_products(**kwargs)
    threshold = tdb.get_low_stock_threshold()
    items = []
    for product in products:
        data = product.to_dict()
        data["stock"] = tdb.product_stock(product)
        items.append(data)
    return {"items": items, "count": len(items), "threshold": threshold}


def check_product_slug(tenant_id: int, slug: str | None, exclude_id: int | None = None) -> dict:
    return check_slug_availability(Product, tenant_id, slug, exclude_id)

