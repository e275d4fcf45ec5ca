"""
Categories and brands.

MULTI-TENANT: rows are read and written through TenantDatabase; parent ids
from client input are validated with require_tenant_row.

Deleting a category detaches its children and products instead of
cascading; deleting a brand detaches its products.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Brand, Category, Product
from ..slugs import check_slug_availability, clean_slug, generate_slug, is_valid_slug, slug_exists
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    is_valid_url,
    validate_payload,
)
from .tenant_database import TenantDatabase
from .tenant_service import require_tenant_row

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "slug", "description", "image_url", "parent_id",
        "sort_order", "is_active", "seo_title", "seo_description",
    },
    required_on_create={"name"},
)

BRAND_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "logo_url", "website_url", "is_active"},
    required_on_create={"name"},
)

STATUS_FILTERS = {"all": None, "active": True, "inactive": False}


def _status(status: str | None):
    if status and status not in STATUS_FILTERS:
        raise ValidationError("status must be one of: all, active, inactive")
    return STATUS_FILTERS.get(status or "all")


def _product_counts(tdb: TenantDatabase, column) -> dict[int, int]:
    rows = (
        tdb.query(Product)
        .with_entities(column, func.count(Product.id))
        .filter(column.isnot(None))
        .group_by(column)
        .all()
    )
    return {row_id: count for row_id, count in rows}


def _apply_slug(model, tenant_id: int, patch: dict, name: str | None, exclude_id: int | None) -> None:
    """Explicit slugs are sanitised; creates without one derive it from the name."""
    if patch.get("slug"):
        slug = clean_slug(patch["slug"]).strip("-")
        if not is_valid_slug(slug):
            raise ValidationError("Slug may only contain lowercase letters, numbers and hyphens")
    elif exclude_id is None:
        slug = generate_slug(name)
        if not slug:
            raise ValidationError("Slug could not be generated from the name; provide a slug")
    else:
        return
    if slug_exists(model, tenant_id, slug, exclude_id):
        raise ConflictError("Slug already exists")
    patch["slug"] = slug


def _require_name(patch: dict, creating: bool) -> None:
    if creating or "name" in patch:
        name = (patch.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required", errors=[{"field": "name", "message": "Name is required"}])
        patch["name"] = name


# -- categories --

def list_categories(tenant_id: int, *, status: str | None = None, search: str | None = None) -> dict:
    tdb = TenantDatabase(tenant_id)
    categories = tdb.get_categories(is_active=_status(status), search=search)
    counts = _product_counts(tdb, Product.category_id)
    items = []
    for category in categories:
        data = category.to_dict()
        data["product_count"] = counts.get(category.id, 0)
        items.append(data)
    return {"items": items, "count": len(items)}


def get_category(tenant_id: int, category_id: int) -> dict:
    tdb = TenantDatabase(tenant_id)
    category = tdb.get_category(category_id)
    if not category:
        raise NotFoundError("Category not found")
    data = category.to_dict()
    data["product_count"] = _product_counts(tdb, Product.category_id).get(category.id, 0)
    return data


def _check_parent(tdb: TenantDatabase, parent_id: int | None, category_id: int | None) -> None:
    """Parent must be in the tenant and must not be the category itself or one of its descendants."""
    if parent_id is None:
        return
    parent = require_tenant_row(Category, parent_id, tdb.tenant_id, label="Parent category")
    if category_id is None:
        return
    seen = set()
    node = parent
    while node is not None:
        if node.id == category_id:
            raise ValidationError("A category cannot be nested under itself or one of its subcategories")
        if node.id in seen:
            break
        seen.add(node.id)
        node = tdb.get_category(node.parent_id) if node.parent_id else None


def create_category(tenant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    _require_name(patch, creating=True)
    if patch.get("image_url") and not is_valid_url(patch["image_url"]):
        raise ValidationError("image_url must be a valid URL")
    _check_parent(tdb, patch.get("parent_id"), None)
    _apply_slug(Category, tenant_id, patch, patch["name"], None)

    category = tdb.create_category(patch)
    db.session.commit()
    current_app.logger.info("Created category %s (%s) in tenant %s", category.id, category.slug, tenant_id)
    return category.to_dict()


def update_category(tenant_id: int, category_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    category = tdb.get_category(category_id)
    if not category:
        raise NotFoundError("Category not found")

    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    _require_name(patch, creating=False)
    if patch.get("image_url") and not is_valid_url(patch["image_url"]):
        raise ValidationError("image_url must be a valid URL")
    if "parent_id" in patch:
        _check_parent(tdb, patch["parent_id"], category.id)
    _apply_slug(Category, tenant_id, patch, category.name, category.id)

    tdb.update_category(category.id, patch)
    db.session.commit()
    return category.to_dict()


def delete_category(tenant_id: int, category_id: int) -> None:
    tdb = TenantDatabase(tenant_id)
    category = tdb.get_category(category_id)
    if not category:
        raise NotFoundError("Category not found")

    tdb.query(Category).filter(Category.parent_id == category.id).update(
        {"parent_id": None}, synchronize_session=False
    )
    tdb.query(Product).filter(Product.category_id == category.id).update(
        {"category_id": None}, synchronize_session=False
    )
    db.session.expire_all()
    tdb.delete_category(category.id)
    db.session.commit()


def reorder_categories(tenant_id: int, entries) -> dict:
    """Apply [{"id": 3, "sort_order": 1}, ...]; every id must belong to the tenant."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError("order must be a non-empty list")

    tdb = TenantDatabase(tenant_id)
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError(f"order[{index}] must be an object")
        sort_order = entry.get("sort_order")
        if not isinstance(sort_order, int) or isinstance(sort_order, bool):
            raise ValidationError(f"order[{index}].sort_order must be an integer")
        category = tdb.get_category(entry.get("id"))
        if not category:
            raise NotFoundError("Category not found")
        category.sort_order = sort_order

    db.session.commit()
    return list_categories(tenant_id)


def check_category_slug(tenant_id: int, slug: str | None, exclude_id: int | None = None) -> dict:
    return check_slug_availability(Category, tenant_id, slug, exclude_id)


# -- brands --

def list_brands(tenant_id: int, *, status: str | None = None, search: str | None = None) -> dict:
    tdb = TenantDatabase(tenant_id)
    brands = tdb.get_brands(is_active=_status(status), search=search)
    counts = _product_counts(tdb, Product.brand_id)
    items = []
    for brand in brands:
        data = brand.to_dict()
        data["product_count"] = counts.get(brand.id, 0)
        items.append(data)
    return {"items": items, "count": len(items)}


def get_brand(tenant_id: int, brand_id: int) -> dict:
    tdb = TenantDatabase(tenant_id)
    brand = tdb.get_brand(brand_id)
    if not brand:
        raise NotFoundError("Brand not found")
    data = brand.to_dict()
    data["product_count"] = _product_counts(tdb, Product.brand_id).get(brand.id, 0)
    return data


def _check_brand_urls(patch: dict) -> None:
    for field in ("logo_url", "website_url"):
        if patch.get(field) and not is_valid_url(patch[field]):
            raise ValidationError(f"{field} must be a valid URL", errors=[{"field": field, "message": "Invalid URL"}])


def create_brand(tenant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    patch = validate_payload(model=Brand, payload=payload, policy=BRAND_POLICY, partial=False)
    _require_name(patch, creating=True)
    _check_brand_urls(patch)
    _apply_slug(Brand, tenant_id, patch, patch["name"], None)

    brand = tdb.create_brand(patch)
    db.session.commit()
    return brand.to_dict()


def update_brand(tenant_id: int, brand_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    brand = tdb.get_brand(brand_id)
    if not brand:
        raise NotFoundError("Brand not found")

    patch = validate_payload(model=Brand, payload=payload, policy=BRAND_POLICY, partial=True)
    _require_name(patch, creating=False)
    _check_brand_urls(patch)
    _apply_slug(Brand, tenant_id, patch, brand.name, brand.id)

    tdb.update_brand(brand.id, patch)
    db.session.commit()
    return brand.to_dict()


def delete_brand(tenant_id: int, brand_id: int) -> None:
    tdb = TenantDatabase(tenant_id)
    brand = tdb.get_brand(brand_id)
    if not brand:
        raise NotFoundError("Brand not found")

    tdb.query(Product).filter(Product.brand_id == brand.id).update(
        {"brand_id": None}, synchronize_session=False
    )
    db.session.expire_all()
    tdb.delete_brand(brand.id)
    db.session.commit()


def check_brand_slug(tenant_id: int, slug: str | None, exclude_id: int | None = None) -> dict:
    return check_slug_availability(Brand, tenant_id, slug, exclude_id)
