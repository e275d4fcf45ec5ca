# Overview: Flask API routes for categories and brands; parses input and returns JSON responses.

"""
Category and brand routes.

MULTI-TENANT: scoped to g.tenant_id; ids from another store are 404.

SECURITY:
- Read operations require VIEW_CATALOG permission
- Write operations require MANAGE_CATALOG permission
"""
from flask import Blueprint, request, g

from ..services import categories_service
from ..decorators import require_auth, require_permission
from . import json_body

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
brands_bp = Blueprint("brands", __name__, url_prefix="/api/brands")


@categories_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_categories():
    """Ordered by sort_order. Query params: status (all|active|inactive), search."""
    return categories_service.list_categories(
        g.tenant_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_category():
    return categories_service.create_category(g.tenant_id, json_body()), 201


@categories_bp.get("/check-slug")
@require_auth
@require_permission("VIEW_CATALOG")
def check_category_slug():
    return categories_service.check_category_slug(
        g.tenant_id, request.args.get("slug"), exclude_id=request.args.get("exclude_id", type=int)
    )


@categories_bp.post("/reorder")
@require_auth
@require_permission("MANAGE_CATALOG")
def reorder_categories():
    """Body: {"order": [{"id": 3, "sort_order": 1}, ...]}"""
    return categories_service.reorder_categories(g.tenant_id, json_body().get("order"))


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_category(category_id: int):
    return categories_service.get_category(g.tenant_id, category_id)


@categories_bp.put("/<int:category_id>")
@categories_bp.patch("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_category(category_id: int):
    return categories_service.update_category(g.tenant_id, category_id, json_body())


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_category(category_id: int):
    categories_service.delete_category(g.tenant_id, category_id)
    return {"message": "Category deleted"}


# -- brands --

@brands_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_brands():
    return categories_service.list_brands(
        g.tenant_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )


@brands_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_brand():
    return categories_service.create_brand(g.tenant_id, json_body()), 201


@brands_bp.get("/check-slug")
@require_auth
@require_permission("VIEW_CATALOG")
def check_brand_slug():
    return categories_service.check_brand_slug(
        g.tenant_id, request.args.get("slug"), exclude_id=request.args.get("exclude_id", type=int)
    )


@brands_bp.get("/<int:brand_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_brand(brand_id: int):
    return categories_service.get_brand(g.tenant_id, brand_id)


@brands_bp.put("/<int:brand_id>")
@brands_bp.patch("/<int:brand_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_brand(brand_id: int):
    return categories_service.update_brand(g.tenant_id, brand_id, json_body())


@brands_bp.delete("/<int:brand_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_brand(brand_id: int):
    categories_service.delete_brand(g.tenant_id, brand_id)
    return {"message": "Brand deleted"}
