# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/aluro/routes/products.py
"""
Product and variant management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's store.
The tenant_id is derived from g.tenant_id (set by @require_auth).

SECURITY: All routes require authentication.
- Read operations require VIEW_CATALOG permission
- Write operations require MANAGE_CATALOG permission
"""
import json

from flask import Blueprint, Response, request, g

from ..services import import_service, products_service, variants_service
from ..decorators import require_auth, require_permission
from ..validation import ValidationError
from . import bool_arg, json_body, page_args

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - status: all | active | inactive
    - product_type: single | variable | digital
    - category_id, brand_id: int
    - is_featured: bool
    - search: matches name and description
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        g.tenant_id,
        status=request.args.get("status"),
        product_type=request.args.get("product_type"),
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
        is_featured=bool_arg("is_featured"),
        search=request.args.get("search"),
        **page_args(),
    )


@products_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_product():
    return products_service.create_product(g.tenant_id, json_body()), 201


@products_bp.get("/stats")
@require_auth
@require_permission("VIEW_CATALOG")
def product_stats():
    return products_service.get_product_stats(g.tenant_id)


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_CATALOG")
def low_stock():
    return products_service.list_low_stock(g.tenant_id, limit=request.args.get("limit", type=int))


@products_bp.get("/check-slug")
@require_auth
@require_permission("VIEW_CATALOG")
def check_slug():
    return products_service.check_product_slug(
        g.tenant_id,
        request.args.get("slug"),
        exclude_id=request.args.get("exclude_id", type=int),
    )


# -- CSV import --

@products_bp.get("/import/fields")
@require_auth
@require_permission("MANAGE_CATALOG")
def import_fields():
    return {
        "fields": [f.to_dict() for f in import_service.PRODUCT_IMPORT_FIELDS],
        "max_rows": import_service.MAX_IMPORT_ROWS,
    }


@products_bp.get("/import/template")
@require_auth
@require_permission("MANAGE_CATALOG")
def import_template():
    return Response(
        import_service.template_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=product-import-template.csv"},
    )


@products_bp.post("/import")
@require_auth
@require_permission("MANAGE_CATALOG")
def import_products():
    """
    Import products from a CSV upload or JSON rows.

    multipart: file=<.csv>, mappings=<JSON object column -> field> (optional)
    JSON: {"csv": "<text>"} or {"rows": [{column: value}]}, "mappings" (optional)
    ?dry_run=true validates without inserting.
    """
    dry_run = bool_arg("dry_run") or False
    if "file" in request.files:
        upload = request.files["file"]
        if not (upload.filename or "").lower().endswith(".csv"):
            raise ValidationError("Only .csv files can be imported")
        try:
            text = upload.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc
        raw_mappings = request.form.get("mappings")
        try:
            mappings = json.loads(raw_mappings) if raw_mappings else None
        except ValueError as exc:
            raise ValidationError("mappings must be a JSON object") from exc
        rows = import_service.parse_csv(text)["rows"]
    else:
        data = json_body()
        mappings = data.get("mappings")
        if data.get("csv") is not None:
            rows = import_service.parse_csv(data["csv"])["rows"]
        else:
            rows = data.get("rows")

    result = import_service.import_products(g.tenant_id, rows, mappings, dry_run=dry_run)
    return result, 200 if dry_run else 201


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product(product_id: int):
    """MULTI-TENANT: a product of another store is reported as 404."""
    return products_service.get_product(g.tenant_id, product_id)


@products_bp.put("/<int:product_id>")
@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_product(product_id: int):
    return products_service.update_product(g.tenant_id, product_id, json_body())


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_product(product_id: int):
    products_service.delete_product(g.tenant_id, product_id)
    return {"message": "Product deleted"}


# -- variants --

@products_bp.get("/<int:product_id>/variants")
@require_auth
@require_permission("VIEW_CATALOG")
def list_variants(product_id: int):
    items = variants_service.list_variants(g.tenant_id, product_id, active_only=bool(bool_arg("active_only")))
    return {"items": items, "count": len(items)}


@products_bp.post("/<int:product_id>/variants")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_variant(product_id: int):
    return variants_service.create_variant(g.tenant_id, product_id, json_body()), 201


@products_bp.post("/variants/preview")
@require_auth
@require_permission("VIEW_CATALOG")
def preview_variants():
    """Combinations the given options would produce, without saving anything."""
    options = json_body().get("options")
    combinations = variants_service.generate_variant_combinations(options)
    return {"combinations": combinations, "count": len(combinations)}


@products_bp.post("/<int:product_id>/variants/generate")
@require_auth
@require_permission("MANAGE_CATALOG")
def generate_variants(product_id: int):
    """
    Body: {"options": [{"name": "Size", "values": ["S", "M"]}, ...],
           "defaults": {...}, "prune": false}
    """
    data = json_body()
    return variants_service.generate_variants(
        g.tenant_id,
        product_id,
        data.get("options"),
        defaults=data.get("defaults"),
        prune=bool(data.get("prune", False)),
    )


@products_bp.put("/<int:product_id>/variants/<int:variant_id>")
@products_bp.patch("/<int:product_id>/variants/<int:variant_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_variant(product_id: int, variant_id: int):
    return variants_service.update_variant(g.tenant_id, product_id, variant_id, json_body())


@products_bp.delete("/<int:product_id>/variants/<int:variant_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_variant(product_id: int, variant_id: int):
    variants_service.delete_variant(g.tenant_id, product_id, variant_id)
    return {"message": "Variant deleted"}
