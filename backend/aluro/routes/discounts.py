# Overview: Flask API routes for discount codes; parses input and returns JSON responses.

"""
Discount code routes.

MULTI-TENANT: codes are unique per store; scoped to g.tenant_id.

SECURITY:
- Read operations and previews require VIEW_DISCOUNTS permission
- Write operations require MANAGE_DISCOUNTS permission
"""
from flask import Blueprint, request, g

from ..services import discounts_service
from ..decorators import require_auth, require_permission
from ..validation import ValidationError
from . import json_body, page_args

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("")
@require_auth
@require_permission("VIEW_DISCOUNTS")
def list_discounts():
    """Query params: status (all|active|inactive), type, search, page, per_page."""
    return discounts_service.list_discounts(
        g.tenant_id,
        status=request.args.get("status"),
        type=request.args.get("type"),
        search=request.args.get("search"),
        **page_args(),
    )


@discounts_bp.post("")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def create_discount():
    return discounts_service.create_discount(g.tenant_id, json_body()), 201


@discounts_bp.post("/preview")
@require_auth
@require_permission("VIEW_DISCOUNTS")
def preview_discount():
    """Body: {"code", "subtotal_cents", "shipping_cents"}; what the code would take off."""
    data = json_body()
    subtotal = data.get("subtotal_cents", 0)
    shipping = data.get("shipping_cents", 0)
    for label, value in (("subtotal_cents", subtotal), ("shipping_cents", shipping)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{label} must be a non-negative integer")
    return discounts_service.preview_discount(g.tenant_id, data.get("code") or "", subtotal, shipping)


@discounts_bp.get("/<int:discount_id>")
@require_auth
@require_permission("VIEW_DISCOUNTS")
def get_discount(discount_id: int):
    return discounts_service.get_discount(g.tenant_id, discount_id)


@discounts_bp.put("/<int:discount_id>")
@discounts_bp.patch("/<int:discount_id>")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def update_discount(discount_id: int):
    return discounts_service.update_discount(g.tenant_id, discount_id, json_body())


@discounts_bp.delete("/<int:discount_id>")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def delete_discount(discount_id: int):
    discounts_service.delete_discount(g.tenant_id, discount_id)
    return {"message": "Discount deleted"}
