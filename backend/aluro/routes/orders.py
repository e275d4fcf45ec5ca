# Overview: Flask API routes for orders and line items; parses input and returns JSON responses.

"""
Order routes.

MULTI-TENANT: scoped to g.tenant_id; products, variants, customers and
discount codes referenced in a payload must belong to the same store.

SECURITY:
- Read operations require VIEW_ORDERS permission
- Create/edit/cancel require MANAGE_ORDERS permission
"""
from flask import Blueprint, request, g

from ..services import orders_service
from ..decorators import require_auth, require_permission
from . import json_body, page_args

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders():
    """
    Query params:
    - customer_id: int
    - financial_status: pending | paid | refunded | cancelled
    - fulfillment_status: unfulfilled | fulfilled | partial
    - search: order number or email
    - page, per_page
    """
    return orders_service.list_orders(
        g.tenant_id,
        customer_id=request.args.get("customer_id", type=int),
        financial_status=request.args.get("financial_status"),
        fulfillment_status=request.args.get("fulfillment_status"),
        search=request.args.get("search"),
        **page_args(),
    )


@orders_bp.post("")
@require_auth
@require_permission("MANAGE_ORDERS")
def create_order():
    return orders_service.create_order(g.tenant_id, json_body(), user_id=None), 201


@orders_bp.get("/stats")
@require_auth
@require_permission("VIEW_ORDERS")
def order_stats():
    return orders_service.get_order_stats(g.tenant_id)


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order(order_id: int):
    """Order with line items and customer."""
    return orders_service.get_order(g.tenant_id, order_id)


@orders_bp.put("/<int:order_id>")
@orders_bp.patch("/<int:order_id>")
@require_auth
@require_permission("MANAGE_ORDERS")
def update_order(order_id: int):
    return orders_service.update_order(g.tenant_id, order_id, json_body())


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("MANAGE_ORDERS")
def cancel_order(order_id: int):
    """Body: {"reason": "..."} (optional). Restocks tracked inventory once."""
    return orders_service.cancel_order(g.tenant_id, order_id, json_body().get("reason"))


@orders_bp.post("/<int:order_id>/line-items")
@require_auth
@require_permission("MANAGE_ORDERS")
def add_line_item(order_id: int):
    return orders_service.add_line_item(g.tenant_id, order_id, json_body()), 201


@orders_bp.put("/<int:order_id>/line-items/<int:line_item_id>")
@orders_bp.patch("/<int:order_id>/line-items/<int:line_item_id>")
@require_auth
@require_permission("MANAGE_ORDERS")
def update_line_item(order_id: int, line_item_id: int):
    return orders_service.update_line_item(g.tenant_id, order_id, line_item_id, json_body())


@orders_bp.delete("/<int:order_id>/line-items/<int:line_item_id>")
@require_auth
@require_permission("MANAGE_ORDERS")
def remove_line_item(order_id: int, line_item_id: int):
    return orders_service.remove_line_item(g.tenant_id, order_id, line_item_id)
