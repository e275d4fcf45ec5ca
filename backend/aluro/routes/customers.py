# Overview: Flask API routes for customers; parses input and returns JSON responses.

"""
Customer routes.

MULTI-TENANT: scoped to g.tenant_id; emails are unique per store only.

SECURITY:
- Read operations require VIEW_CUSTOMERS permission
- Write operations require MANAGE_CUSTOMERS permission
"""
from flask import Blueprint, request, g

from ..services import customers_service
from ..decorators import require_auth, require_permission
from . import json_body, page_args

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers():
    """Query params: search (email, first or last name), page, per_page."""
    return customers_service.list_customers(g.tenant_id, search=request.args.get("search"), **page_args())


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer():
    return customers_service.create_customer(g.tenant_id, json_body()), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer(customer_id: int):
    """Customer with order history."""
    return customers_service.get_customer(g.tenant_id, customer_id)


@customers_bp.put("/<int:customer_id>")
@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer(customer_id: int):
    return customers_service.update_customer(g.tenant_id, customer_id, json_body())


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def delete_customer(customer_id: int):
    customers_service.delete_customer(g.tenant_id, customer_id)
    return {"message": "Customer deleted"}
