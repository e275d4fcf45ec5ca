# Overview: Public storefront API; the store is resolved from the subdomain in the URL.

"""
Storefront routes.

MULTI-TENANT: /api/storefront/<subdomain>/... resolves an active tenant by
subdomain; unknown or inactive stores are 404. Carts are keyed by the
guest cart session id sent in the X-Cart-Session header.

SECURITY: public; only active products, variants and categories are
exposed, and checkout prices always come from the catalog.
"""
from flask import Blueprint, request

from ..services import cart_service, categories_service, products_service, settings_service, tenant_service
from ..validation import NotFoundError
from . import bool_arg, json_body, page_args

storefront_bp = Blueprint("storefront", __name__, url_prefix="/api/storefront/<subdomain>")

CART_SESSION_HEADER = "X-Cart-Session"


def _tenant_id(subdomain: str) -> int:
    tenant = tenant_service.get_tenant_by_subdomain(subdomain)
    if not tenant:
        raise NotFoundError("Store not found")
    return tenant.id


def _owner() -> dict:
    return cart_service.cart_owner(session_id=request.headers.get(CART_SESSION_HEADER))


@storefront_bp.get("")
def store_info(subdomain: str):
    """Public store profile, theme and checkout payment methods."""
    tenant = tenant_service.get_tenant_by_subdomain(subdomain)
    if not tenant:
        raise NotFoundError("Store not found")
    data = tenant_service.tenant_to_dict(tenant)
    data.pop("settings", None)
    data["currency"] = (tenant.settings or {}).get("currency") or "USD"
    data["theme"] = settings_service.get_theme_settings(tenant.id)
    data["payment_methods"] = settings_service.checkout_payment_methods(tenant.id)
    return data


@storefront_bp.get("/products")
def list_products(subdomain: str):
    """Active products. Query params: category_id, brand_id, is_featured, search, page, per_page."""
    return products_service.list_products(
        _tenant_id(subdomain),
        status="active",
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
        is_featured=bool_arg("is_featured"),
        search=request.args.get("search"),
        **page_args(),
    )


@storefront_bp.get("/products/<slug>")
def get_product(subdomain: str, slug: str):
    return products_service.get_product_by_slug(_tenant_id(subdomain), slug, active_only=True)


@storefront_bp.get("/categories")
def list_categories(subdomain: str):
    return categories_service.list_categories(_tenant_id(subdomain), status="active")


# -- cart --

@storefront_bp.get("/cart")
def get_cart(subdomain: str):
    return cart_service.get_cart(_tenant_id(subdomain), _owner())


@storefront_bp.post("/cart/items")
def add_cart_item(subdomain: str):
    """Body: {"product_id", "variant_id", "quantity", "properties"}"""
    data = json_body()
    return cart_service.add_item(
        _tenant_id(subdomain),
        _owner(),
        data.get("product_id"),
        quantity=data.get("quantity", 1),
        variant_id=data.get("variant_id"),
        properties=data.get("properties"),
    ), 201


@storefront_bp.patch("/cart/items/<int:item_id>")
def update_cart_item(subdomain: str, item_id: int):
    """Body: {"quantity": n}; 0 removes the line."""
    return cart_service.update_item(_tenant_id(subdomain), _owner(), item_id, json_body().get("quantity"))


@storefront_bp.delete("/cart/items/<int:item_id>")
def remove_cart_item(subdomain: str, item_id: int):
    return cart_service.remove_item(_tenant_id(subdomain), _owner(), item_id)


@storefront_bp.delete("/cart")
def clear_cart(subdomain: str):
    return cart_service.clear(_tenant_id(subdomain), _owner())


@storefront_bp.post("/shipping-quote")
def shipping_quote(subdomain: str):
    """Body: {"address": {"country": "US", "state": "CA"}} (optional)."""
    return cart_service.quote_shipping(_tenant_id(subdomain), _owner(), json_body().get("address"))


@storefront_bp.post("/checkout")
def checkout(subdomain: str):
    """
    Body: email, first_name, last_name, phone, shipping_method_id,
    shipping_address, billing_address, discount_code, notes, payment_method.
    """
    return cart_service.checkout(_tenant_id(subdomain), _owner(), json_body()), 201
