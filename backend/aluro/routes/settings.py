# Overview: Flask API routes for store settings; parses input and returns JSON responses.

"""
Store settings routes: store information, theme, payment methods, shipping
methods, plugins and custom domain.

MULTI-TENANT: every endpoint reads and writes g.tenant_id's settings.

SECURITY:
- Read operations require VIEW_SETTINGS permission
- Write operations require MANAGE_SETTINGS permission
- Payment secret keys are masked in every response
"""
from flask import Blueprint, g

from ..services import settings_service, shipping_service
from ..decorators import require_auth, require_permission
from . import json_body

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/options")
@require_auth
@require_permission("VIEW_SETTINGS")
def settings_options():
    """Choices for the settings forms."""
    return {
        "currencies": settings_service.currency_options(),
        "languages": list(settings_service.SUPPORTED_LANGUAGES),
        "countries": list(settings_service.SUPPORTED_COUNTRIES),
        "timezones": list(settings_service.SUPPORTED_TIMEZONES),
        "themes": list(settings_service.THEMES),
        "weight_units": list(settings_service.WEIGHT_UNITS),
    }


@settings_bp.get("/store")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_store_settings():
    return settings_service.get_store_settings(g.tenant_id)


@settings_bp.put("/store")
@settings_bp.patch("/store")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_store_settings():
    return settings_service.update_store_settings(g.tenant_id, json_body())


@settings_bp.get("/theme")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_theme_settings():
    return settings_service.get_theme_settings(g.tenant_id)


@settings_bp.put("/theme")
@settings_bp.patch("/theme")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_theme_settings():
    return settings_service.update_theme_settings(g.tenant_id, json_body())


@settings_bp.get("/payments")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_payment_methods():
    return {"payment_methods": settings_service.get_payment_methods(g.tenant_id)}


@settings_bp.put("/payments")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_payment_methods():
    """Body: {"payment_methods": [...]}; masked secrets sent back unchanged are kept."""
    methods = settings_service.update_payment_methods(g.tenant_id, json_body().get("payment_methods"))
    return {"payment_methods": methods}


@settings_bp.get("/shipping")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_shipping_methods():
    """Saved methods, or the defaults (is_default=true) when none were saved."""
    return shipping_service.get_shipping_methods(g.tenant_id)


@settings_bp.put("/shipping")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_shipping_methods():
    return shipping_service.save_shipping_methods(g.tenant_id, json_body().get("shipping_methods"))


@settings_bp.get("/plugins")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_plugins():
    return settings_service.get_plugins(g.tenant_id)


@settings_bp.put("/plugins")
@settings_bp.patch("/plugins")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_plugins():
    return settings_service.update_plugins(g.tenant_id, json_body())


@settings_bp.get("/domain")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_domain():
    return settings_service.get_domain_settings(g.tenant_id)


@settings_bp.put("/domain")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_domain():
    """Body: {"domain": "shop.example.com"}; null or "" clears the custom domain."""
    return settings_service.update_domain(g.tenant_id, json_body().get("domain"))
