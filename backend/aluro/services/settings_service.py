"""
Store settings: store information, operational options, theme, payment
methods, plugins and custom domain.

MULTI-TENANT: every function works on the tenant passed in (g.tenant_id at
the route layer). Payment secrets are masked whenever they are read back.
"""
from __future__ import annotations

import re

from flask import current_app

from ..currency import CURRENCY_SYMBOLS, format_price, get_currency_symbol
from ..extensions import db
from ..models import Tenant
from ..validation import (
    MAX_RATE_BPS,
    FieldErrors,
    NotFoundError,
    ValidationError,
    is_valid_color,
    is_valid_email,
    is_valid_phone,
    is_valid_url,
    normalize_email,
)
from .feature_flag_service import enabled_payment_methods
from .tenant_database import TenantDatabase
from .tenant_service import set_custom_domain, tenant_to_dict

SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP", "CAD", "CRC")
SUPPORTED_LANGUAGES = ("en", "es")
SUPPORTED_COUNTRIES = (
    "US", "CA", "GB", "AU", "CR", "MX", "ES", "FR", "DE", "IT", "BR", "AR", "CL", "CO", "PE",
)
SUPPORTED_TIMEZONES = (
    "America/New_York", "America/Chicago", "America/Denver", "America/Los_Angeles",
    "America/Costa_Rica", "UTC",
)
THEMES = ("default", "violet", "rose", "blue", "green", "orange", "slate", "neutral", "yellow", "red")
WEIGHT_UNITS = ("kg", "lb")

COLOR_FIELDS = ("primary_color", "secondary_color", "accent_color", "background_color", "text_color")

BOOLEAN_SETTINGS = (
    "shipping_enabled", "inventory_tracking", "allow_backorders", "auto_fulfill_orders",
    "email_notifications", "sms_notifications",
)

DEFAULT_OPERATIONAL_SETTINGS = {
    "currency": "USD",
    "timezone": "UTC",
    "tax_rate_bps": 0,
    "shipping_enabled": True,
    "inventory_tracking": True,
    "allow_backorders": False,
    "auto_fulfill_orders": False,
    "email_notifications": True,
    "sms_notifications": False,
    "low_stock_threshold": 5,
    "weight_unit": "kg",
}

DEFAULT_THEME = {
    "admin_theme": "default",
    "store_theme": "default",
    "primary_color": "#0f172a",
    "secondary_color": "#64748b",
    "accent_color": "#3b82f6",
    "background_color": "#ffffff",
    "text_color": "#0f172a",
    "logo_url": None,
    "favicon_url": None,
    "hero_background_type": "color",
    "hero_background_value": "#f8fafc",
}

PAYMENT_METHOD_DEFAULTS = [
    {"id": "cash_on_delivery", "name": "Cash on Delivery", "requires_keys": False},
    {"id": "stripe", "name": "Stripe", "requires_keys": True},
    {"id": "tilopay", "name": "TiloPay", "requires_keys": True},
    {"id": "bank_transfer", "name": "Bank Transfer", "requires_keys": False},
    {"id": "mobile_bank_transfer", "name": "Mobile Bank Transfer", "requires_keys": False},
]

SECRET_KEY_FIELDS = ("secret_key", "webhook_secret")
MASK = "****"

PLUGINS = {
    "google_analytics": ("tracking_id",),
    "facebook_pixel": ("pixel_id",),
    "mailchimp": ("api_key", "list_id"),
    "whatsapp": ("phone_number", "welcome_message"),
}

GA_TRACKING_RE = re.compile(r"^(G-[A-Z0-9]{4,}|UA-\d{4,}-\d+)$")


def _tenant(tenant_id: int) -> Tenant:
    tenant = TenantDatabase(tenant_id).get_tenant()
    if not tenant:
        raise NotFoundError("Store not found")
    return tenant


# -- store information --

def get_store_settings(tenant_id: int) -> dict:
    tenant = _tenant(tenant_id)
    settings = dict(DEFAULT_OPERATIONAL_SETTINGS)
    settings.update({k: v for k, v in (tenant.settings or {}).items() if k in DEFAULT_OPERATIONAL_SETTINGS})
    return {
        "name": tenant.name,
        "description": tenant.description,
        "contact_email": tenant.contact_email,
        "contact_phone": tenant.contact_phone,
        "country": tenant.country,
        "admin_language": tenant.admin_language,
        "store_language": tenant.store_language,
        "address": tenant.address or {},
        "settings": settings,
        "currency_symbol": get_currency_symbol(settings["currency"]),
    }


def _validate_operational(values: dict, errors: FieldErrors) -> dict:
    if not isinstance(values, dict):
        raise ValidationError("settings must be an object")
    out = {}
    for key, value in values.items():
        if key not in DEFAULT_OPERATIONAL_SETTINGS:
            errors.add(f"settings.{key}", "Unknown setting")
            continue
        if key == "currency":
            if value not in SUPPORTED_CURRENCIES:
                errors.add("settings.currency", f"Currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}")
                continue
        elif key == "timezone":
            if value not in SUPPORTED_TIMEZONES:
                errors.add("settings.timezone", "Unsupported timezone")
                continue
        elif key == "tax_rate_bps":
            if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= MAX_RATE_BPS:
                errors.add("settings.tax_rate_bps", "Tax rate must be between 0 and 10000 basis points (0-100%)")
                continue
        elif key == "low_stock_threshold":
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.add("settings.low_stock_threshold", "Low stock threshold must be 0 or greater")
                continue
        elif key == "weight_unit":
            if value not in WEIGHT_UNITS:
                errors.add("settings.weight_unit", "Weight unit must be kg or lb")
                continue
        elif key in BOOLEAN_SETTINGS:
            if not isinstance(value, bool):
                errors.add(f"settings.{key}", "Must be true or false")
                continue
        out[key] = value
    return out


def update_store_settings(tenant_id: int, payload: dict) -> dict:
    """
    Partial update of store information and operational settings.

    All field problems are reported together as ValidationError.errors.
    """
    tenant = _tenant(tenant_id)
    payload = payload or {}
    errors = FieldErrors()
    changes: dict = {}

    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            errors.add("name", "Store name is required")
        elif len(name) < 2:
            errors.add("name", "Store name must be at least 2 characters")
        elif len(name) > 100:
            errors.add("name", "Store name must be less than 100 characters")
        else:
            changes["name"] = name

    if "contact_email" in payload:
        email = normalize_email(payload.get("contact_email"))
        if not email:
            errors.add("contact_email", "Contact email is required")
        elif not is_valid_email(email):
            errors.add("contact_email", "Please enter a valid email address")
        else:
            changes["contact_email"] = email

    if "contact_phone" in payload:
        phone = (payload.get("contact_phone") or "").strip() or None
        if phone and not is_valid_phone(phone):
            errors.add("contact_phone", "Please enter a valid phone number")
        else:
            changes["contact_phone"] = phone

    if "description" in payload:
        description = (payload.get("description") or "").strip() or None
        if description and len(description) > 500:
            errors.add("description", "Description must be less than 500 characters")
        else:
            changes["description"] = description

    if "country" in payload:
        country = (payload.get("country") or "").strip().upper() or None
        if country and country not in SUPPORTED_COUNTRIES:
            errors.add("country", "Unsupported country")
        else:
            changes["country"] = country

    for field in ("admin_language", "store_language"):
        if field in payload:
            if payload[field] not in SUPPORTED_LANGUAGES:
                errors.add(field, f"Language must be one of: {', '.join(SUPPORTED_LANGUAGES)}")
            else:
                changes[field] = payload[field]

    if "address" in payload:
        address = payload.get("address")
        if address is not None and not isinstance(address, dict):
            errors.add("address", "Address must be an object")
        else:
            changes["address"] = address

    operational = _validate_operational(payload["settings"], errors) if "settings" in payload else {}

    errors.raise_if_any("Invalid store settings")

    for key, value in changes.items():
        setattr(tenant, key, value)
    if operational:
        merged = dict(tenant.settings or {})
        merged.update(operational)
        tenant.settings = merged

    db.session.commit()
    current_app.logger.info("Updated store settings for tenant %s", tenant_id)
    return get_store_settings(tenant_id)


# -- theme --

def get_theme_settings(tenant_id: int) -> dict:
    theme = dict(DEFAULT_THEME)
    theme.update(_tenant(tenant_id).theme_config or {})
    return theme


def update_theme_settings(tenant_id: int, payload: dict) -> dict:
    tenant = _tenant(tenant_id)
    payload = payload or {}
    errors = FieldErrors()

    for key in payload:
        if key not in DEFAULT_THEME:
            errors.add(key, "Unknown theme setting")
    for field in ("admin_theme", "store_theme"):
        if field in payload and payload[field] not in THEMES:
            errors.add(field, f"Theme must be one of: {', '.join(THEMES)}")
    for field in COLOR_FIELDS:
        if payload.get(field) and not is_valid_color(payload[field]):
            errors.add(field, f"{field.replace('_', ' ')} must be a valid hex color")
    for field in ("logo_url", "favicon_url"):
        if payload.get(field) and not is_valid_url(payload[field]):
            errors.add(field, f"{field.replace('_', ' ')} must be a valid URL")

    background_type = payload.get("hero_background_type", (tenant.theme_config or {}).get("hero_background_type", "color"))
    if background_type not in ("color", "image"):
        errors.add("hero_background_type", "Hero background type must be color or image")
    elif "hero_background_value" in payload and payload["hero_background_value"]:
        value = payload["hero_background_value"]
        if background_type == "color" and not is_valid_color(value):
            errors.add("hero_background_value", "Hero background must be a valid hex color")
        if background_type == "image" and not is_valid_url(value):
            errors.add("hero_background_value", "Hero background must be a valid image URL")

    errors.raise_if_any("Invalid theme settings")

    theme = dict(tenant.theme_config or {})
    theme.update(payload)
    tenant.theme_config = theme
    if "logo_url" in payload:
        tenant.logo_url = payload["logo_url"] or None
    db.session.commit()
    return get_theme_settings(tenant_id)


# -- payment methods --

def mask_secret(value: str | None) -> str | None:
    """"sk_test_abcdef123456" -> "sk_test_****3456"."""
    if not value:
        return value
    prefix = ""
    for candidate in ("sk_test_", "sk_live_", "whsec_"):
        if value.startswith(candidate):
            prefix = candidate
            break
    return f"{prefix}{MASK}{value[-4:]}"


def _masked(method: dict) -> dict:
    method = dict(method)
    keys = dict(method.get("keys") or {})
    for field in SECRET_KEY_FIELDS:
        if keys.get(field):
            keys[field] = mask_secret(keys[field])
    if keys:
        method["keys"] = keys
    return method


def _default_method(entry: dict) -> dict:
    return {
        "id": entry["id"],
        "name": entry["name"],
        "enabled": entry["id"] == "cash_on_delivery",
        "requires_keys": entry["requires_keys"],
        "keys": {},
        "bank_details": {},
        "description": None,
        "fees": None,
    }


def _stored_methods(tenant_id: int) -> list[dict]:
    """
    Saved methods merged over defaults, restricted to platform-enabled methods.
    Once a configuration is saved, methods missing from it are disabled.
    """
    available = enabled_payment_methods()
    row = TenantDatabase(tenant_id).get_payment_settings()
    saved = {m.get("id"): m for m in (row.payment_methods if row else []) or []}
    out = []
    for entry in PAYMENT_METHOD_DEFAULTS:
        if entry["id"] not in available:
            continue
        method = _default_method(entry)
        if row is not None:
            method["enabled"] = False
        method.update(saved.get(entry["id"]) or {})
        out.append(method)
    return out


def get_payment_methods(tenant_id: int) -> list[dict]:
    return [_masked(m) for m in _stored_methods(tenant_id)]


def validate_stripe_keys(keys: dict) -> str | None:
    publishable = keys.get("publishable_key") or ""
    secret = keys.get("secret_key") or ""
    if not publishable or not secret:
        return "Both publishable and secret keys are required"
    if not publishable.startswith(("pk_test_", "pk_live_")):
        return "Publishable key must start with pk_test_ or pk_live_"
    if not secret.startswith(("sk_test_", "sk_live_")):
        return "Secret key must start with sk_test_ or sk_live_"
    if publishable[3:7] != secret[3:7]:
        return "Publishable and secret keys must be from the same mode (test or live)"
    return None


def validate_tilopay_keys(keys: dict) -> str | None:
    publishable = keys.get("publishable_key") or ""
    secret = keys.get("secret_key") or ""
    if not publishable or not secret:
        return "Both API key and secret key are required"
    if len(publishable) < 10:
        return "API key appears to be too short"
    if len(secret) < 10:
        return "Secret key appears to be too short"
    return None


def _validate_bank_details(method: dict) -> str | None:
    details = method.get("bank_details") or {}
    if method["id"] == "bank_transfer":
        for field, label in (("bank_name", "Bank name"), ("account_number", "Account number"),
                             ("account_holder", "Account holder name")):
            if not str(details.get(field) or "").strip():
                return f"{label} is required"
        return None
    if not str(details.get("account_holder") or details.get("phone_number") or "").strip():
        return "Phone number or account holder is required"
    return None


def update_payment_methods(tenant_id: int, methods) -> list[dict]:
    """
    Save payment method configuration.

    - at least one method enabled
    - methods disabled by platform feature flags are rejected
    - masked secrets sent back unchanged keep the stored value
    """
    if not isinstance(methods, list):
        raise ValidationError("payment_methods must be a list")

    available = enabled_payment_methods()
    known = {entry["id"]: entry for entry in PAYMENT_METHOD_DEFAULTS}
    current = {m["id"]: m for m in _stored_methods(tenant_id)}
    errors = FieldErrors()
    cleaned = []

    for index, method in enumerate(methods):
        if not isinstance(method, dict) or method.get("id") not in known:
            errors.add(f"payment_methods[{index}]", "Unknown payment method")
            continue
        method_id = method["id"]
        if method_id not in available:
            errors.add(method_id, "This payment method is not available on the platform")
            continue

        keys = dict(method.get("keys") or {})
        stored_keys = (current.get(method_id) or {}).get("keys") or {}
        for field in SECRET_KEY_FIELDS:
            if keys.get(field) and MASK in keys[field] and keys[field] == mask_secret(stored_keys.get(field)):
                keys[field] = stored_keys.get(field)

        entry = _default_method(known[method_id])
        entry.update({
            "enabled": bool(method.get("enabled")),
            "keys": {k: str(v).strip() for k, v in keys.items() if v},
            "bank_details": {k: str(v).strip() for k, v in (method.get("bank_details") or {}).items() if v},
            "description": (method.get("description") or "").strip() or None,
            "fees": (method.get("fees") or "").strip() or None,
        })

        if entry["enabled"]:
            problem = None
            if method_id == "stripe":
                problem = validate_stripe_keys(entry["keys"])
            elif method_id == "tilopay":
                problem = validate_tilopay_keys(entry["keys"])
            elif method_id in ("bank_transfer", "mobile_bank_transfer"):
                problem = _validate_bank_details(entry)
            if problem:
                field = f"{method_id}_keys" if method_id in ("stripe", "tilopay") else f"{method_id}_details"
                errors.add(field, problem)
        cleaned.append(entry)

    if not any(m["enabled"] for m in cleaned):
        errors.add("payment_methods", "At least one payment method must be enabled")

    errors.raise_if_any("Invalid payment settings")

    TenantDatabase(tenant_id).save_payment_settings(cleaned)
    db.session.commit()
    current_app.logger.info("Updated payment methods for tenant %s", tenant_id)
    return get_payment_methods(tenant_id)


def checkout_payment_methods(tenant_id: int) -> list[dict]:
    """Enabled methods as shown at checkout: no keys, bank details included."""
    out = []
    for method in _stored_methods(tenant_id):
        if not method.get("enabled"):
            continue
        keys = method.get("keys") or {}
        out.append({
            "id": method["id"],
            "name": method["name"],
            "description": method.get("description"),
            "fees": method.get("fees"),
            "bank_details": method.get("bank_details") or {},
            "publishable_key": keys.get("publishable_key"),
        })
    return out


# -- plugins --

def get_plugins(tenant_id: int) -> dict:
    stored = (_tenant(tenant_id).settings or {}).get("plugins") or {}
    out = {}
    for name, fields in PLUGINS.items():
        entry = {"enabled": False, **{f: None for f in fields}}
        entry.update(stored.get(name) or {})
        if name == "mailchimp" and entry.get("api_key"):
            entry["api_key"] = f"{MASK}{entry['api_key'][-4:]}"
        out[name] = entry
    return out


def update_plugins(tenant_id: int, payload: dict) -> dict:
    tenant = _tenant(tenant_id)
    if not isinstance(payload, dict):
        raise ValidationError("plugins must be an object")

    settings = dict(tenant.settings or {})
    plugins = dict(settings.get("plugins") or {})
    errors = FieldErrors()

    for name, values in payload.items():
        if name not in PLUGINS:
            errors.add(name, "Unknown plugin")
            continue
        if not isinstance(values, dict):
            errors.add(name, "Plugin settings must be an object")
            continue
        entry = dict(plugins.get(name) or {})
        if "enabled" in values:
            entry["enabled"] = bool(values["enabled"])
        for field in PLUGINS[name]:
            if field in values:
                value = (str(values[field]).strip() if values[field] is not None else "") or None
                if field == "api_key" and value and value.startswith(MASK):
                    continue
                entry[field] = value
        if entry.get("enabled"):
            if name == "google_analytics" and not GA_TRACKING_RE.match(entry.get("tracking_id") or ""):
                errors.add("google_analytics.tracking_id", "Enter a valid Google Analytics tracking id")
            if name == "facebook_pixel" and not (entry.get("pixel_id") or "").isdigit():
                errors.add("facebook_pixel.pixel_id", "Pixel id must be numeric")
            if name == "mailchimp" and not (entry.get("api_key") and entry.get("list_id")):
                errors.add("mailchimp", "API key and list id are required")
            if name == "whatsapp" and not is_valid_phone(entry.get("phone_number")):
                errors.add("whatsapp.phone_number", "Please enter a valid phone number")
        plugins[name] = entry

    errors.raise_if_any("Invalid plugin settings")

    settings["plugins"] = plugins
    tenant.settings = settings
    db.session.commit()
    return get_plugins(tenant_id)


# -- domain --

def get_domain_settings(tenant_id: int) -> dict:
    data = tenant_to_dict(_tenant(tenant_id))
    return {"subdomain": data["subdomain"], "domain": data["domain"], "store_url": data["store_url"]}


def update_domain(tenant_id: int, domain: str | None) -> dict:
    set_custom_domain(_tenant(tenant_id), domain)
    return get_domain_settings(tenant_id)


# -- currency --

def currency_options() -> list[dict]:
    return [
        {"code": code, "symbol": CURRENCY_SYMBOLS[code], "example": format_price(123456, code)}
        for code in SUPPORTED_CURRENCIES
    ]
