# Overview: Shipping method configuration and quote calculation (weights in kg, money in cents).

from __future__ import annotations

import re

from ..extensions import db
from ..validation import MAX_PRICE_CENTS, ValidationError
from .tenant_database import TenantDatabase

SHIPPING_TYPES = ("weight_based", "flat_rate", "free")

# Used for items whose product/variant has no weight
DEFAULT_ITEM_WEIGHT_KG = 0.5

STANDARD_DELIVERY = "3-5 business days"
FREE_DELIVERY = "5-7 business days"

METHOD_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

DEFAULT_SHIPPING_METHODS = [
    {
        "id": "weight_based_default",
        "name": "Weight Based Shipping",
        "description": "Shipping cost calculated based on package weight",
        "enabled": True,
        "type": "weight_based",
        "config": {
            "base_rate_cents": 500,
            "per_kg_rate_cents": 200,
            "free_threshold_cents": 10000,
            "max_weight": 30,
        },
    }
]


def default_shipping_methods() -> list[dict]:
    return [dict(m, config=dict(m["config"])) for m in DEFAULT_SHIPPING_METHODS]


# -- configuration --

def _money(config: dict, key: str, index: int) -> int | None:
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 0 or value > MAX_PRICE_CENTS:
        raise ValidationError(f"shipping_methods[{index}].config.{key} must be a non-negative integer (cents)")
    return value


def _string_list(value, label: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{label} must be a list of strings")
    return [v.strip().upper() for v in value if v.strip()]


def _state_map(value, label: str) -> dict[str, list[str]]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{label} must be an object keyed by country")
    return {str(country).upper(): _string_list(states, label) for country, states in value.items()}


def normalize_shipping_methods(methods) -> list[dict]:
    """
    Validate the shipping method list submitted from settings.

    Each method: {id, name, description, enabled, type, config, shipping_zones}
    config: base_rate_cents, per_kg_rate_cents, free_threshold_cents, max_weight (kg)
    """
    if not isinstance(methods, list):
        raise ValidationError("shipping_methods must be a list")

    out, seen = [], set()
    for index, method in enumerate(methods):
        if not isinstance(method, dict):
            raise ValidationError(f"shipping_methods[{index}] must be an object")

        method_id = str(method.get("id") or "").strip()
        if not METHOD_ID_RE.match(method_id):
            raise ValidationError(f"shipping_methods[{index}].id is invalid")
        if method_id in seen:
            raise ValidationError(f"Duplicate shipping method id: {method_id}")
        seen.add(method_id)

        name = str(method.get("name") or "").strip()
        if not name:
            raise ValidationError(f"shipping_methods[{index}].name is required")

        mtype = method.get("type")
        if mtype not in SHIPPING_TYPES:
            raise ValidationError(f"shipping_methods[{index}].type must be one of: {', '.join(SHIPPING_TYPES)}")

        config = method.get("config") or {}
        if not isinstance(config, dict):
            raise ValidationError(f"shipping_methods[{index}].config must be an object")
        max_weight = config.get("max_weight")
        if max_weight is not None:
            if isinstance(max_weight, bool) or not isinstance(max_weight, (int, float)) or max_weight <= 0:
                raise ValidationError(f"shipping_methods[{index}].config.max_weight must be a positive number")

        zones = method.get("shipping_zones")
        normalized_zones = None
        if zones is not None:
            if not isinstance(zones, dict):
                raise ValidationError(f"shipping_methods[{index}].shipping_zones must be an object")
            normalized_zones = {
                "allowed_countries": _string_list(zones.get("allowed_countries"), "allowed_countries"),
                "restricted_countries": _string_list(zones.get("restricted_countries"), "restricted_countries"),
                "allowed_states": _state_map(zones.get("allowed_states"), "allowed_states"),
                "restricted_states": _state_map(zones.get("restricted_states"), "restricted_states"),
            }

        out.append({
            "id": method_id,
            "name": name,
            "description": str(method.get("description") or "").strip(),
            "enabled": bool(method.get("enabled", True)),
            "type": mtype,
            "config": {
                "base_rate_cents": _money(config, "base_rate_cents", index) or 0,
                "per_kg_rate_cents": _money(config, "per_kg_rate_cents", index) or 0,
                "free_threshold_cents": _money(config, "free_threshold_cents", index),
                "max_weight": max_weight,
            },
            "shipping_zones": normalized_zones,
        })
    return out


def get_shipping_methods(tenant_id: int) -> dict:
    settings = TenantDatabase(tenant_id).get_shipping_settings()
    if settings is None:
        return {"shipping_methods": default_shipping_methods(), "is_default": True}
    return {"shipping_methods": settings.shipping_methods or [], "is_default": False}


def save_shipping_methods(tenant_id: int, methods) -> dict:
    normalized = normalize_shipping_methods(methods)
    TenantDatabase(tenant_id).save_shipping_settings(normalized)
    db.session.commit()
    return {"shipping_methods": normalized, "is_default": False}


# -- quotes --

def calculate_cart_weight(items: list[dict]) -> float:
    """Sum of weight x quantity; items without a weight count 0.5 kg per unit."""
    total = 0.0
    for item in items:
        weight = item.get("weight")
        if weight is None or weight <= 0:
            weight = DEFAULT_ITEM_WEIGHT_KG
        total += weight * int(item.get("quantity") or 0)
    return round(total, 3)


def is_method_available(method: dict, address: dict | None) -> bool:
    zones = method.get("shipping_zones")
    if not zones or not address:
        return True

    country = str(address.get("country") or "").upper()
    state = str(address.get("state") or "").strip().upper()

    if country in (zones.get("restricted_countries") or []):
        return False
    allowed = zones.get("allowed_countries") or []
    if allowed and country not in allowed:
        return False
    if state in (zones.get("restricted_states") or {}).get(country, []):
        return False
    allowed_states = (zones.get("allowed_states") or {}).get(country, [])
    if allowed_states and state not in allowed_states:
        return False
    return True


def _method_price(method: dict, weight: float, subtotal_cents: int) -> int | None:
    config = method.get("config") or {}
    threshold = config.get("free_threshold_cents")
    mtype = method.get("type")

    if mtype == "free":
        return 0
    if threshold and subtotal_cents >= threshold:
        return 0
    if mtype == "flat_rate":
        return config.get("base_rate_cents") or 0
    if mtype == "weight_based":
        return (config.get("base_rate_cents") or 0) + int(round(weight * (config.get("per_kg_rate_cents") or 0)))
    return None


def calculate_shipping(items: list[dict], methods: list[dict], address: dict | None = None) -> dict:
    """
    Quote every enabled method for a cart.

    items: [{"price_cents", "quantity", "weight"}]
    Returns {"available_methods": [...], "recommended_method_id", "total_weight", "subtotal_cents"}.
    Methods outside the address's zones or below the cart weight are skipped;
    the cheapest remaining method is recommended.
    """
    weight = calculate_cart_weight(items)
    subtotal = sum(int(i.get("price_cents") or 0) * int(i.get("quantity") or 0) for i in items)

    available, recommended, lowest = [], None, None
    for method in methods:
        if not method.get("enabled"):
            continue
        if not is_method_available(method, address):
            continue
        max_weight = (method.get("config") or {}).get("max_weight")
        if max_weight and weight > max_weight:
            continue
        price = _method_price(method, weight, subtotal)
        if price is None:
            continue

        available.append({
            "id": method["id"],
            "name": method.get("name"),
            "description": method.get("description"),
            "price_cents": price,
            "estimated_days": FREE_DELIVERY if method.get("type") == "free" else STANDARD_DELIVERY,
        })
        if lowest is None or price < lowest:
            lowest, recommended = price, method["id"]

    return {
        "available_methods": available,
        "recommended_method_id": recommended,
        "total_weight": weight,
        "subtotal_cents": subtotal,
    }


def quote_for_method(tenant_id: int, items: list[dict], method_id: str | None, address: dict | None = None) -> int:
    """Shipping price for a chosen method; ValidationError if it is not available."""
    if not method_id:
        return 0
    methods = get_shipping_methods(tenant_id)["shipping_methods"]
    quote = calculate_shipping(items, methods, address)
    for method in quote["available_methods"]:
        if method["id"] == method_id:
            return method["price_cents"]
    raise ValidationError("Shipping method is not available for this order")
