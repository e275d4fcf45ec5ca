# Overview: Service-layer operations for product variants; option combinations, variant CRUD, stock and price summaries.

"""
Variant generation for variable products.

A variable product declares up to three options, e.g.

    [{"name": "Size", "values": ["S", "M", "L"]},
     {"name": "Color", "values": ["Red", "Blue"]}]

generate_variant_combinations() expands them into one combination per
element of the cartesian product (first option varies slowest):

    S / Red, S / Blue, M / Red, M / Blue, L / Red, L / Blue

and generate_variants() persists one ProductVariant per combination that
does not exist yet. The number of combinations is capped by
MAX_VARIANT_COMBINATIONS.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation

from flask import current_app, has_app_context

from ..currency import format_price
from ..extensions import db
from ..models import CartItem, OrderLineItem, Product, ProductVariant
from ..slugs import generate_slug
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_non_negative,
    enforce_price_cents,
    validate_payload,
)
from .tenant_database import TenantDatabase


MAX_OPTIONS = 3
DEFAULT_MAX_COMBINATIONS = 100

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "option1", "option2", "option3", "sku",
        "price_cents", "compare_price_cents", "cost_price_cents",
        "inventory_quantity", "weight", "image_url", "position", "is_active",
    },
    required_on_create={"price_cents"},
)

VARIANT_MONEY_FIELDS = ("price_cents", "compare_price_cents", "cost_price_cents")


def _max_combinations() -> int:
    if has_app_context():
        return int(current_app.config.get("MAX_VARIANT_COMBINATIONS", DEFAULT_MAX_COMBINATIONS))
    return DEFAULT_MAX_COMBINATIONS


def normalize_options(options) -> list[dict]:
    """
    Validate option definitions.

    - at most MAX_OPTIONS options
    - names non-empty and unique (case-insensitive)
    - values trimmed; blanks and duplicates dropped
    - options left without values are ignored
    """
    if options is None:
        return []
    if not isinstance(options, list):
        raise ValidationError("options must be a list")

    normalized: list[dict] = []
    seen_names: set[str] = set()
    for index, option in enumerate(options):
        if not isinstance(option, dict):
            raise ValidationError(f"options[{index}] must be an object")
        name = str(option.get("name") or "").strip()
        raw_values = option.get("values") or []
        if not isinstance(raw_values, list):
            raise ValidationError(f"options[{index}].values must be a list")

        values: list[str] = []
        for value in raw_values:
            value = str(value if value is not None else "").strip()
            if value and value not in values:
                values.append(value)
        if not values:
            continue
        if not name:
            raise ValidationError(f"options[{index}] needs a name")
        if name.lower() in seen_names:
            raise ValidationError(f"Duplicate option name: {name}")
        seen_names.add(name.lower())
        normalized.append({"name": name, "values": values})

    if len(normalized) > MAX_OPTIONS:
        raise ValidationError(f"A product can have at most {MAX_OPTIONS} options")
    return normalized


def count_combinations(options: list[dict]) -> int:
    if not options:
        return 0
    total = 1
    for option in options:
        total *= len(option["values"])
    return total


def generate_variant_combinations(options) -> list[dict]:
    """
    Cartesian product of option values.

    Returns a list of
        {"title": "S / Red", "option1": "S", "option2": "Red", "option3": None,
         "attributes": [{"name": "Size", "value": "S"}, {"name": "Color", "value": "Red"}]}
    Empty or value-less options produce an empty list.
    """
    options = normalize_options(options)
    if not options:
        return []

    total = count_combinations(options)
    limit = _max_combinations()
    if total > limit:
        raise ValidationError(f"Too many variant combinations ({total}); the maximum is {limit}")

    combinations: list[list[tuple[str, str]]] = [[]]
    for option in options:
        combinations = [
            combo + [(option["name"], value)]
            for combo in combinations
            for value in option["values"]
        ]

    result = []
    for combo in combinations:
        values = [value for _, value in combo]
        padded = values + [None] * (MAX_OPTIONS - len(values))
        result.append({
            "title": " / ".join(values),
            "option1": padded[0],
            "option2": padded[1],
            "option3": padded[2],
            "attributes": [{"name": name, "value": value} for name, value in combo],
        })
    return result


def build_variant_sku(base_sku: str | None, values) -> str | None:
    """"TEE" + ["S", "Navy Blue"] -> "TEE-S-NAVY-BLUE"; None without a base SKU."""
    base = (base_sku or "").strip()
    if not base:
        return None
    parts = [generate_slug(v).upper() for v in values if v]
    return "-".join([base] + [p for p in parts if p])


# -- persistence --

def _sku_taken(tdb: TenantDatabase, sku: str, exclude_variant_id: int | None = None) -> bool:
    if tdb.get_product_by_sku(sku):
        return True
    variant = tdb.get_variant_by_sku(sku)
    return bool(variant and variant.id != exclude_variant_id)


def _unique_sku(tdb: TenantDatabase, sku: str | None, reserved: set[str]) -> str | None:
    if not sku:
        return None
    candidate, n = sku, 2
    while candidate in reserved or _sku_taken(tdb, candidate):
        candidate = f"{sku}-{n}"
        n += 1
    reserved.add(candidate)
    return candidate


def generate_variants(
    tenant_id: int,
    product_id: int,
    options,
    defaults: dict | None = None,
    prune: bool = False,
) -> dict:
    """
    Store option definitions on the product and create the missing variants.

    Existing variants whose option values match a combination are kept
    untouched (and re-activated). With prune=True, variants that no longer
    match any combination are deactivated.

    defaults: price_cents, compare_price_cents, cost_price_cents,
    inventory_quantity, weight applied to newly created variants.
    """
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    if product.product_type == "digital":
        raise ValidationError("Digital products cannot have variants")

    normalized = normalize_options(options)
    combinations = generate_variant_combinations(normalized)
    if not combinations:
        raise ValidationError("Add at least one option with values to generate variants")

    defaults = dict(defaults or {})
    enforce_price_cents(defaults, *VARIANT_MONEY_FIELDS)
    enforce_non_negative(defaults, "inventory_quantity", "weight")

    existing = {v.option_values: v for v in tdb.get_product_variants(product.id, active_only=False)}
    reserved: set[str] = set()

    created, kept = [], []
    wanted_keys = set()
    for position, combo in enumerate(combinations):
        key = tuple(v for v in (combo["option1"], combo["option2"], combo["option3"]) if v is not None)
        wanted_keys.add(key)
        variant = existing.get(key)
        if variant:
            variant.is_active = True
            variant.position = position
            kept.append(variant)
            continue
        variant = tdb.create_product_variant({
            "product_id": product.id,
            "title": combo["title"],
            "option1": combo["option1"],
            "option2": combo["option2"],
            "option3": combo["option3"],
            "sku": _unique_sku(tdb, build_variant_sku(product.sku, key), reserved),
            "price_cents": defaults.get("price_cents", 0) or 0,
            "compare_price_cents": defaults.get("compare_price_cents"),
            "cost_price_cents": defaults.get("cost_price_cents"),
            "inventory_quantity": defaults.get("inventory_quantity", 0) or 0,
            "weight": defaults.get("weight"),
            "position": position,
            "is_active": True,
        })
        created.append(variant)

    deactivated = []
    if prune:
        for key, variant in existing.items():
            if key not in wanted_keys and variant.is_active:
                variant.is_active = False
                deactivated.append(variant)

    product.options = normalized
    product.product_type = "variable"
    product.price_cents = 0
    product.compare_price_cents = None
    product.cost_price_cents = None
    product.inventory_quantity = 0
    db.session.commit()

    current_app.logger.info(
        "Generated variants for product %s: %d created, %d kept, %d deactivated",
        product.id, len(created), len(kept), len(deactivated),
    )
    return {
        "product_id": product.id,
        "options": normalized,
        "created": len(created),
        "kept": len(kept),
        "deactivated": len(deactivated),
        "variants": [v.to_dict() for v in tdb.get_product_variants(product.id, active_only=False)],
    }


def _validate_variant_patch(tdb: TenantDatabase, patch: dict, variant_id: int | None = None) -> None:
    enforce_price_cents(patch, *VARIANT_MONEY_FIELDS)
    enforce_non_negative(patch, "inventory_quantity", "weight")
    if patch.get("sku") and _sku_taken(tdb, patch["sku"], exclude_variant_id=variant_id):
        raise ConflictError("SKU already exists")


def list_variants(tenant_id: int, product_id: int, active_only: bool = False) -> list[dict]:
    tdb = TenantDatabase(tenant_id)
    if not tdb.get_product(product_id):
        raise NotFoundError("Product not found")
    return [v.to_dict() for v in tdb.get_product_variants(product_id, active_only=active_only)]


def create_variant(tenant_id: int, product_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    product = tdb.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    if product.product_type != "variable":
        raise ValidationError("Variants can only be added to variable products")

    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=False)
    _validate_variant_patch(tdb, patch)

    values = [patch.get("option1"), patch.get("option2"), patch.get("option3")]
    if not patch.get("title"):
        patch["title"] = " / ".join(v for v in values if v) or "Default"
    patch["product_id"] = product.id
    patch.setdefault("position", len(product.variants))

    variant = tdb.create_product_variant(patch)
    db.session.commit()
    return variant.to_dict()


def update_variant(tenant_id: int, product_id: int, variant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    variant = tdb.get_product_variant(variant_id)
    if not variant or variant.product_id != product_id:
        raise NotFoundError("Variant not found")

    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=True)
    _validate_variant_patch(tdb, patch, variant_id=variant.id)

    tdb.update_product_variant(variant.id, patch)
    db.session.commit()
    return variant.to_dict()


def delete_variant(tenant_id: int, product_id: int, variant_id: int) -> None:
    tdb = TenantDatabase(tenant_id)
    variant = tdb.get_product_variant(variant_id)
    if not variant or variant.product_id != product_id:
        raise NotFoundError("Variant not found")

    tdb.query(CartItem).filter(CartItem.product_variant_id == variant.id).delete(synchronize_session=False)
    tdb.query(OrderLineItem).filter(OrderLineItem.product_variant_id == variant.id).update(
        {"product_variant_id": None}, synchronize_session=False
    )
    tdb.delete_product_variant(variant.id)
    db.session.commit()


# -- summaries --

def get_price_range(product: Product) -> dict | None:
    """
    {"min": cents, "max": cents} for the sellable prices of a product.
    Variable products use active variants; None when there are none.
    """
    if product.product_type == "variable":
        prices = [v.price_cents for v in product.variants if v.is_active]
        if not prices:
            return None
        return {"min": min(prices), "max": max(prices)}
    return {"min": product.price_cents, "max": product.price_cents}


def format_price_range(product: Product, currency: str | None = None) -> str:
    price_range = get_price_range(product)
    if price_range is None:
        return "No variants"
    if price_range["min"] == price_range["max"]:
        return format_price(price_range["min"], currency)
    return f"{format_price(price_range['min'], currency)} - {format_price(price_range['max'], currency)}"


def get_inventory_summary(product: Product, threshold: int) -> dict:
    """
    Stock status for list screens.

    status: digital | good (> threshold) | low (1..threshold) | out (<= 0)
    """
    if product.product_type == "digital":
        return {
            "total": 0,
            "status": "digital",
            "is_low_stock": False,
            "is_out_of_stock": False,
            "variants": 0,
        }

    if product.product_type == "variable":
        active = [v for v in product.variants if v.is_active]
        total = sum(v.inventory_quantity for v in active)
        variant_count = len(active)
    else:
        total = product.inventory_quantity or 0
        variant_count = 0

    if total > threshold:
        status = "good"
    elif total > 0:
        status = "low"
    else:
        status = "out"

    return {
        "total": total,
        "status": status,
        "is_low_stock": 0 < total <= threshold,
        "is_out_of_stock": total <= 0,
        "variants": variant_count,
    }


# -- legacy embedded variants --

def parse_legacy_variants(value) -> list[dict]:
    """
    Accept the old embedded format (JSON string, list, or dict keyed by
    anything) and return the object entries. Unparseable input -> [].
    """
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict) and v]


def _to_cents(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        return None


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def migrate_legacy_variants(tenant_id: int | None = None) -> dict:
    """
    Move legacy embedded variants (decimal prices) into product_variants
    and clear the embedded column. Returns per-product results.
    """
    query = db.session.query(Product).filter(Product.legacy_variants.isnot(None)).order_by(Product.id)
    if tenant_id is not None:
        query = query.filter(Product.tenant_id == tenant_id)

    results, migrated = [], 0
    reserved_by_tenant: dict[int, set[str]] = {}
    for product in query.all():
        entries = parse_legacy_variants(product.legacy_variants)
        if not entries:
            product.legacy_variants = None
            continue
        tdb = TenantDatabase(product.tenant_id)
        reserved = reserved_by_tenant.setdefault(product.tenant_id, set())
        for index, entry in enumerate(entries):
            legacy_sku = str(entry.get("sku") or "").strip()[:60] or None
            sku = _unique_sku(tdb, legacy_sku, reserved)
            if sku != legacy_sku:
                current_app.logger.warning(
                    "Legacy SKU %s on product %s is taken; stored as %s", legacy_sku, product.id, sku,
                )
            db.session.add(ProductVariant(
                tenant_id=product.tenant_id,
                product_id=product.id,
                title=str(entry.get("title") or f"Variant {index + 1}")[:255],
                option1=entry.get("option1") or None,
                option2=entry.get("option2") or None,
                option3=entry.get("option3") or None,
                sku=sku,
                price_cents=_to_cents(entry.get("price")) or 0,
                compare_price_cents=_to_cents(entry.get("compare_price")),
                cost_price_cents=_to_cents(entry.get("cost_price")),
                inventory_quantity=_to_int(entry.get("inventory_quantity", entry.get("stock_quantity"))),
                weight=entry.get("weight") or None,
                image_url=entry.get("image_url") or None,
                position=index,
                is_active=entry.get("is_active") is not False,
            ))
        product.legacy_variants = None
        migrated += 1
        results.append({"product_id": product.id, "name": product.name, "variants_created": len(entries)})

    db.session.commit()
    return {"migrated": migrated, "results": results}
