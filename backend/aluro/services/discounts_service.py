"""
Discount codes.

type / value:
- percentage: value in basis points, 1..10000
- fixed_amount: value in cents, > 0
- free_shipping: value forced to 0; discounts the shipping price
"""
from __future__ import annotations

from ..extensions import db
from ..models import DISCOUNT_TYPES, Discount
from ..time_utils import utcnow
from ..validation import (
    MAX_PRICE_CENTS,
    MAX_RATE_BPS,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_non_negative,
    enforce_price_cents,
    validate_payload,
)
from .pagination import paginate
from .tenant_database import TenantDatabase

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "title", "description", "type", "value",
        "minimum_purchase_cents", "usage_limit", "starts_at", "ends_at", "is_active",
    },
    required_on_create={"code", "type"},
)

CODE_MAX_LENGTH = 64


def _check_rules(patch: dict, current: Discount | None) -> None:
    if "code" in patch:
        code = (patch["code"] or "").strip().upper()
        if not code or " " in code:
            raise ValidationError("Discount code cannot be blank or contain spaces")
        patch["code"] = code

    dtype = patch.get("type") or (current.type if current else None)
    if dtype not in DISCOUNT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(DISCOUNT_TYPES)}")

    value = patch.get("value", current.value if current else None)
    if dtype == "free_shipping":
        patch["value"] = 0
    elif dtype == "percentage":
        if value is None or not 1 <= value <= MAX_RATE_BPS:
            raise ValidationError("Percentage value must be between 1 and 10000 basis points")
    else:
        if value is None or not 0 < value <= MAX_PRICE_CENTS:
            raise ValidationError("Fixed amount value must be greater than 0 cents")

    enforce_price_cents(patch, "minimum_purchase_cents")
    enforce_non_negative(patch, "usage_limit")

    starts_at = patch.get("starts_at", current.starts_at if current else None)
    ends_at = patch.get("ends_at", current.ends_at if current else None)
    if starts_at and ends_at and ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at")


def list_discounts(tenant_id: int, *, status: str | None = None, type: str | None = None,
                   search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    statuses = {"all": None, "active": True, "inactive": False}
    if status and status not in statuses:
        raise ValidationError("status must be one of: all, active, inactive")
    tdb = TenantDatabase(tenant_id)
    query = tdb.discounts_query(is_active=statuses.get(status or "all"), type=type, search=search)
    return paginate(query, page, per_page, lambda d: d.to_dict())


def get_discount(tenant_id: int, discount_id: int) -> dict:
    discount = TenantDatabase(tenant_id).get_discount(discount_id)
    if not discount:
        raise NotFoundError("Discount not found")
    return discount.to_dict()


def create_discount(tenant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
    _check_rules(patch, None)
    if tdb.get_discount_by_code(patch["code"], active_only=False):
        raise ConflictError("Discount code already exists")

    patch["usage_count"] = 0
    discount = tdb.create_discount(patch)
    db.session.commit()
    return discount.to_dict()


def update_discount(tenant_id: int, discount_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    discount = tdb.get_discount(discount_id)
    if not discount:
        raise NotFoundError("Discount not found")

    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=True)
    _check_rules(patch, discount)
    if patch.get("code"):
        other = tdb.get_discount_by_code(patch["code"], active_only=False)
        if other and other.id != discount.id:
            raise ConflictError("Discount code already exists")

    tdb.update_discount(discount.id, patch)
    db.session.commit()
    return discount.to_dict()


def delete_discount(tenant_id: int, discount_id: int) -> None:
    tdb = TenantDatabase(tenant_id)
    if not tdb.delete_discount(discount_id):
        raise NotFoundError("Discount not found")
    db.session.commit()


def evaluate_discount(tdb: TenantDatabase, code: str, subtotal_cents: int, shipping_cents: int = 0) -> dict:
    """
    Check a code against the current cart totals.

    Returns {"discount": Discount, "amount_cents": int, "free_shipping": bool}.
    amount_cents never exceeds the subtotal (or, for free shipping, the
    shipping price). Raises ValidationError when the code cannot be used.
    """
    discount = tdb.get_discount_by_code(code)
    if not discount:
        raise ValidationError("Invalid discount code")
    if not discount.is_in_window(utcnow()):
        raise ValidationError("Discount code is not valid at this time")
    if discount.is_exhausted:
        raise ValidationError("Discount code usage limit reached")
    if discount.minimum_purchase_cents and subtotal_cents < discount.minimum_purchase_cents:
        raise ValidationError("Order does not meet the minimum purchase for this discount")

    if discount.type == "percentage":
        amount = subtotal_cents * discount.value // MAX_RATE_BPS
    elif discount.type == "fixed_amount":
        amount = min(discount.value, subtotal_cents)
    else:
        amount = shipping_cents

    return {
        "discount": discount,
        "amount_cents": max(amount, 0),
        "free_shipping": discount.type == "free_shipping",
    }


def preview_discount(tenant_id: int, code: str, subtotal_cents: int, shipping_cents: int = 0) -> dict:
    result = evaluate_discount(TenantDatabase(tenant_id), code, subtotal_cents, shipping_cents)
    return {
        "code": result["discount"].code,
        "type": result["discount"].type,
        "amount_cents": result["amount_cents"],
        "free_shipping": result["free_shipping"],
    }
