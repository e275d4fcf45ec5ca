# Overview: Platform feature flags; payment method availability is controlled here.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import PlatformFeatureFlag
from ..validation import ConflictError, NotFoundError, ValidationError

PAYMENT_METHODS_CATEGORY = "payment_methods"

DEFAULT_FEATURE_FLAGS = [
    ("cash_on_delivery", "Cash on Delivery", "Customers pay when the order is delivered"),
    ("stripe", "Stripe", "Card payments through the store's own Stripe account"),
    ("tilopay", "TiloPay", "Card payments through TiloPay"),
    ("bank_transfer", "Bank Transfer", "Manual bank transfer with store bank details"),
    ("mobile_bank_transfer", "Mobile Bank Transfer", "Transfer to the store's mobile banking number"),
]

FEATURE_KEY_MAX = 64


def seed_feature_flags() -> int:
    """Create missing default flags (enabled). Returns how many were added."""
    existing = {key for (key,) in db.session.query(PlatformFeatureFlag.feature_key).all()}
    added = 0
    for key, name, description in DEFAULT_FEATURE_FLAGS:
        if key in existing:
            continue
        db.session.add(PlatformFeatureFlag(
            feature_key=key,
            name=name,
            description=description,
            enabled=True,
            category=PAYMENT_METHODS_CATEGORY,
        ))
        added += 1
    db.session.commit()
    return added


def list_feature_flags(category: str | None = None) -> list[dict]:
    query = db.session.query(PlatformFeatureFlag)
    if category:
        query = query.filter(PlatformFeatureFlag.category == category)
    flags = query.order_by(PlatformFeatureFlag.category.asc(), PlatformFeatureFlag.name.asc()).all()
    return [f.to_dict() for f in flags]


def is_feature_enabled(feature_key: str) -> bool:
    """Missing flags count as disabled."""
    flag = db.session.query(PlatformFeatureFlag).filter(PlatformFeatureFlag.feature_key == feature_key).first()
    return bool(flag and flag.enabled)


def enabled_payment_methods() -> set[str]:
    """
    Payment method ids platform admins have enabled.

    With no payment flags configured at all, every known method is available.
    """
    flags = (
        db.session.query(PlatformFeatureFlag)
        .filter(PlatformFeatureFlag.category == PAYMENT_METHODS_CATEGORY)
        .all()
    )
    if not flags:
        return {key for key, _, _ in DEFAULT_FEATURE_FLAGS}
    return {f.feature_key for f in flags if f.enabled}


def create_feature_flag(payload: dict) -> dict:
    key = str(payload.get("feature_key") or "").strip().lower()
    name = str(payload.get("name") or "").strip()
    if not key or len(key) > FEATURE_KEY_MAX:
        raise ValidationError("feature_key is required")
    if not name:
        raise ValidationError("name is required")
    if db.session.query(PlatformFeatureFlag.id).filter(PlatformFeatureFlag.feature_key == key).first():
        raise ConflictError("Feature flag already exists")

    flag = PlatformFeatureFlag(
        feature_key=key,
        name=name,
        description=(payload.get("description") or "").strip() or None,
        enabled=bool(payload.get("enabled", True)),
        category=(payload.get("category") or "general").strip(),
    )
    db.session.add(flag)
    db.session.commit()
    return flag.to_dict()


def update_feature_flag(flag_id: int, payload: dict) -> dict:
    flag = db.session.get(PlatformFeatureFlag, flag_id)
    if not flag:
        raise NotFoundError("Feature flag not found")
    if "enabled" in payload:
        if not isinstance(payload["enabled"], bool):
            raise ValidationError("enabled must be a boolean")
        flag.enabled = payload["enabled"]
    if "name" in payload:
        name = str(payload["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        flag.name = name
    if "description" in payload:
        flag.description = (payload["description"] or "").strip() or None
    db.session.commit()
    current_app.logger.info("Feature flag %s enabled=%s", flag.feature_key, flag.enabled)
    return flag.to_dict()


def bulk_update_feature_flags(updates) -> list[dict]:
    """[{"id": 1, "enabled": false}, ...] applied in one transaction."""
    if not isinstance(updates, list):
        raise ValidationError("updates must be a list")
    for update in updates:
        if not isinstance(update, dict) or not isinstance(update.get("enabled"), bool):
            raise ValidationError("Each update needs an id and a boolean enabled")
        flag = db.session.get(PlatformFeatureFlag, update.get("id"))
        if not flag:
            raise NotFoundError("Feature flag not found")
        flag.enabled = update["enabled"]
    db.session.commit()
    return list_feature_flags()


def delete_feature_flag(flag_id: int) -> None:
    flag = db.session.get(PlatformFeatureFlag, flag_id)
    if not flag:
        raise NotFoundError("Feature flag not found")
    db.session.delete(flag)
    db.session.commit()
