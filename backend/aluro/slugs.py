# Overview: URL slug generation, sanitisation and per-tenant uniqueness checks.

from __future__ import annotations

import re
import unicodedata

from .extensions import db

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
MAX_SLUG_LENGTH = 255


def _ascii_fold(value: str) -> str:
    norm = unicodedata.normalize("NFKD", value or "")
    return "".join(ch for ch in norm if unicodedata.category(ch) != "Mn")


def generate_slug(name: str | None) -> str:
    """
    Build a slug from a display name.

    "Café Crème Mug!" -> "cafe-creme-mug"
    """
    s = _ascii_fold(name or "").lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = s.strip()
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")[:MAX_SLUG_LENGTH]


def clean_slug(value: str | None) -> str:
    """Sanitise a manually typed slug; keeps a trailing dash so typing stays natural."""
    s = _ascii_fold(value or "").lower()
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-+", "-", s)
    return s[:MAX_SLUG_LENGTH]


def is_valid_slug(slug: str | None) -> bool:
    return bool(slug) and bool(SLUG_RE.match(slug))


def slug_exists(model, tenant_id: int, slug: str, exclude_id: int | None = None) -> bool:
    """True when `slug` is taken in `model` for this tenant (ignoring exclude_id)."""
    query = db.session.query(model.id).filter(
        model.tenant_id == tenant_id,
        model.slug == slug,
    )
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def check_slug_availability(model, tenant_id: int, raw_slug: str | None, exclude_id: int | None = None) -> dict:
    slug = clean_slug(raw_slug).strip("-")
    if not is_valid_slug(slug):
        return {"slug": slug, "available": False, "valid": False}
    return {
        "slug": slug,
        "available": not slug_exists(model, tenant_id, slug, exclude_id),
        "valid": True,
    }


def suggest_unique_slug(model, tenant_id: int, base: str, exclude_id: int | None = None) -> str:
    """base, base-2, base-3 ... first one free in this tenant."""
    base = base or "item"
    if not slug_exists(model, tenant_id, base, exclude_id):
        return base
    n = 2
    while slug_exists(model, tenant_id, f"{base}-{n}", exclude_id):
        n += 1
    return f"{base}-{n}"
