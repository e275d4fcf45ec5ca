# Overview: Service-layer operations for CSV product imports; column mapping, row checks and bulk insert.

"""
Product Import Service

MULTI-TENANT: rows are written through TenantDatabase(tenant_id) and
category_slug only resolves against the caller's own categories.

Flow:
    parse_csv(text)             -> {"headers": [...], "rows": [{header: value}]}
    suggest_mappings(headers)   -> {header: field} for headers named after a field
    import_products(...)        -> checks every row first; when any row has
                                   errors nothing is inserted and the errors
                                   come back in a ValidationError

Row numbers in errors count data rows from 1 (the header row is not counted).
"""
from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Product
from ..slugs import generate_slug, slug_exists
from ..validation import ConflictError, NotFoundError, ValidationError, is_valid_url
from .products_service import prepare_new_product
from .tenant_database import TenantDatabase


@dataclass(frozen=True)
class ImportField:
    name: str
    label: str
    kind: str  # text | money | integer | number | boolean | tags | url
    required: bool = False

    def to_dict(self) -> dict:
        return {"name": self.name, "label": self.label, "type": self.kind, "required": self.required}


PRODUCT_IMPORT_FIELDS = (
    ImportField("name", "Product Name", "text", required=True),
    ImportField("slug", "URL Slug", "text"),
    ImportField("description", "Description", "text"),
    ImportField("short_description", "Short Description", "text"),
    ImportField("price", "Price", "money", required=True),
    ImportField("compare_price", "Compare Price", "money"),
    ImportField("cost_price", "Cost Price", "money"),
    ImportField("sku", "SKU", "text"),
    ImportField("inventory_quantity", "Inventory Quantity", "integer"),
    ImportField("weight", "Weight", "number"),
    ImportField("tags", "Tags (comma-separated)", "tags"),
    ImportField("is_active", "Active Status", "boolean"),
    ImportField("is_featured", "Featured Status", "boolean"),
    ImportField("category_slug", "Category Slug", "text"),
    ImportField("image_url", "Image URL", "url"),
)
FIELDS_BY_NAME = {f.name: f for f in PRODUCT_IMPORT_FIELDS}

SKIP = "skip"
MAX_IMPORT_ROWS = 1000
MAX_REPORTED_ERRORS = 200

TRUE_VALUES = {"true", "1", "yes", "active"}
FALSE_VALUES = {"false", "0", "no", "inactive"}

TEMPLATE_ROWS = [
    ["name", "price", "description", "short_description", "sku", "inventory_quantity",
     "category_slug", "image_url", "is_active"],
    ["Sample Product", "29.99", "A great product description", "Short description", "SKU001", "100",
     "electronics", "https://example.com/product-image.jpg", "true"],
]

# import field -> product column, for fields copied through unchanged
_DIRECT_COLUMNS = {
    "name": "name",
    "slug": "slug",
    "description": "description",
    "short_description": "short_description",
    "sku": "sku",
    "inventory_quantity": "inventory_quantity",
    "weight": "weight",
    "tags": "tags",
    "is_active": "is_active",
    "is_featured": "is_featured",
    "price": "price_cents",
    "compare_price": "compare_price_cents",
    "cost_price": "cost_price_cents",
}


def template_csv() -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerows(TEMPLATE_ROWS)
    return out.getvalue()


def parse_csv(text: str) -> dict:
    """Split CSV text into headers and row dicts; blank lines are skipped."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("CSV file is empty")

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    try:
        records = [record for record in reader if any(cell.strip() for cell in record)]
    except csv.Error as exc:
        raise ValidationError(f"Could not read CSV: {exc}") from exc

    if len(records) < 2:
        raise ValidationError("CSV file needs a header row and at least one data row")

    headers = [h.strip() for h in records[0]]
    if any(not h for h in headers):
        raise ValidationError("Every column needs a header")
    if len(set(headers)) != len(headers):
        raise ValidationError("Column headers must be unique")

    rows = [
        {header: (record[i].strip() if i < len(record) else "") for i, header in enumerate(headers)}
        for record in records[1:]
    ]
    if len(rows) > MAX_IMPORT_ROWS:
        raise ValidationError(f"A single import is limited to {MAX_IMPORT_ROWS} rows")
    return {"headers": headers, "rows": rows}


def _header_key(header: str) -> str:
    return "_".join(header.strip().lower().replace("-", " ").split())


def suggest_mappings(headers: list[str]) -> dict[str, str]:
    """Map headers that match a field name or label ("Price", "inventory quantity")."""
    by_key = {}
    for field in PRODUCT_IMPORT_FIELDS:
        by_key[field.name] = field.name
        by_key[_header_key(field.label)] = field.name

    suggested, used = {}, set()
    for header in headers:
        field = by_key.get(_header_key(header))
        if field and field not in used:
            suggested[header] = field
            used.add(field)
        else:
            suggested[header] = SKIP
    return suggested


def _resolve_mappings(mappings: dict | None, headers: list[str]) -> dict[str, str]:
    """Return {field: header}; every required field must be mapped exactly once."""
    if mappings is None:
        mappings = suggest_mappings(headers)
    if not isinstance(mappings, dict):
        raise ValidationError("mappings must be an object of column -> field")

    by_field: dict[str, str] = {}
    problems = []
    for header, field in mappings.items():
        if field in (None, "", SKIP):
            continue
        if header not in headers:
            problems.append({"field": str(field), "message": f"Column '{header}' is not in the file"})
        elif field not in FIELDS_BY_NAME:
            problems.append({"field": str(field), "message": f"Unknown product field '{field}'"})
        elif field in by_field:
            problems.append({"field": field, "message": f"'{field}' is mapped from more than one column"})
        else:
            by_field[field] = header

    for field in PRODUCT_IMPORT_FIELDS:
        if field.required and field.name not in by_field:
            problems.append({"field": field.name, "message": f"Required field '{field.label}' is not mapped"})

    if problems:
        raise ValidationError(problems[0]["message"], errors=problems)
    return by_field


def _convert(field: ImportField, raw: str) -> Any:
    """Typed value for a non-blank cell; ValueError carries the user-facing message."""
    if field.kind == "money":
        text = raw.replace("$", "").replace(",", "")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{field.label} must be a valid number") from None
        if not amount.is_finite():
            raise ValueError(f"{field.label} must be a valid number")
        return int((amount * 100).quantize(Decimal("1")))
    if field.kind == "integer":
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            raise ValueError(f"{field.label} must be a valid number") from None
        if not amount.is_finite() or amount != amount.to_integral_value():
            raise ValueError(f"{field.label} must be a whole number")
        return int(amount)
    if field.kind == "number":
        try:
            value = float(raw)
        except ValueError:
            raise ValueError(f"{field.label} must be a valid number") from None
        if not math.isfinite(value):
            raise ValueError(f"{field.label} must be a valid number")
        return value
    if field.kind == "boolean":
        value = raw.lower()
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
        raise ValueError(f"{field.label} must be true/false, 1/0, yes/no, or active/inactive")
    if field.kind == "tags":
        return [tag.strip() for tag in raw.split(",") if tag.strip()]
    if field.kind == "url":
        if not is_valid_url(raw):
            raise ValueError(f"{field.label} must be a valid URL")
        return raw
    return raw


def _unique_generated_slug(tenant_id: int, name: str, taken: set[str]) -> str | None:
    base = generate_slug(name)
    if not base:
        return None
    candidate, n = base, 2
    while candidate in taken or slug_exists(Product, tenant_id, candidate):
        candidate = f"{base}-{n}"
        n += 1
    return candidate


def _row_payload(tdb: TenantDatabase, row: dict, by_field: dict[str, str], row_number: int, errors: list) -> dict:
    payload: dict[str, Any] = {"product_type": "single", "track_inventory": True}
    for name, header in by_field.items():
        field = FIELDS_BY_NAME[name]
        raw = str(row.get(header) if row.get(header) is not None else "").strip()
        if not raw:
            if field.required:
                errors.append({"row": row_number, "column": header, "field": name,
                               "message": f"{field.label} is required", "value": raw})
            continue
        try:
            value = _convert(field, raw)
        except ValueError as exc:
            errors.append({"row": row_number, "column": header, "field": name, "message": str(exc), "value": raw})
            continue

        if name == "category_slug":
            category = tdb.get_category_by_slug(value)
            if category is None:
                errors.append({"row": row_number, "column": header, "field": name,
                               "message": f"Category with slug '{value}' not found", "value": raw})
            else:
                payload["category_id"] = category.id
        elif name == "image_url":
            payload["images"] = [value]
        else:
            payload[_DIRECT_COLUMNS[name]] = value

    payload.setdefault("inventory_quantity", 0)
    payload.setdefault("is_active", True)
    return payload


def import_products(tenant_id: int, rows: list, mappings: dict | None = None, *, dry_run: bool = False) -> dict:
    """
    Validate and insert product rows.

    rows: list of {column header: cell text}. mappings: {column header:
    field name or "skip"}; suggested from the headers when omitted.
    Rows are all-or-nothing: one bad row means no product is created.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("No rows to import")
    if len(rows) > MAX_IMPORT_ROWS:
        raise ValidationError(f"A single import is limited to {MAX_IMPORT_ROWS} rows")
    if not all(isinstance(row, dict) for row in rows):
        raise ValidationError("Each row must be an object of column -> value")

    headers = list(dict.fromkeys(header for row in rows for header in row))
    by_field = _resolve_mappings(mappings, headers)
    tdb = TenantDatabase(tenant_id)

    errors: list[dict] = []
    prepared: list[tuple[int, dict]] = []
    taken_slugs: set[str] = set()
    taken_skus: set[str] = set()

    for index, row in enumerate(rows):
        row_number = index + 1
        before = len(errors)
        payload = _row_payload(tdb, row, by_field, row_number, errors)
        if len(errors) > before:
            continue

        if not payload.get("slug"):
            generated = _unique_generated_slug(tenant_id, payload.get("name") or "", taken_slugs)
            if generated:
                payload["slug"] = generated
        try:
            patch = prepare_new_product(tenant_id, tdb, payload)
        except (ValidationError, ConflictError, NotFoundError) as exc:
            errors.append({"row": row_number, "column": None, "field": None, "message": str(exc), "value": None})
            continue

        if patch["slug"] in taken_slugs:
            errors.append({"row": row_number, "column": by_field.get("slug"), "field": "slug",
                           "message": "Slug is repeated in this file", "value": patch["slug"]})
            continue
        if patch.get("sku") and patch["sku"] in taken_skus:
            errors.append({"row": row_number, "column": by_field.get("sku"), "field": "sku",
                           "message": "SKU is repeated in this file", "value": patch["sku"]})
            continue
        taken_slugs.add(patch["slug"])
        if patch.get("sku"):
            taken_skus.add(patch["sku"])
        prepared.append((row_number, patch))

    if errors:
        failed_rows = len({e["row"] for e in errors})
        raise ValidationError(
            f"{failed_rows} of {len(rows)} rows have errors; nothing was imported",
            errors=errors[:MAX_REPORTED_ERRORS],
        )

    summary = {
        "dry_run": dry_run,
        "total_rows": len(rows),
        "mappings": by_field,
        "imported": 0,
        "products": [],
    }
    if dry_run:
        summary["valid_rows"] = len(prepared)
        return summary

    created = [(row_number, tdb.create_product(patch)) for row_number, patch in prepared]
    db.session.commit()
    current_app.logger.info("Imported %s products into tenant %s", len(created), tenant_id)

    summary["imported"] = len(created)
    summary["products"] = [
        {"row": row_number, "id": product.id, "name": product.name, "slug": product.slug}
        for row_number, product in created
    ]
    return summary
