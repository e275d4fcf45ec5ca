"""
Customers Service

MULTI-TENANT: customers are per tenant; email is unique inside a tenant
(stored lower-cased) and the same address may exist in another tenant.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Customer, Order
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    is_valid_email,
    is_valid_phone,
    normalize_email,
    require_string_list,
    validate_payload,
)
from .pagination import paginate
from .tenant_database import TenantDatabase

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "email", "first_name", "last_name", "phone", "accepts_marketing",
        "addresses", "tags", "notes",
    },
    required_on_create={"email"},
)


def _check_fields(patch: dict) -> None:
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
        if not is_valid_email(patch["email"]):
            raise ValidationError("Invalid email address", errors=[{"field": "email", "message": "Invalid email"}])
    if patch.get("phone") and not is_valid_phone(patch["phone"]):
        raise ValidationError("Invalid phone number", errors=[{"field": "phone", "message": "Invalid phone"}])
    if "tags" in patch:
        patch["tags"] = require_string_list(patch["tags"], "tags")
    if "addresses" in patch and patch["addresses"] is not None and not isinstance(patch["addresses"], list):
        raise ValidationError("addresses must be a list")


def list_customers(tenant_id: int, *, search: str | None = None, page: int | None = None,
                   per_page: int | None = None) -> dict:
    tdb = TenantDatabase(tenant_id)
    return paginate(tdb.customers_query(search=search), page, per_page, lambda c: c.to_dict())


def get_customer(tenant_id: int, customer_id: int, include_orders: bool = True) -> dict:
    tdb = TenantDatabase(tenant_id)
    customer = tdb.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    data = customer.to_dict()
    if include_orders:
        orders = tdb.get_orders(customer_id=customer.id)
        data["orders"] = [o.to_dict() for o in orders]
    return data


def create_customer(tenant_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    _check_fields(patch)
    if tdb.get_customer_by_email(patch["email"]):
        raise ConflictError("A customer with this email already exists")

    customer = tdb.create_customer(patch)
    db.session.commit()
    return customer.to_dict()


def update_customer(tenant_id: int, customer_id: int, payload: dict) -> dict:
    tdb = TenantDatabase(tenant_id)
    customer = tdb.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")

    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    _check_fields(patch)
    if patch.get("email"):
        other = tdb.get_customer_by_email(patch["email"])
        if other and other.id != customer.id:
            raise ConflictError("A customer with this email already exists")

    tdb.update_customer(customer.id, patch)
    db.session.commit()
    return customer.to_dict()


def delete_customer(tenant_id: int, customer_id: int) -> None:
    """Orders keep their email snapshot and lose the customer link."""
    tdb = TenantDatabase(tenant_id)
    customer = tdb.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")

    tdb.query(Order).filter(Order.customer_id == customer.id).update(
        {"customer_id": None}, synchronize_session=False
    )
    db.session.expire_all()
    tdb.delete_customer(customer.id)
    db.session.commit()


def find_or_create_customer(tdb: TenantDatabase, email: str, *, first_name: str | None = None,
                            last_name: str | None = None, phone: str | None = None,
                            user_id: int | None = None) -> Customer:
    """
    Checkout helper: the tenant's customer for `email`, created when missing.
    Flushes only; the caller commits with the order.
    """
    email = normalize_email(email)
    if not is_valid_email(email):
        raise ValidationError("Invalid email address", errors=[{"field": "email", "message": "Invalid email"}])

    customer = tdb.get_customer_by_email(email)
    if customer:
        if user_id and not customer.user_id:
            customer.user_id = user_id
        return customer

    return tdb.create_customer({
        "email": email,
        "first_name": (first_name or "").strip() or None,
        "last_name": (last_name or "").strip() or None,
        "phone": (phone or "").strip() or None,
        "user_id": user_id,
        "total_spent_cents": 0,
        "orders_count": 0,
    })
