# Overview: Platform billing; plans, tenant subscriptions and the Stripe webhook.

"""
Billing plans are platform rows (not tenant-scoped). A tenant's current plan
code lives on Tenant.plan; the Stripe side is mirrored into one Subscription
row per tenant from webhook events.

SECURITY:
- webhook payloads are only processed after Stripe signature verification
- plan changes are owner-only (enforced at the route layer)
"""
from __future__ import annotations

import json

import stripe
from flask import current_app

from ..extensions import db
from ..models import BillingPlan, Subscription, Tenant
from ..time_utils import from_unix_timestamp, utcnow
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .tenant_service import validate_tenant_active

DEFAULT_PLAN_CODE = "starter"
PLAN_INTERVALS = ("month", "year")

DEFAULT_PLANS = [
    {
        "code": "starter",
        "name": "Starter",
        "description": "Everything you need to open a store",
        "price_cents": 0,
        "stripe_price_id": "price_starter_free",
        "features": ["1 store", "Up to 50 products", "Basic themes"],
        "sort_order": 1,
    },
    {
        "code": "pro",
        "name": "Pro",
        "description": "For growing stores",
        "price_cents": 2900,
        "stripe_price_id": "price_pro_monthly",
        "features": ["Unlimited products", "All themes", "Discount codes", "Team members"],
        "is_recommended": True,
        "sort_order": 2,
    },
    {
        "code": "enterprise",
        "name": "Enterprise",
        "description": "For high-volume merchants",
        "price_cents": 9900,
        "stripe_price_id": "price_enterprise_monthly",
        "features": ["Everything in Pro", "Custom domain", "Priority support"],
        "sort_order": 3,
    },
]

PLAN_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price_cents", "currency", "interval", "stripe_price_id",
        "features", "is_recommended", "is_active", "sort_order",
    },
    required_on_create={"name"},
)


class BillingError(RuntimeError):
    """Payment provider unavailable or rejected the request."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


def _configure_stripe() -> None:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise BillingError("Billing is not configured", status_code=503)
    stripe.api_key = key


# -- plans --

def list_plans(include_inactive: bool = False) -> list[dict]:
    query = db.session.query(BillingPlan)
    if not include_inactive:
        query = query.filter(BillingPlan.is_active.is_(True))
    plans = query.order_by(BillingPlan.sort_order.asc(), BillingPlan.price_cents.asc()).all()
    return [p.to_dict() for p in plans]


def get_plan_by_code(code: str | None) -> BillingPlan | None:
    if not code:
        return None
    return db.session.query(BillingPlan).filter(BillingPlan.code == code).first()


def _plan(plan_id: int) -> BillingPlan:
    plan = db.session.get(BillingPlan, plan_id)
    if not plan:
        raise NotFoundError("Plan not found")
    return plan


def _check_plan(patch: dict) -> None:
    if "price_cents" in patch and patch["price_cents"] is not None and patch["price_cents"] < 0:
        raise ValidationError("price_cents cannot be negative")
    if "interval" in patch and patch["interval"] not in PLAN_INTERVALS:
        raise ValidationError("interval must be month or year")
    if "currency" in patch and patch["currency"]:
        patch["currency"] = str(patch["currency"]).upper()
    if "features" in patch:
        features = patch["features"] or []
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            raise ValidationError("features must be a list of strings")
        patch["features"] = [f.strip() for f in features if f.strip()]


def create_plan(payload: dict) -> dict:
    code = str(payload.get("code") or "").strip().lower()
    if not code or len(code) > 32:
        raise ValidationError("code is required (max 32 characters)")
    if not str(payload.get("name") or "").strip():
        raise ValidationError("name is required")
    if get_plan_by_code(code):
        raise ConflictError("A plan with this code already exists")

    patch = validate_payload(
        model=BillingPlan,
        payload={k: v for k, v in payload.items() if k != "code"},
        policy=PLAN_POLICY,
        partial=False,
    )
    _check_plan(patch)
    plan = BillingPlan(code=code, **patch)
    db.session.add(plan)
    db.session.commit()
    return plan.to_dict()


def update_plan(plan_id: int, payload: dict) -> dict:
    plan = _plan(plan_id)
    patch = validate_payload(model=BillingPlan, payload=payload, policy=PLAN_POLICY, partial=True)
    _check_plan(patch)
    for key, value in patch.items():
        setattr(plan, key, value)
    db.session.commit()
    return plan.to_dict()


def delete_plan(plan_id: int) -> None:
    """Plans still assigned to a store are deactivated instead of deleted."""
    plan = _plan(plan_id)
    in_use = db.session.query(Tenant.id).filter(Tenant.plan == plan.code).first()
    if in_use:
        plan.is_active = False
    else:
        db.session.delete(plan)
    db.session.commit()


def seed_default_plans() -> int:
    """Insert missing default plans. Returns how many were added."""
    added = 0
    for data in DEFAULT_PLANS:
        if get_plan_by_code(data["code"]):
            continue
        db.session.add(BillingPlan(currency="USD", interval="month", is_active=True, **data))
        added += 1
    db.session.commit()
    return added


def _plan_code_for_price(price_id: str | None) -> str:
    if price_id:
        plan = db.session.query(BillingPlan).filter(BillingPlan.stripe_price_id == price_id).first()
        if plan:
            return plan.code
    return DEFAULT_PLAN_CODE


# -- tenant billing --

def get_tenant_billing(tenant_id: int) -> dict:
    tenant = validate_tenant_active(tenant_id)
    code = tenant.plan or DEFAULT_PLAN_CODE
    plan = get_plan_by_code(code)
    subscription = db.session.query(Subscription).filter(Subscription.tenant_id == tenant_id).first()
    return {
        "plan_code": code,
        "plan": plan.to_dict() if plan else None,
        "subscription": subscription.to_dict() if subscription else None,
        "has_billing_account": bool(tenant.stripe_customer_id),
    }


def _ensure_stripe_customer(tenant: Tenant) -> str:
    if tenant.stripe_customer_id:
        return tenant.stripe_customer_id
    customer = stripe.Customer.create(
        email=tenant.contact_email,
        name=tenant.name,
        metadata={"tenant_id": str(tenant.id), "subdomain": tenant.subdomain},
    )
    tenant.stripe_customer_id = customer["id"]
    db.session.commit()
    return tenant.stripe_customer_id


def change_plan(tenant_id: int, plan_code: str) -> dict:
    """
    Switch the tenant to plan_code.

    Free plans apply immediately. Paid plans return a Stripe Checkout
    session; the plan itself changes when checkout.session.completed
    arrives on the webhook.
    """
    tenant = validate_tenant_active(tenant_id)
    plan = get_plan_by_code((plan_code or "").strip().lower())
    if not plan or not plan.is_active:
        raise NotFoundError("Plan not found")

    if plan.is_free:
        tenant.plan = plan.code
        db.session.commit()
        current_app.logger.info("Tenant %s moved to free plan %s", tenant.id, plan.code)
        return {"plan_code": plan.code, "checkout_required": False}

    if not plan.stripe_price_id:
        raise ValidationError("Plan has no Stripe price configured")

    _configure_stripe()
    metadata = {"tenant_id": str(tenant.id), "plan_code": plan.code}
    try:
        customer_id = _ensure_stripe_customer(tenant)
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            client_reference_id=str(tenant.id),
            line_items=[{"price": plan.stripe_price_id, "quantity": 1}],
            success_url=current_app.config["BILLING_SUCCESS_URL"],
            cancel_url=current_app.config["BILLING_CANCEL_URL"],
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
    except stripe.StripeError as exc:
        current_app.logger.error("Stripe checkout failed for tenant %s: %s", tenant.id, exc)
        raise BillingError("Payment provider error") from exc

    current_app.logger.info("Checkout session %s for tenant %s plan %s", session["id"], tenant.id, plan.code)
    return {
        "plan_code": plan.code,
        "checkout_required": True,
        "session_id": session["id"],
        "checkout_url": session["url"],
    }


def cancel_subscription(tenant_id: int) -> dict:
    """Cancel at period end; the plan reverts when Stripe deletes the subscription."""
    validate_tenant_active(tenant_id)
    subscription = db.session.query(Subscription).filter(Subscription.tenant_id == tenant_id).first()
    if not subscription or not subscription.stripe_subscription_id:
        raise NotFoundError("No active subscription")
    if subscription.status == "canceled":
        raise ConflictError("Subscription is already canceled")

    _configure_stripe()
    try:
        stripe.Subscription.modify(subscription.stripe_subscription_id, cancel_at_period_end=True)
    except stripe.StripeError as exc:
        current_app.logger.error("Stripe cancel failed for tenant %s: %s", tenant_id, exc)
        raise BillingError("Payment provider error") from exc

    subscription.cancel_at_period_end = True
    db.session.commit()
    return subscription.to_dict()


# -- webhook --

def handle_webhook(payload: bytes | str, signature: str | None) -> dict:
    """Verify the Stripe signature, then apply the event."""
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise BillingError("Webhook secret not configured", status_code=503)
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        stripe.WebhookSignature.verify_header(payload, signature or "", secret)
        event = json.loads(payload)
    except (stripe.SignatureVerificationError, ValueError) as exc:
        current_app.logger.warning("Rejected Stripe webhook: %s", exc)
        raise ValidationError("Invalid webhook signature or payload") from exc
    return process_event(event)


def process_event(event: dict) -> dict:
    if not isinstance(event, dict):
        raise BillingError("Webhook payload must be a JSON object", status_code=400)
    event_type = event.get("type")
    data = event.get("data") or {}
    obj = (data.get("object") or {}) if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise BillingError("Webhook event data must contain an object", status_code=400)
    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.info("Ignoring Stripe event %s", event_type)
        return {"received": True, "handled": False}
    handler(obj)
    db.session.commit()
    current_app.logger.info("Processed Stripe event %s (%s)", event_type, event.get("id"))
    return {"received": True, "handled": True}


def _tenant_for(obj: dict, subscription_id: str | None = None) -> Tenant | None:
    if subscription_id:
        sub = db.session.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()
        if sub:
            return db.session.get(Tenant, sub.tenant_id)
    customer_id = obj.get("customer")
    if customer_id:
        return db.session.query(Tenant).filter(Tenant.stripe_customer_id == customer_id).first()
    return None


def _subscription_row(tenant: Tenant) -> Subscription:
    sub = db.session.query(Subscription).filter(Subscription.tenant_id == tenant.id).first()
    if sub is None:
        sub = Subscription(tenant_id=tenant.id, plan_code=tenant.plan or DEFAULT_PLAN_CODE, status="incomplete")
        db.session.add(sub)
    return sub


def _price_id(stripe_sub: dict) -> str | None:
    items = ((stripe_sub.get("items") or {}).get("data")) or []
    if items:
        return (items[0].get("price") or {}).get("id")
    return None


def _period(stripe_sub: dict) -> tuple:
    start, end = stripe_sub.get("current_period_start"), stripe_sub.get("current_period_end")
    if start is None:
        items = ((stripe_sub.get("items") or {}).get("data")) or []
        if items:
            start, end = items[0].get("current_period_start"), items[0].get("current_period_end")
    return from_unix_timestamp(start), from_unix_timestamp(end)


def _invoice_subscription_id(invoice: dict) -> str | None:
    if invoice.get("subscription"):
        return invoice["subscription"]
    details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return details.get("subscription")


def _on_checkout_completed(session: dict) -> None:
    metadata = session.get("metadata") or {}
    tenant_ref = metadata.get("tenant_id") or session.get("client_reference_id")
    tenant = db.session.get(Tenant, int(tenant_ref)) if str(tenant_ref or "").isdigit() else None
    if tenant is None:
        current_app.logger.warning("checkout.session.completed without a known tenant (%s)", tenant_ref)
        return

    plan_code = metadata.get("plan_code")
    if not get_plan_by_code(plan_code):
        plan_code = DEFAULT_PLAN_CODE
    tenant.plan = plan_code
    if session.get("customer"):
        tenant.stripe_customer_id = session["customer"]

    sub = _subscription_row(tenant)
    sub.plan_code = plan_code
    sub.status = "active"
    sub.stripe_customer_id = session.get("customer") or sub.stripe_customer_id
    sub.stripe_subscription_id = session.get("subscription") or sub.stripe_subscription_id
    plan = get_plan_by_code(plan_code)
    sub.stripe_price_id = plan.stripe_price_id if plan else None
    sub.cancel_at_period_end = False
    sub.canceled_at = None


def _on_invoice_paid(invoice: dict) -> None:
    sub_id = _invoice_subscription_id(invoice)
    tenant = _tenant_for(invoice, sub_id)
    if tenant is None:
        return
    sub = _subscription_row(tenant)
    sub.status = "active"
    if sub_id:
        sub.stripe_subscription_id = sub_id
    lines = ((invoice.get("lines") or {}).get("data")) or []
    if lines:
        period = lines[0].get("period") or {}
        sub.current_period_start = from_unix_timestamp(period.get("start")) or sub.current_period_start
        sub.current_period_end = from_unix_timestamp(period.get("end")) or sub.current_period_end


def _on_invoice_failed(invoice: dict) -> None:
    tenant = _tenant_for(invoice, _invoice_subscription_id(invoice))
    if tenant is None:
        return
    _subscription_row(tenant).status = "past_due"
    current_app.logger.warning("Payment failed for tenant %s", tenant.id)


def _on_subscription_updated(stripe_sub: dict) -> None:
    tenant = _tenant_for(stripe_sub, stripe_sub.get("id"))
    if tenant is None:
        return
    sub = _subscription_row(tenant)
    sub.stripe_subscription_id = stripe_sub.get("id") or sub.stripe_subscription_id
    sub.stripe_customer_id = stripe_sub.get("customer") or sub.stripe_customer_id
    sub.status = stripe_sub.get("status") or sub.status
    sub.cancel_at_period_end = bool(stripe_sub.get("cancel_at_period_end"))
    sub.current_period_start, sub.current_period_end = _period(stripe_sub)

    price_id = _price_id(stripe_sub)
    if price_id:
        sub.stripe_price_id = price_id
        sub.plan_code = _plan_code_for_price(price_id)
        if sub.status in ("active", "trialing"):
            tenant.plan = sub.plan_code


def _on_subscription_deleted(stripe_sub: dict) -> None:
    tenant = _tenant_for(stripe_sub, stripe_sub.get("id"))
    if tenant is None:
        return
    tenant.plan = DEFAULT_PLAN_CODE
    sub = _subscription_row(tenant)
    sub.status = "canceled"
    sub.plan_code = DEFAULT_PLAN_CODE
    sub.cancel_at_period_end = False
    sub.canceled_at = from_unix_timestamp(stripe_sub.get("canceled_at")) or utcnow()
    current_app.logger.info("Tenant %s subscription canceled; back on %s", tenant.id, DEFAULT_PLAN_CODE)


_EVENT_HANDLERS = {
    "checkout.session.completed": _on_checkout_completed,
    "invoice.payment_succeeded": _on_invoice_paid,
    "invoice.payment_failed": _on_invoice_failed,
    "customer.subscription.updated": _on_subscription_updated,
    "customer.subscription.deleted": _on_subscription_deleted,
}
